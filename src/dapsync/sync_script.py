"""Render the host-side sync script from its template.

Pure templating: `{{TOKEN}}` placeholders are replaced literally and the
result is written executable. Nothing here runs the script.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict

from .config import DapSyncSettings
from .logging import log_event
from .selection import write_atomic


SCRIPT_MODE = 0o755


def template_tokens(settings: DapSyncSettings) -> Dict[str, str]:
    """Token -> value, all as the host sees them since the script runs there."""
    return {
        "{{SYNC_SELECTION_FILE}}": settings.host_selection_path,
        "{{PLAYLISTS_DIR}}": settings.host_playlists_dir,
        "{{MUSIC_DESTINATION}}": settings.music_destination,
        "{{AUDIOBOOKS_DESTINATION}}": settings.audiobooks_destination,
        "{{PLAYLIST_DESTINATION}}": settings.playlist_destination,
        "{{MUSIC_DIRECTORY}}": settings.music_directory,
        "{{AUDIOBOOKS_DIRECTORY}}": settings.audiobooks_directory,
    }


class SyncScriptGenerator:
    def __init__(self, settings: DapSyncSettings):
        self.settings = settings
        self.template_path: Path = settings.script_template_path
        self.output_path: Path = settings.script_output_path

    def render(self, template: str) -> str:
        for token, value in template_tokens(self.settings).items():
            template = template.replace(token, value)
        return template

    def generate(self) -> Path:
        """Write the rendered script to the output path and mark it executable.

        Raises FileNotFoundError when the template is missing.
        """
        template = self.template_path.read_text(encoding="utf-8")
        write_atomic(self.output_path, self.render(template), mode=SCRIPT_MODE)
        log_event("script_generated", path=str(self.output_path), template=str(self.template_path))
        return self.output_path
