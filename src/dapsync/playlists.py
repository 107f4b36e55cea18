"""Write one .m3u8 file per chosen playlist into the playlists directory."""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from .config import DapSyncSettings
from .logging import log_event
from .paths import LEGACY_CONTAINER_PREFIXES, sanitize_playlist_filename, to_relative
from .playlist_source import PlaylistSource, PlaylistSourceUnavailable


def device_song_path(song_path: str, settings: DapSyncSettings) -> str:
    """Map a media-server song path to the path the device sees.

    The path is made relative to the music library (container root, host root
    or the legacy `/music/` mount) and appended to `playlist_path_prefix`.
    """
    rel = song_path.strip()
    for root in (settings.music_source, settings.music_directory, LEGACY_CONTAINER_PREFIXES[0]):
        stripped = to_relative(rel, root)
        if stripped != rel:
            rel = stripped
            break
    rel = rel.lstrip("/")
    prefix = settings.playlist_path_prefix
    if not prefix:
        return "/" + rel
    if not prefix.endswith("/"):
        prefix += "/"
    return prefix + rel


class PlaylistBuilder:
    def __init__(self, settings: DapSyncSettings, source: Optional[PlaylistSource]):
        self.settings = settings
        self.source = source
        self.playlists_dir: Path = settings.playlists_dir

    def resolve_ids(self, mode: str, requested_ids: Iterable[str]) -> List[str]:
        """Every known id for mode "all", otherwise `requested_ids` as given."""
        if mode != "all":
            return list(requested_ids)
        if self.source is None:
            raise PlaylistSourceUnavailable("No playlist source configured")
        return [p.id for p in self.source.list_playlists()]

    def reset_dir(self) -> None:
        """Remove everything previously generated so deselected playlists disappear."""
        if self.playlists_dir.is_dir():
            for entry in self.playlists_dir.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        else:
            self.playlists_dir.mkdir(parents=True, exist_ok=True)

    def fetch(self, playlist_id: str) -> Optional[Tuple[str, List[str]]]:
        """(filename, device lines) for `playlist_id`; None when it has no songs."""
        if self.source is None:
            return None
        songs = self.source.playlist_song_paths(playlist_id)
        if not songs:
            logger.info(f"Playlist {playlist_id} has no songs; skipped")
            return None
        name = self.source.playlist_name(playlist_id) or f"playlist_{playlist_id}"
        filename = sanitize_playlist_filename(name, playlist_id)
        return filename, [device_song_path(song, self.settings) for song in songs]

    def write(self, playlist_id: str, filename: str, lines: List[str]) -> Path:
        self.playlists_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.playlists_dir / filename
        file_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        log_event("playlist_written", playlist_id=playlist_id, path=str(file_path), songs=len(lines),
                  msg=f"Wrote playlist {filename} ({len(lines)} songs)")
        return file_path

    def build(self, playlist_id: str) -> Optional[Path]:
        """Write the playlist file for `playlist_id`; None when it has no songs."""
        fetched = self.fetch(playlist_id)
        if fetched is None:
            return None
        return self.write(playlist_id, *fetched)

    def generate(self, playlist_ids: Iterable[str]) -> List[Path]:
        """Rebuild the playlists directory for every non-blank id.

        Everything is fetched before the directory is touched. Without a source,
        or when any lookup fails, existing files are left in place.
        """
        if self.source is None:
            logger.warning("No playlist source; keeping existing playlist files")
            return []

        fetched: List[Tuple[str, str, List[str]]] = []
        complete = True
        for pid in playlist_ids:
            pid = str(pid).strip()
            if not pid:
                continue
            try:
                result = self.fetch(pid)
            except PlaylistSourceUnavailable as e:
                logger.warning(f"Playlist {pid} not built: {e}")
                complete = False
                continue
            if result is not None:
                fetched.append((pid, *result))

        if complete:
            self.reset_dir()
        else:
            logger.warning(f"Playlist source incomplete; keeping existing files in {self.playlists_dir}")
        return [self.write(pid, filename, lines) for pid, filename, lines in fetched]
