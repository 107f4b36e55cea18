from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 not supported per pyproject
    tomllib = None  # type: ignore

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/dapsync/config.toml").expanduser()
ENV_PREFIX = "DAPSYNC_"

SELECTION_FILENAME = "sync_selection.txt"
PLAYLISTS_DIRNAME = "Playlists"
SCRIPT_FILENAME = "dap_sync.sh"
NAVIDROME_DB_FILENAME = "navidrome.db"

BUNDLED_TEMPLATE = Path(__file__).parent / "templates" / SCRIPT_FILENAME


class DapSyncSettings(BaseSettings):
    """Settings for dapsync, loaded once at startup and never mutated.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/dapsync/config.toml)
    - Environment variables with prefix DAPSYNC_
    - CLI overrides passed to `load(overrides=...)`

    Two path namespaces live side by side here. `*_source` and `data_dir` are the
    paths as this service sees them (usually inside a container); `*_directory` and
    `host_data_dir` are the same locations as the host running the sync script sees them.
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Library roots (container view)
    music_source: str = Field(default="/music", description="Music library root as mounted for this service")
    audiobooks_source: str = Field(default="/audiobooks", description="Audiobooks root as mounted for this service")

    # Library roots (host view)
    music_directory: str = Field(default="/music/", description="Music library root on the host")
    audiobooks_directory: str = Field(default="/audiobooks/", description="Audiobooks root on the host")

    # Device-side destinations substituted into the sync script
    music_destination: str = Field(default="/mnt/dap/music/", description="Music destination on the device")
    audiobooks_destination: str = Field(default="/mnt/dap/audiobooks/", description="Audiobooks destination on the device")
    playlist_destination: str = Field(default="/mnt/dap/playlists/", description="Playlist destination on the device")

    # Generated artifacts
    data_dir: str = Field(default="/data", description="Data directory as seen by this service")
    host_data_dir: Optional[str] = Field(default=None, description="Data directory as seen by the host; None=same as data_dir")
    sync_selection_file: Optional[str] = Field(default=None, description="Selection file path; None=<data_dir>/sync_selection.txt")
    dap_sync_output: Optional[str] = Field(default=None, description="Generated script path; None=<data_dir>/dap_sync.sh")
    dap_sync_template: Optional[str] = Field(default=None, description="Script template; None=bundled template")

    # Device
    device_size_gb: int = Field(default=160, description="Device capacity in GB (1 GB = 1024^3 bytes)")

    # Playlist source
    navidrome_db: Optional[str] = Field(default=None, description="Navidrome SQLite DB; None=<data_dir>/navidrome.db")
    subsonic_url: Optional[str] = Field(default=None, description="Subsonic API base URL")
    subsonic_username: Optional[str] = Field(default=None, description="Subsonic username")
    subsonic_password: Optional[str] = Field(default=None, description="Subsonic password")
    playlist_path_prefix: str = Field(default="/<HDD0>/music/", description="Device mount prefix for playlist entries")

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Bind address for `serve`")
    port: int = Field(default=3000, description="Port for `serve`")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore", frozen=True)

    @staticmethod
    def default_config_path() -> Path:
        return DEFAULT_CONFIG_PATH

    # Derived paths

    @property
    def selection_path(self) -> Path:
        """Where this service reads and writes the selection file."""
        if self.sync_selection_file:
            return Path(self.sync_selection_file)
        return Path(self.data_dir) / SELECTION_FILENAME

    @property
    def host_selection_path(self) -> str:
        """The selection file as the sync script on the host will open it."""
        if self.sync_selection_file:
            return self.sync_selection_file
        return _join(self.host_data_dir or self.data_dir, SELECTION_FILENAME)

    @property
    def playlists_dir(self) -> Path:
        return Path(self.data_dir) / PLAYLISTS_DIRNAME

    @property
    def host_playlists_dir(self) -> str:
        return _join(self.host_data_dir or self.data_dir, PLAYLISTS_DIRNAME)

    @property
    def script_output_path(self) -> Path:
        if self.dap_sync_output:
            return Path(self.dap_sync_output)
        return Path(self.data_dir) / SCRIPT_FILENAME

    @property
    def script_template_path(self) -> Path:
        if self.dap_sync_template:
            return Path(self.dap_sync_template).expanduser()
        return BUNDLED_TEMPLATE

    @property
    def navidrome_db_path(self) -> Path:
        if self.navidrome_db:
            return Path(self.navidrome_db)
        return Path(self.data_dir) / NAVIDROME_DB_FILENAME

    @property
    def subsonic_configured(self) -> bool:
        return all(
            (v or "").strip()
            for v in (self.subsonic_url, self.subsonic_username, self.subsonic_password)
        )

    @property
    def device_size_bytes(self) -> int:
        return self.device_size_gb * 1024 * 1024 * 1024

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        if tomllib is None:
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "DapSyncSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/dapsync/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings, so drop file keys the env sets
        env_keys = {k.upper() for k in os.environ}
        file_values = {k: v for k, v in file_values.items() if f"{ENV_PREFIX}{k}".upper() not in env_keys}
        # Build settings in two steps so that env can override file, and CLI overrides override env
        base = cls(**file_values)  # file + env via pydantic
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged = base.model_dump()
        merged.update(non_none)
        # Settings are frozen, so the config path goes in at construction time
        merged["config_path"] = cp
        return cls(**merged)

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral and unset fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True)
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        content = self.to_toml()
        target.write_text(content, encoding="utf-8")
        return target


def _join(base: str, name: str) -> str:
    return base.rstrip("/") + "/" + name


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "music_source",
        "audiobooks_source",
        "data_dir",
        "device_size_gb",
        "host",
        "port",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
