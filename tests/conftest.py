from pathlib import Path

import pytest
from loguru import logger

from dapsync.config import DapSyncSettings


@pytest.fixture(autouse=True)
def quiet_logger():
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def make_settings(tmp_path: Path):
    """Settings rooted in tmp_path; keyword arguments override fields."""

    def _make(**overrides) -> DapSyncSettings:
        values = dict(
            music_source=str(tmp_path / "music"),
            audiobooks_source=str(tmp_path / "audiobooks"),
            music_directory="/host/music/",
            audiobooks_directory="/host/books/",
            data_dir=str(tmp_path / "data"),
            host_data_dir="/host/data",
            music_destination="/dap/music/",
            audiobooks_destination="/dap/books/",
            playlist_destination="/dap/playlists/",
            navidrome_db=str(tmp_path / "missing-navidrome.db"),
            config_path=tmp_path / "config.toml",
        )
        values.update(overrides)
        return DapSyncSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> DapSyncSettings:
    return make_settings()


def write_file(path: Path, size: int = 0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path
