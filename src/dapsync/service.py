"""Request-level operations behind the HTTP API and the CLI.

Reads combine a fresh catalog scan with the stored selection. A save writes the
selection file, then regenerates playlists and the sync script, in that order:
the script references both the selection file and the playlists directory.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from loguru import logger

from .catalog import flatten_album_paths, format_size, scan_albums, scan_audiobooks, total_size
from .config import DapSyncSettings
from .logging import bind_run, log_skipped
from .playlist_source import PlaylistSource, PlaylistSourceUnavailable, open_playlist_source
from .playlists import PlaylistBuilder
from .selection import SelectionState, SelectionStore
from .sync_script import SyncScriptGenerator


SourceFactory = Callable[[DapSyncSettings], PlaylistSource]


class SaveError(Exception):
    """The selection file could not be written; the user should retry."""


class SyncService:
    def __init__(
        self,
        settings: DapSyncSettings,
        *,
        source_factory: SourceFactory = open_playlist_source,
    ):
        self.settings = settings
        self.source_factory = source_factory
        self.script = SyncScriptGenerator(settings)
        self.store = SelectionStore(settings, after_write=self._regenerate)

    # Playlist source is probed per call so its absence never blocks scans.

    def playlist_source(self) -> Optional[PlaylistSource]:
        try:
            return self.source_factory(self.settings)
        except PlaylistSourceUnavailable as e:
            logger.debug(f"Playlist source unavailable: {e}")
            return None

    @contextmanager
    def open_source(self) -> Iterator[Optional[PlaylistSource]]:
        """Yield the playlist source (or None) and close it afterwards."""
        source = self.playlist_source()
        try:
            yield source
        finally:
            if source is not None:
                source.close()

    def playlists_available(self) -> bool:
        with self.open_source() as source:
            return source is not None

    # Reads

    def albums_payload(self) -> Dict[str, Any]:
        albums = scan_albums(Path(self.settings.music_source))
        audiobooks = scan_audiobooks(Path(self.settings.audiobooks_source))
        log_skipped("music", albums.skipped)
        log_skipped("audiobooks", audiobooks.skipped)

        music_size = sum(total_size(items) for items in albums.catalog.values())
        books_size = total_size(audiobooks.catalog)
        device_bytes = self.settings.device_size_bytes
        return {
            "albums_by_artist": {
                artist: [item.to_dict() for item in items] for artist, items in albums.catalog.items()
            },
            "albums": flatten_album_paths(albums.catalog),
            "audiobooks": [item.to_dict() for item in audiobooks.catalog],
            "selection": self.store.read().to_dict(),
            "total_size": music_size,
            "total_size_formatted": format_size(music_size),
            "audiobooks_total_size": books_size,
            "audiobooks_total_size_formatted": format_size(books_size),
            "device_size_gb": self.settings.device_size_gb,
            "device_size_bytes": device_bytes,
            "device_size_formatted": format_size(device_bytes),
            "subsonic_configured": self.playlists_available(),
        }

    def selection_payload(self) -> Dict[str, Any]:
        return self.store.read().to_dict()

    def playlists_payload(self) -> Dict[str, Any]:
        """Raises PlaylistSourceUnavailable when no source is configured or reachable."""
        source = self.source_factory(self.settings)
        try:
            return {"playlists": [p.to_dict() for p in source.list_playlists()]}
        finally:
            source.close()

    # Writes

    def save_selection(
        self,
        *,
        music_mode: str = "all",
        music_albums: Iterable[str] = (),
        audiobooks_mode: str = "all",
        audiobooks: Iterable[str] = (),
        playlist_ids: Iterable[Any] = (),
        playlist_mode: str = "selected",
    ) -> SelectionState:
        """Persist a new selection and regenerate playlists and the sync script.

        Raises ValueError for an invalid mode and SaveError when the selection
        file cannot be written.
        """
        run_id = bind_run()
        ids = [str(i) for i in playlist_ids]
        if playlist_mode == "all":
            try:
                with self.open_source() as source:
                    ids = PlaylistBuilder(self.settings, source).resolve_ids("all", ids)
            except PlaylistSourceUnavailable as e:
                logger.warning(f"Cannot resolve all playlists: {e}")
                ids = []

        state = SelectionState.build(music_mode, music_albums, audiobooks_mode, audiobooks, ids)
        try:
            self.store.write(state)
        except OSError as e:
            raise SaveError(f"Could not save selection: {e}") from e
        logger.info(f"Selection saved (run {run_id})")
        return state

    def regenerate_playlists(self, playlist_ids: Optional[Iterable[str]] = None) -> List[Path]:
        ids = self.store.read().playlists.ids if playlist_ids is None else list(playlist_ids)
        with self.open_source() as source:
            return PlaylistBuilder(self.settings, source).generate(ids)

    def _regenerate(self, state: SelectionState) -> None:
        try:
            self.regenerate_playlists(state.playlists.ids)
        except Exception as e:
            logger.error(f"Failed to generate playlists: {e}")
        try:
            self.script.generate()
        except OSError as e:
            logger.warning(f"Failed to process dap_sync template: {e}")
