"""Selection state and the persisted selection file.

The selection file has gone through several incompatible layouts. Every one of
them is still readable; only the current flag format is ever written:

    ALL_MUSIC=true            | MUSIC_ALBUM=<host path>   (repeatable)
    ALL_AUDIOBOOKS=true       | AUDIOBOOKS=<host path>    (repeatable)
    PLAYLIST_ID=<id>                                      (repeatable)

Reading runs an ordered chain of parsers (flag format, mode-keyed legacy
format, legacy JSON, plain album list); each returns None when the content is
not its format, and the first match wins. Anything that goes wrong while
reading yields the default state.
"""
from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Sequence

from loguru import logger

from .config import DapSyncSettings
from .logging import log_event, truncate
from .paths import to_host, to_relative


Mode = Literal["all", "selected"]
MODES = ("all", "selected")

ALL_MUSIC = "ALL_MUSIC=true"
ALL_AUDIOBOOKS = "ALL_AUDIOBOOKS=true"
MUSIC_ALBUM = "MUSIC_ALBUM="
AUDIOBOOKS = "AUDIOBOOKS="
PLAYLIST_ID = "PLAYLIST_ID="
MUSIC_MODE = "MUSIC_MODE="
AUDIOBOOKS_MODE = "AUDIOBOOKS_MODE="

FLAG_MARKERS = ("ALL_MUSIC=", "ALL_AUDIOBOOKS=", MUSIC_ALBUM, AUDIOBOOKS, PLAYLIST_ID)
MODE_MARKERS = (MUSIC_MODE, AUDIOBOOKS_MODE)


def _check_mode(mode: str) -> None:
    if mode not in MODES:
        raise ValueError(f"Invalid selection mode: {mode!r}")


@dataclass
class MusicSelection:
    mode: Mode = "all"
    albums: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_mode(self.mode)
        if self.mode == "all":
            self.albums = []


@dataclass
class AudiobookSelection:
    mode: Mode = "all"
    items: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_mode(self.mode)
        if self.mode == "all":
            self.items = []


@dataclass
class PlaylistSelection:
    ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.ids = [str(i).strip() for i in self.ids if str(i).strip()]


@dataclass
class SelectionState:
    """Canonical in-memory selection.

    With mode "all" the list of that section is always empty; entries of a
    "selected" section are not re-validated against the catalog.
    """

    music: MusicSelection = field(default_factory=MusicSelection)
    audiobooks: AudiobookSelection = field(default_factory=AudiobookSelection)
    playlists: PlaylistSelection = field(default_factory=PlaylistSelection)

    @classmethod
    def default(cls) -> "SelectionState":
        return cls()

    @classmethod
    def build(
        cls,
        music_mode: str = "all",
        music_albums: Iterable[str] = (),
        audiobooks_mode: str = "all",
        audiobooks: Iterable[str] = (),
        playlist_ids: Iterable[Any] = (),
    ) -> "SelectionState":
        return cls(
            music=MusicSelection(music_mode, [str(a) for a in music_albums]),  # type: ignore[arg-type]
            audiobooks=AudiobookSelection(audiobooks_mode, [str(a) for a in audiobooks]),  # type: ignore[arg-type]
            playlists=PlaylistSelection([str(i) for i in playlist_ids]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "music": {"mode": self.music.mode, "albums": list(self.music.albums)},
            "audiobooks": {"mode": self.audiobooks.mode, "items": list(self.audiobooks.items)},
            "playlists": {"ids": list(self.playlists.ids)},
        }


@dataclass(frozen=True)
class HostRoots:
    """Host roots used to turn stored absolute paths back into catalog paths."""

    music: str
    audiobooks: str

    @classmethod
    def from_settings(cls, settings: DapSyncSettings) -> "HostRoots":
        return cls(music=settings.music_directory, audiobooks=settings.audiobooks_directory)


def _directives(content: str) -> List[str]:
    lines = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def _value(line: str, key: str) -> str:
    return line[len(key):].strip()


# Parser chain. Each parser takes the raw content and returns None when the
# content is not in its format.


def parse_flag_format(content: str, roots: HostRoots) -> Optional[SelectionState]:
    """Current format: ALL_* flags, item lines and PLAYLIST_ID lines.

    An explicit ALL flag wins for its section; item lines otherwise make the
    section "selected". A section with neither is "selected" with no entries,
    since the writer always emits the flag for "all".
    """
    if any(m in content for m in MODE_MARKERS) or not any(m in content for m in FLAG_MARKERS):
        return None

    all_music = all_audiobooks = False
    albums: List[str] = []
    books: List[str] = []
    ids: List[str] = []
    for line in _directives(content):
        if line == ALL_MUSIC:
            all_music = True
        elif line == ALL_AUDIOBOOKS:
            all_audiobooks = True
        elif line.startswith(MUSIC_ALBUM):
            value = _value(line, MUSIC_ALBUM)
            if value:
                albums.append(to_relative(value, roots.music))
        elif line.startswith(AUDIOBOOKS):
            value = _value(line, AUDIOBOOKS)
            if value:
                books.append(to_relative(value, roots.audiobooks))
        elif line.startswith(PLAYLIST_ID):
            ids.append(_value(line, PLAYLIST_ID))

    return SelectionState.build(
        "all" if all_music else "selected",
        albums,
        "all" if all_audiobooks else "selected",
        books,
        ids,
    )


def parse_mode_format(content: str, roots: HostRoots) -> Optional[SelectionState]:
    """Legacy format with explicit MUSIC_MODE= / AUDIOBOOKS_MODE= lines."""
    if not any(m in content for m in MODE_MARKERS):
        return None

    music_mode = audiobooks_mode = "all"
    albums: List[str] = []
    books: List[str] = []
    ids: List[str] = []
    for line in _directives(content):
        if line.startswith(MUSIC_MODE):
            music_mode = _value(line, MUSIC_MODE)
        elif line.startswith(AUDIOBOOKS_MODE):
            audiobooks_mode = _value(line, AUDIOBOOKS_MODE)
        elif line.startswith(MUSIC_ALBUM):
            value = _value(line, MUSIC_ALBUM)
            if value:
                albums.append(to_relative(value, roots.music))
        elif line.startswith(AUDIOBOOKS):
            value = _value(line, AUDIOBOOKS)
            if value:
                books.append(to_relative(value, roots.audiobooks))
        elif line.startswith(PLAYLIST_ID):
            ids.append(_value(line, PLAYLIST_ID))

    return SelectionState.build(music_mode, albums, audiobooks_mode, books, ids)


def parse_json_format(content: str, roots: HostRoots) -> Optional[SelectionState]:
    """Legacy JSON object: music.mode/albums, audiobooks.mode/audiobooks."""
    if not content.startswith("{"):
        return None

    data = json.loads(content)
    music = data.get("music") or {}
    audiobooks = data.get("audiobooks") or {}
    playlists = data.get("playlists") or {}
    ids = playlists.get("ids") or playlists.get("playlist_ids") or []
    return SelectionState.build(
        music.get("mode") or "all",
        [to_relative(str(p), roots.music) for p in music.get("albums") or []],
        audiobooks.get("mode") or "all",
        [to_relative(str(p), roots.audiobooks) for p in audiobooks.get("audiobooks") or []],
        ids,
    )


def parse_plain_list(content: str, roots: HostRoots) -> Optional[SelectionState]:
    """Oldest format: "*" (or nothing) for everything, else one album per line."""
    if content in ("", "*"):
        return SelectionState.default()
    albums = [line.strip() for line in content.splitlines() if line.strip()]
    return SelectionState.build("selected", albums, "all", [])


Parser = Callable[[str, HostRoots], Optional[SelectionState]]

PARSERS: Sequence[Parser] = (
    parse_flag_format,
    parse_mode_format,
    parse_json_format,
    parse_plain_list,
)


def parse_selection(content: str, roots: HostRoots) -> SelectionState:
    """Run the parser chain over `content` and return the first match."""
    content = content.strip()
    for parser in PARSERS:
        state = parser(content, roots)
        if state is not None:
            return state
    return SelectionState.default()


def render_selection(state: SelectionState, settings: DapSyncSettings) -> str:
    """Serialize `state` in the current flag format with host absolute paths."""
    lines: List[str] = []
    if state.music.mode == "all":
        lines.append(ALL_MUSIC)
    else:
        for path in state.music.albums:
            host = to_host(str(path), settings.music_source, settings.music_directory)
            lines.append(f"{MUSIC_ALBUM}{host}")
    if state.audiobooks.mode == "all":
        lines.append(ALL_AUDIOBOOKS)
    else:
        for path in state.audiobooks.items:
            host = to_host(str(path), settings.audiobooks_source, settings.audiobooks_directory)
            lines.append(f"{AUDIOBOOKS}{host}")
    for pid in state.playlists.ids:
        if pid.strip():
            lines.append(f"{PLAYLIST_ID}{pid.strip()}")
    return "\n".join(lines) + "\n"


def _temp_out_path(final_path: Path) -> Path:
    """Return a unique temp file path in the same directory as final_path."""
    suffix = f".part-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    return final_path.with_name(final_path.name + suffix)


def write_atomic(path: Path, content: str, *, mode: Optional[int] = None) -> None:
    """Write `content` to a temp file next to `path` and rename it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    out_tmp = _temp_out_path(path)
    try:
        out_tmp.write_text(content, encoding="utf-8")
        if mode is not None:
            os.chmod(out_tmp, mode)
        os.replace(str(out_tmp), str(path))
    except OSError:
        try:
            if out_tmp.exists():
                out_tmp.unlink()
        except OSError:
            pass
        raise


class SelectionStore:
    """Reads and writes the selection file.

    `after_write` runs once the file is in place (playlist and sync script
    regeneration). Its failures are logged and never undo a successful write.
    """

    def __init__(
        self,
        settings: DapSyncSettings,
        *,
        after_write: Optional[Callable[[SelectionState], None]] = None,
    ):
        self.settings = settings
        self.path = settings.selection_path
        self.roots = HostRoots.from_settings(settings)
        self.after_write = after_write

    def read(self) -> SelectionState:
        if not self.path.exists():
            return SelectionState.default()
        try:
            content = self.path.read_text(encoding="utf-8")
            return parse_selection(content, self.roots)
        except Exception as e:
            logger.warning(f"Unreadable selection file {self.path}, using defaults: {e}")
            try:
                logger.debug(truncate(self.path.read_text(encoding="utf-8", errors="replace")))
            except OSError:
                pass
            return SelectionState.default()

    def write(self, state: SelectionState) -> Path:
        """Replace the selection file with `state`; OSError propagates."""
        content = render_selection(state, self.settings)
        try:
            write_atomic(self.path, content)
        except OSError as e:
            logger.error(f"Error writing sync selection {self.path}: {e}")
            raise
        log_event(
            "selection_written",
            path=str(self.path),
            music_mode=state.music.mode,
            albums=len(state.music.albums),
            audiobooks_mode=state.audiobooks.mode,
            audiobooks=len(state.audiobooks.items),
            playlists=len(state.playlists.ids),
        )
        if self.after_write is not None:
            try:
                self.after_write(state)
            except Exception as e:
                logger.error(f"Post-write regeneration failed: {e}")
        return self.path
