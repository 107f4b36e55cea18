"""Library catalog scanner for the music and audiobooks trees.

Scans are read-only and recomputed on every request. Missing roots give an
empty catalog; entries that cannot be read are recorded in `ScanResult.skipped`
and contribute nothing, so a partial result is returned instead of an error.
"""
from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Dict, Generic, List, Optional, Tuple, TypeVar


UNKNOWN_ARTIST = "Unknown Artist"
FLAT_ALBUM_SEPARATOR = " - "

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

T = TypeVar("T")


@dataclass(frozen=True)
class MediaItem:
    """One selectable album or audiobook.

    `relative_path` is relative to its source root, uses '/' separators and is
    the only identifier used for selection membership.
    """

    name: str
    relative_path: str
    size_bytes: int

    @property
    def size_formatted(self) -> str:
        return format_size(self.size_bytes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "path": self.relative_path,
            "size": self.size_bytes,
            "size_formatted": self.size_formatted,
        }


@dataclass(frozen=True)
class SkippedEntry:
    path: Path
    reason: str


@dataclass
class ScanResult(Generic[T]):
    catalog: T
    skipped: List[SkippedEntry] = field(default_factory=list)


ArtistCatalog = Dict[str, List[MediaItem]]
AudiobookCatalog = List[MediaItem]


def format_size(num_bytes: int) -> str:
    """Human readable size, base 1024, rounded half up to 2 decimals ("0 B" for zero)."""
    if num_bytes <= 0:
        return "0 B"
    exp = 0
    while exp < len(SIZE_UNITS) - 1 and num_bytes >= 1024 ** (exp + 1):
        exp += 1
    value = Decimal(num_bytes / (1024.0 ** exp)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{float(value)} {SIZE_UNITS[exp]}"


def directory_size(path: Path, skipped: Optional[List[SkippedEntry]] = None) -> int:
    """Recursive sum of regular file sizes under `path`.

    Unreadable directories and files count as 0 and are appended to `skipped`.
    """
    if skipped is None:
        skipped = []
    if not path.is_dir():
        return 0

    def _on_error(err: OSError) -> None:
        skipped.append(SkippedEntry(Path(err.filename or path), err.strerror or str(err)))

    total = 0
    for dirpath, _, filenames in os.walk(path, onerror=_on_error):
        for fn in filenames:
            full = Path(dirpath) / fn
            try:
                st = full.stat()
            except OSError as e:
                skipped.append(SkippedEntry(full, e.strerror or str(e)))
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def _sorted_entries(root: Path, skipped: List[SkippedEntry]) -> List[str]:
    try:
        return sorted(os.listdir(root))
    except OSError as e:
        skipped.append(SkippedEntry(root, e.strerror or str(e)))
        return []


def _is_dir(path: Path, skipped: List[SkippedEntry]) -> bool:
    try:
        return path.is_dir()
    except OSError as e:
        skipped.append(SkippedEntry(path, e.strerror or str(e)))
        return False


def split_flat_album(entry_name: str) -> Tuple[str, str]:
    """Split "Artist - Album" on the first separator; otherwise Unknown Artist."""
    if FLAT_ALBUM_SEPARATOR in entry_name:
        artist, album = entry_name.split(FLAT_ALBUM_SEPARATOR, 1)
        return artist.strip(), album.strip()
    return UNKNOWN_ARTIST, entry_name


def scan_albums(music_root: Path) -> ScanResult[ArtistCatalog]:
    """Group albums by artist.

    A top-level directory holding subdirectories is an artist and each
    subdirectory an album (`artist/album`). A top-level directory without
    subdirectories is a flat album whose path stays the entry name.
    """
    skipped: List[SkippedEntry] = []
    grouped: ArtistCatalog = {}
    if not _is_dir(music_root, skipped):
        return ScanResult(grouped, skipped)

    for entry in _sorted_entries(music_root, skipped):
        entry_path = music_root / entry
        if not _is_dir(entry_path, skipped):
            continue

        children = _sorted_entries(entry_path, skipped)
        subdirs = [c for c in children if _is_dir(entry_path / c, skipped)]
        if subdirs:
            albums = grouped.setdefault(entry, [])
            for album in subdirs:
                size = directory_size(entry_path / album, skipped)
                albums.append(MediaItem(name=album, relative_path=f"{entry}/{album}", size_bytes=size))
        else:
            artist, album_name = split_flat_album(entry)
            size = directory_size(entry_path, skipped)
            grouped.setdefault(artist, []).append(
                MediaItem(name=album_name, relative_path=entry, size_bytes=size)
            )
    return ScanResult(grouped, skipped)


def scan_audiobooks(audiobooks_root: Path) -> ScanResult[AudiobookCatalog]:
    """One item per top-level file or directory under `audiobooks_root`."""
    skipped: List[SkippedEntry] = []
    items: AudiobookCatalog = []
    if not _is_dir(audiobooks_root, skipped):
        return ScanResult(items, skipped)

    for entry in _sorted_entries(audiobooks_root, skipped):
        entry_path = audiobooks_root / entry
        try:
            st = entry_path.stat()
        except OSError as e:
            skipped.append(SkippedEntry(entry_path, e.strerror or str(e)))
            continue
        if stat.S_ISDIR(st.st_mode):
            size = directory_size(entry_path, skipped)
        elif stat.S_ISREG(st.st_mode):
            size = st.st_size
        else:
            continue
        items.append(MediaItem(name=entry, relative_path=entry, size_bytes=size))
    return ScanResult(items, skipped)


def flatten_album_paths(grouped: ArtistCatalog) -> List[str]:
    """All album relative paths in catalog order."""
    return [item.relative_path for albums in grouped.values() for item in albums]


def total_size(items: List[MediaItem]) -> int:
    return sum(item.size_bytes for item in items)
