"""Tests for the music/audiobooks catalog scanner."""

import os
from pathlib import Path

import pytest

from conftest import write_file
from dapsync.catalog import (
    UNKNOWN_ARTIST,
    MediaItem,
    directory_size,
    flatten_album_paths,
    format_size,
    scan_albums,
    scan_audiobooks,
    split_flat_album,
)


@pytest.mark.parametrize(
    "num_bytes,expected",
    [
        (0, "0 B"),
        (1, "1.0 B"),
        (512, "512.0 B"),
        (1023, "1023.0 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (1152, "1.13 KB"),
        (1664, "1.63 KB"),
        (1024 * 1024 * 5 + 1024 * 256, "5.25 MB"),
        (1073741824, "1.0 GB"),
        (160 * 1024 ** 3, "160.0 GB"),
        (1234567890, "1.15 GB"),
        (1024 ** 5, "1024.0 TB"),
    ],
)
def test_format_size(num_bytes, expected):
    assert format_size(num_bytes) == expected


def test_artist_album_grouping(tmp_path):
    root = tmp_path / "music"
    write_file(root / "Artist1" / "Album1" / "track.mp3", 100)
    write_file(root / "Artist1" / "Album2" / "track.mp3", 50)

    result = scan_albums(root)

    assert list(result.catalog) == ["Artist1"]
    albums = result.catalog["Artist1"]
    assert [a.relative_path for a in albums] == ["Artist1/Album1", "Artist1/Album2"]
    assert [a.name for a in albums] == ["Album1", "Album2"]
    assert [a.size_bytes for a in albums] == [100, 50]
    assert result.skipped == []


def test_flat_album_keeps_entry_name_as_path(tmp_path):
    root = tmp_path / "music"
    write_file(root / "Beatles - Abbey Road" / "01.flac", 10)

    catalog = scan_albums(root).catalog

    assert catalog == {"Beatles": [MediaItem("Abbey Road", "Beatles - Abbey Road", 10)]}


def test_flat_album_without_separator_is_unknown_artist(tmp_path):
    root = tmp_path / "music"
    write_file(root / "Greatest Hits" / "01.flac", 3)

    catalog = scan_albums(root).catalog

    assert catalog[UNKNOWN_ARTIST][0].relative_path == "Greatest Hits"
    assert catalog[UNKNOWN_ARTIST][0].name == "Greatest Hits"


def test_flat_split_uses_first_separator():
    assert split_flat_album("Artist - Song - Remix") == ("Artist", "Song - Remix")
    assert split_flat_album("  Artist  -  Album ") == ("Artist", "Album")
    assert split_flat_album("NoSeparator-Here") == (UNKNOWN_ARTIST, "NoSeparator-Here")


def test_top_level_files_ignored_and_order_sorted(tmp_path):
    root = tmp_path / "music"
    write_file(root / "stray.mp3", 5)
    write_file(root / "b - Two" / "x.mp3", 1)
    write_file(root / "a - One" / "x.mp3", 1)
    write_file(root / "Zed" / "Z1" / "x.mp3", 1)

    catalog = scan_albums(root).catalog

    assert list(catalog) == ["Zed", "a", "b"]
    assert flatten_album_paths(catalog) == ["Zed/Z1", "a - One", "b - Two"]


def test_flat_and_nested_albums_share_artist(tmp_path):
    root = tmp_path / "music"
    write_file(root / "Beatles" / "Revolver" / "x.mp3", 1)
    write_file(root / "Beatles - Abbey Road" / "x.mp3", 1)

    catalog = scan_albums(root).catalog

    assert [a.relative_path for a in catalog["Beatles"]] == ["Beatles/Revolver", "Beatles - Abbey Road"]


def test_album_size_is_recursive(tmp_path):
    root = tmp_path / "music"
    write_file(root / "A" / "Album" / "CD1" / "1.flac", 100)
    write_file(root / "A" / "Album" / "CD2" / "1.flac", 200)
    write_file(root / "A" / "Album" / "cover.jpg", 7)

    album = scan_albums(root).catalog["A"][0]

    assert album.relative_path == "A/Album"
    assert album.size_bytes == 307


def test_missing_root_is_empty(tmp_path):
    result = scan_albums(tmp_path / "nope")
    assert result.catalog == {}
    assert result.skipped == []

    books = scan_audiobooks(tmp_path / "nope")
    assert books.catalog == []


def test_broken_link_is_skipped_not_fatal(tmp_path):
    root = tmp_path / "music"
    album = root / "A" / "Album"
    write_file(album / "1.flac", 40)
    os.symlink(album / "gone.flac", album / "dangling.flac")

    result = scan_albums(root)

    assert result.catalog["A"][0].size_bytes == 40
    assert [s.path.name for s in result.skipped] == ["dangling.flac"]


def test_directory_size_collects_diagnostics(tmp_path):
    write_file(tmp_path / "d" / "a", 3)
    os.symlink(tmp_path / "missing", tmp_path / "d" / "b")
    skipped = []

    assert directory_size(tmp_path / "d", skipped) == 3
    assert len(skipped) == 1
    assert directory_size(tmp_path / "not-there") == 0


def test_scan_audiobooks_files_and_directories(tmp_path):
    root = tmp_path / "audiobooks"
    write_file(root / "Book2.m4b", 30)
    write_file(root / "Book1" / "part1.mp3", 10)
    write_file(root / "Book1" / "part2.mp3", 15)

    result = scan_audiobooks(root)

    assert [(b.name, b.relative_path, b.size_bytes) for b in result.catalog] == [
        ("Book1", "Book1", 25),
        ("Book2.m4b", "Book2.m4b", 30),
    ]


def test_scan_is_stable_across_runs(tmp_path):
    root = tmp_path / "music"
    write_file(root / "A" / "X" / "1.mp3", 1)
    write_file(root / "B - Y" / "1.mp3", 1)

    assert scan_albums(root).catalog == scan_albums(root).catalog


def test_media_item_to_dict():
    item = MediaItem("Album", "Artist/Album", 1536)
    assert item.to_dict() == {
        "name": "Album",
        "path": "Artist/Album",
        "size": 1536,
        "size_formatted": "1.5 KB",
    }
