"""Read-only access to the playlists of the media server.

Two backends answer the same three lookups (list playlists, playlist name,
ordered song paths):

- `NavidromePlaylistSource` reads Navidrome's SQLite database directly.
- `SubsonicPlaylistSource` calls the Subsonic REST API.

`open_playlist_source()` picks one from the settings, or raises
`PlaylistSourceUnavailable` so callers can tell "not configured" apart from
"configured but empty".
"""
from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import requests
from loguru import logger

from .config import DapSyncSettings


SUBSONIC_API_VERSION = "1.16.0"
SUBSONIC_CLIENT = "dap-sync"
SUBSONIC_TIMEOUT = (5, 30)


class PlaylistSourceUnavailable(RuntimeError):
    """No playlist source is configured, or the configured one cannot be reached."""


@dataclass(frozen=True)
class PlaylistRef:
    id: str
    name: str
    song_count: int
    duration_seconds: int
    is_public: bool
    owner: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PlaylistSource(Protocol):
    def list_playlists(self) -> List[PlaylistRef]: ...

    def playlist_name(self, playlist_id: str) -> Optional[str]: ...

    def playlist_song_paths(self, playlist_id: str) -> List[str]: ...

    def close(self) -> None: ...


class NavidromePlaylistSource:
    """Playlist lookups against a Navidrome database, opened read-only."""

    def __init__(self, path: Path):
        self.path = path
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._connection is None:
            if not self.path.is_file():
                raise PlaylistSourceUnavailable(f"Navidrome database not found: {self.path}")
            try:
                conn = sqlite3.connect(self.path.resolve().as_uri() + "?mode=ro", uri=True)
            except sqlite3.Error as e:
                raise PlaylistSourceUnavailable(f"Cannot open Navidrome database {self.path}: {e}") from e
            conn.row_factory = sqlite3.Row
            self._connection = conn
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "NavidromePlaylistSource":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def list_playlists(self) -> List[PlaylistRef]:
        try:
            rows = self.conn.execute(
                """
                SELECT p.id, p.name, p.song_count, p.duration, p.public, u.user_name AS owner
                FROM playlist p
                LEFT JOIN "user" u ON u.id = p.owner_id
                ORDER BY p.name COLLATE NOCASE
                """
            ).fetchall()
        except sqlite3.Error as e:
            raise PlaylistSourceUnavailable(f"Navidrome query failed: {e}") from e
        return [
            PlaylistRef(
                id=str(r["id"]),
                name=r["name"] or "",
                song_count=int(r["song_count"] or 0),
                duration_seconds=int(r["duration"] or 0),
                is_public=bool(r["public"]),
                owner=r["owner"],
            )
            for r in rows
        ]

    def playlist_name(self, playlist_id: str) -> Optional[str]:
        row = self.conn.execute("SELECT name FROM playlist WHERE id = ?", (playlist_id,)).fetchone()
        return row["name"] if row else None

    def playlist_song_paths(self, playlist_id: str) -> List[str]:
        rows = self.conn.execute(
            """
            SELECT m.path
            FROM playlist_tracks t
            JOIN media_file m ON m.id = t.media_file_id
            WHERE t.playlist_id = ?
            ORDER BY t.id
            """,
            (playlist_id,),
        ).fetchall()
        return [r["path"] for r in rows if r["path"]]


class SubsonicPlaylistSource:
    """Playlist lookups through the Subsonic REST API (JSON responses)."""

    def __init__(self, url: str, username: str, password: str, *, session: Optional[requests.Session] = None):
        self.base = url.strip().rstrip("/")
        self.username = username.strip()
        self.password = password.strip()
        self.session = session or requests.Session()
        self._names: Dict[str, str] = {}

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "SubsonicPlaylistSource":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _call(self, endpoint: str, **params: Any) -> Dict[str, Any]:
        query = {
            "u": self.username,
            "p": self.password,
            "v": SUBSONIC_API_VERSION,
            "c": SUBSONIC_CLIENT,
            "f": "json",
            **params,
        }
        try:
            res = self.session.get(f"{self.base}/rest/{endpoint}", params=query, timeout=SUBSONIC_TIMEOUT)
            res.raise_for_status()
            data = res.json().get("subsonic-response") or {}
        except (requests.RequestException, ValueError) as e:
            raise PlaylistSourceUnavailable(f"Subsonic {endpoint} failed: {e}") from e
        if data.get("status") != "ok":
            err = (data.get("error") or {}).get("message", "unknown error")
            raise PlaylistSourceUnavailable(f"Subsonic {endpoint} failed: {err}")
        return data

    def list_playlists(self) -> List[PlaylistRef]:
        data = self._call("getPlaylists")
        playlists = (data.get("playlists") or {}).get("playlist") or []
        if isinstance(playlists, dict):
            playlists = [playlists]
        return [
            PlaylistRef(
                id=str(p.get("id")),
                name=p.get("name") or "",
                song_count=int(p.get("songCount") or 0),
                duration_seconds=int(p.get("duration") or 0),
                is_public=bool(p.get("public")),
                owner=p.get("owner"),
            )
            for p in playlists
        ]

    def _playlist(self, playlist_id: str) -> Dict[str, Any]:
        return self._call("getPlaylist", id=playlist_id).get("playlist") or {}

    def playlist_name(self, playlist_id: str) -> Optional[str]:
        if playlist_id not in self._names:
            playlist = self._playlist(playlist_id)
            if playlist.get("name"):
                self._names[playlist_id] = playlist["name"]
        return self._names.get(playlist_id)

    def playlist_song_paths(self, playlist_id: str) -> List[str]:
        playlist = self._playlist(playlist_id)
        if playlist.get("name"):
            self._names[playlist_id] = playlist["name"]
        entries = playlist.get("entry") or []
        if isinstance(entries, dict):
            entries = [entries]
        paths = []
        for entry in entries:
            path = str(entry.get("path") or "").strip()
            if path:
                paths.append(path)
        return paths


def open_playlist_source(settings: DapSyncSettings) -> PlaylistSource:
    """Subsonic when credentials are set, else the Navidrome DB when it exists."""
    if settings.subsonic_configured:
        return SubsonicPlaylistSource(
            settings.subsonic_url or "",
            settings.subsonic_username or "",
            settings.subsonic_password or "",
        )
    db_path = settings.navidrome_db_path
    if db_path.is_file():
        return NavidromePlaylistSource(db_path)
    logger.debug(f"No playlist source: Subsonic not configured and {db_path} missing")
    raise PlaylistSourceUnavailable("No playlist source configured")
