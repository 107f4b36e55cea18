"""Path translation between the service's view of the library and the host's.

The service sees the library under container roots (e.g. `/music`), the sync
script on the host sees it under host roots (e.g. `/srv/media/Music/`). Both
functions here are pure string logic; nothing touches the filesystem.
"""
from __future__ import annotations

import re


SEP = "/"

# Mount points used before container roots became configurable.
LEGACY_CONTAINER_PREFIXES = ("/music/", "/audiobooks/")

_UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^\w\s\-.]")

PLAYLIST_SUFFIX = ".m3u8"


def _with_trailing_sep(root: str) -> str:
    return root if root.endswith(SEP) else root + SEP


def to_host(path: str, container_root: str, host_root: str) -> str:
    """Translate a library path into an absolute path under `host_root`.

    Accepts catalog-relative paths, container paths and host paths alike:

    - a path already under `host_root` is returned unchanged (idempotent)
    - a `container_root` prefix is stripped, then the legacy `/music/` and
      `/audiobooks/` mounts
    - any other absolute path is assumed to be a host path already
    - everything else is relative to the library root
    """
    host_dir = _with_trailing_sep(host_root)
    if path.startswith(host_dir):
        return path

    container_base = container_root[:-1] if container_root.endswith(SEP) else container_root
    container_prefix = container_base + SEP
    if path.startswith(container_prefix):
        remainder = path[len(container_prefix):]
    else:
        for legacy in LEGACY_CONTAINER_PREFIXES:
            if path.startswith(legacy):
                remainder = path[len(legacy):]
                break
        else:
            if path.startswith(SEP):
                return path
            remainder = path

    if remainder.startswith(SEP):
        remainder = remainder[1:]
    return host_dir + remainder


def to_relative(path: str, host_root: str) -> str:
    """Inverse of `to_host` for entries read back from the selection file.

    Paths outside `host_root` are returned unchanged.
    """
    host_dir = _with_trailing_sep(host_root)
    if path.startswith(host_dir):
        return path[len(host_dir):]
    return path


def sanitize_playlist_filename(name: str, playlist_id: str) -> str:
    """Make a playlist name safe to use as a file name.

    - Replace anything outside letters, digits, whitespace, '-', '_' and '.' with '_'
    - Trim surrounding whitespace
    - Fall back to `playlist_<id>` when nothing is left
    - Ensure the `.m3u8` extension
    """
    safe = _UNSAFE_FILENAME_CHARS_RE.sub("_", name or "").strip()
    if not safe:
        safe = f"playlist_{playlist_id}"
    if not safe.endswith(PLAYLIST_SUFFIX):
        safe += PLAYLIST_SUFFIX
    return safe
