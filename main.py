from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

# Ensure local src/ is importable when running from project root
ROOT = Path(__file__).parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from dapsync.catalog import format_size, scan_albums, scan_audiobooks  # noqa: E402
from dapsync.config import DapSyncSettings, cli_overrides_from_args  # noqa: E402
from dapsync.logging import configure_logging, log_skipped  # noqa: E402
from dapsync.playlist_source import PlaylistSourceUnavailable  # noqa: E402
from dapsync.service import SaveError, SyncService  # noqa: E402


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SAVE_FAILED = 2
EXIT_UNAVAILABLE = 3


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_serve(cfg: DapSyncSettings) -> int:
    import uvicorn

    from dapsync.server import create_app

    logger.info(f"Serving on {cfg.host}:{cfg.port}")
    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_level=cfg.log_level.lower())
    return EXIT_OK


def cmd_scan(cfg: DapSyncSettings, *, as_json: bool) -> int:
    albums = scan_albums(Path(cfg.music_source))
    audiobooks = scan_audiobooks(Path(cfg.audiobooks_source))
    skipped = log_skipped("music", albums.skipped) + log_skipped("audiobooks", audiobooks.skipped)

    if as_json:
        _print_json({
            "albums_by_artist": {a: [i.to_dict() for i in items] for a, items in albums.catalog.items()},
            "audiobooks": [i.to_dict() for i in audiobooks.catalog],
            "skipped": [{"path": str(s.path), "reason": s.reason} for s in albums.skipped + audiobooks.skipped],
        })
        return EXIT_OK

    for artist, items in albums.catalog.items():
        print(artist)
        for item in items:
            print(f"  {item.relative_path}  ({item.size_formatted})")
    if audiobooks.catalog:
        print("Audiobooks")
        for item in audiobooks.catalog:
            print(f"  {item.relative_path}  ({item.size_formatted})")
    music_total = sum(i.size_bytes for items in albums.catalog.values() for i in items)
    books_total = sum(i.size_bytes for i in audiobooks.catalog)
    logger.info(f"Music: {format_size(music_total)}, audiobooks: {format_size(books_total)}, "
                f"device: {format_size(cfg.device_size_bytes)}")
    if skipped:
        logger.warning(f"{skipped} entries could not be read")
    return EXIT_OK


def cmd_show_selection(service: SyncService) -> int:
    _print_json(service.selection_payload())
    return EXIT_OK


def cmd_save_selection(service: SyncService, args: argparse.Namespace) -> int:
    try:
        service.save_selection(
            music_mode="selected" if args.albums else "all",
            music_albums=args.albums or [],
            audiobooks_mode="selected" if args.audiobooks else "all",
            audiobooks=args.audiobooks or [],
            playlist_ids=args.playlist_ids or [],
            playlist_mode="all" if args.all_playlists else "selected",
        )
    except SaveError as e:
        logger.error(str(e))
        return EXIT_SAVE_FAILED
    logger.info(f"Selection written to {service.settings.selection_path}")
    return EXIT_OK


def cmd_generate_playlists(service: SyncService) -> int:
    if not service.playlists_available():
        logger.error("No playlist source configured")
        return EXIT_UNAVAILABLE
    written = service.regenerate_playlists()
    logger.info(f"Wrote {len(written)} playlist file(s) to {service.settings.playlists_dir}")
    return EXIT_OK


def cmd_generate_script(service: SyncService) -> int:
    try:
        out = service.script.generate()
    except OSError as e:
        logger.error(f"Failed to generate sync script: {e}")
        return EXIT_FAILED
    logger.info(f"Sync script written to {out}")
    return EXIT_OK


def cmd_list_playlists(service: SyncService) -> int:
    try:
        _print_json(service.playlists_payload())
    except PlaylistSourceUnavailable as e:
        logger.error(str(e))
        return EXIT_UNAVAILABLE
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="dapsync", description="Choose what to sync onto a portable audio player")
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/dapsync/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write the effective config to --config (or the default path) and exit",
    )
    p.add_argument("--log-level", default=None, help="Console log level (e.g. INFO, DEBUG)")
    p.add_argument("--log-json", default=None, help="Write structured JSON log lines to this file")
    p.add_argument("--music-source", default=None, help="Music library root as seen by this tool")
    p.add_argument("--audiobooks-source", default=None, help="Audiobooks root as seen by this tool")
    p.add_argument("--data-dir", default=None, help="Directory for the selection file, playlists and script")
    p.add_argument("--device-size-gb", type=int, default=None, help="Device capacity in GB")

    sub = p.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind address")
    p_serve.add_argument("--port", type=int, default=None, help="Port")

    p_scan = sub.add_parser("scan", help="Scan the music and audiobooks trees")
    p_scan.add_argument("--json", dest="as_json", action="store_true", help="Print the catalog as JSON")

    sub.add_parser("show-selection", help="Print the stored selection as JSON")

    p_save = sub.add_parser(
        "save-selection",
        help="Replace the stored selection; sections without entries are saved as 'all'",
    )
    p_save.add_argument("--album", dest="albums", action="append", help="Album path relative to the music root (repeatable)")
    p_save.add_argument("--audiobook", dest="audiobooks", action="append", help="Audiobook path relative to its root (repeatable)")
    p_save.add_argument("--playlist-id", dest="playlist_ids", action="append", help="Playlist id (repeatable)")
    p_save.add_argument("--all-playlists", action="store_true", help="Select every playlist the media server knows")

    sub.add_parser("list-playlists", help="List playlists from the configured playlist source")
    sub.add_parser("generate-playlists", help="Rewrite playlist files for the stored selection")
    sub.add_parser("generate-script", help="Rewrite the sync script from its template")

    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    config_path = Path(args.config_path).expanduser() if args.config_path else None
    cfg = DapSyncSettings.load(config_path=config_path, overrides=overrides)

    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    if args.cmd == "serve":
        return cmd_serve(cfg)
    if args.cmd == "scan":
        return cmd_scan(cfg, as_json=args.as_json)

    service = SyncService(cfg)
    if args.cmd == "show-selection":
        return cmd_show_selection(service)
    if args.cmd == "save-selection":
        return cmd_save_selection(service, args)
    if args.cmd == "list-playlists":
        return cmd_list_playlists(service)
    if args.cmd == "generate-playlists":
        return cmd_generate_playlists(service)
    if args.cmd == "generate-script":
        return cmd_generate_script(service)
    p.print_help()
    return EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
