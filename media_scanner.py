"""CLI entry-point that runs the media scanner and its HTTP API."""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from typing import Any, Dict, Optional, Sequence

import uvicorn

from api import __version__ as API_VERSION
from api.server import create_app
from core.logging_utils import configure_json_logging, level_from_name
from core.paths import ensure_working_dir_structure, get_catalog_db_path, resolve_working_dir
from core.settings import load_settings
from scanner.config import ScannerSettings
from scanner.engine import ReconcileEngine
from scanner.probe import MediaProber
from scanner.store import MediaStore
from scanner.sweep import SweepScanner
from scanner.watch import MediaWatcher

LOGGER = logging.getLogger("mediascanner.main")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch a media folder and serve CasparCG-style media records.")
    parser.add_argument("--media", default=None, help="Media root (default from settings.json)")
    parser.add_argument("--host", default=None, help="Bind host (default from settings.json)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default from settings.json)")
    parser.add_argument("--no-api", dest="no_api", action="store_true", help="Do not start the HTTP API.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Index the media root, sweep stale entries and exit once the queue drains.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None, help="Logging level override")
    return parser.parse_args(argv)


def _api_bind(settings: Dict[str, Any], args: argparse.Namespace) -> tuple[str, int]:
    api_settings = settings.get("api") if isinstance(settings.get("api"), dict) else {}
    host = str(args.host or api_settings.get("host") or DEFAULT_HOST).strip() or DEFAULT_HOST
    port = args.port or api_settings.get("port") or DEFAULT_PORT
    try:
        port = int(port)
    except (TypeError, ValueError):
        port = DEFAULT_PORT
    return host, port


def _api_enabled(settings: Dict[str, Any], args: argparse.Namespace) -> bool:
    if args.no_api:
        return False
    api_settings = settings.get("api") if isinstance(settings.get("api"), dict) else {}
    return bool(api_settings.get("enable", True))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    working_dir = resolve_working_dir()
    ensure_working_dir_structure(working_dir)
    settings = load_settings(working_dir)
    if args.media:
        settings.setdefault("paths", {})["media"] = args.media

    logging_settings = settings.get("logging") if isinstance(settings.get("logging"), dict) else {}
    level = level_from_name(args.log_level or logging_settings.get("level"))
    configure_json_logging(working_dir, level=level, console=True)

    scanner_settings = ScannerSettings.from_mapping(settings, base_dir=working_dir)
    LOGGER.info(
        "Media root %s (scan roots: %s)",
        scanner_settings.media_root,
        ", ".join(str(root) for root in scanner_settings.scan_roots),
    )

    store = MediaStore(get_catalog_db_path(working_dir))
    engine = ReconcileEngine(
        store,
        MediaProber.from_settings(scanner_settings),
        media_root=scanner_settings.media_root,
        metadata=scanner_settings.metadata,
    )
    sweep = SweepScanner(
        store,
        scan_roots=scanner_settings.scan_roots,
        page_size=scanner_settings.sweep_page_size,
        interval_s=scanner_settings.sweep_interval_s,
    )
    watcher = MediaWatcher(
        scanner_settings.scan_roots,
        engine.submit,
        stability_threshold_s=scanner_settings.stability_threshold_s,
        poll_interval_s=scanner_settings.poll_interval_s,
        ignore=scanner_settings.ignore,
    )

    engine.start()
    try:
        if args.once:
            sweep.run()
            watcher.initial_scan()
            engine.join()
            stats = engine.stats
            LOGGER.info(
                "Done: scanned=%d skipped=%d removed=%d conflicts=%d errors=%d",
                stats.scanned,
                stats.skipped,
                stats.removed,
                stats.conflicts,
                stats.errors,
            )
            return 0

        sweep.start_periodic()
        watcher.start()
        if _api_enabled(settings, args):
            host, port = _api_bind(settings, args)
            app = create_app(store, engine, version=API_VERSION)
            LOGGER.info("API listening on http://%s:%d", host, port)
            server = uvicorn.Server(
                uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False)
            )
            server.run()
        else:
            try:
                threading.Event().wait()
            except KeyboardInterrupt:
                pass
        return 0
    finally:
        watcher.stop()
        sweep.stop()
        engine.stop(timeout=10)
        store.close()


if __name__ == "__main__":
    sys.exit(main())
