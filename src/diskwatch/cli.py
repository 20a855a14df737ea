#!/usr/bin/env python3
"""
CLI for watching a directory tree and reporting its change history.

Usage:
    python -m diskwatch watch /path/to/folder --reset
    python -m diskwatch report --latest
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .config import WatchConfig
from .exceptions import ConfigError, StoreError, StoreUnavailableError
from .fingerprint import LEGACY_ALGORITHMS
from .process import WatchProcess
from .report import format_report


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
EVENT_LOG_FORMAT = "%(asctime)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("diskwatch.cli")


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> Optional[logging.Handler]:
    """Configure console logging and the append-only event log file."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    if log_file is None:
        return None

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(EVENT_LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger("diskwatch.events").addHandler(handler)
    return handler


class GracefulShutdown:
    """Set a stop event on SIGINT/SIGTERM."""

    def __init__(self, stop_event: threading.Event):
        self.stop_event = stop_event
        self._previous = {
            signal.SIGINT: signal.signal(signal.SIGINT, self._handler),
            signal.SIGTERM: signal.signal(signal.SIGTERM, self._handler),
        }

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping after the current cycle...")
        self.stop_event.set()

    def restore(self) -> None:
        """Reinstall the handlers that were active before."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)


def _close_event_log(handler: Optional[logging.Handler]) -> None:
    if handler is not None:
        logging.getLogger("diskwatch.events").removeHandler(handler)
        handler.close()


def _build_config(args, **overrides) -> WatchConfig:
    return WatchConfig.from_env(db_path=args.db, **overrides)


def cmd_watch(args) -> int:
    """Watch a root until interrupted."""
    config = _build_config(
        args,
        root=Path(args.root).resolve(),
        log_file=args.log_file,
        interval=args.interval,
        workers=args.workers,
        read_timeout=args.read_timeout,
        hash_algorithms=LEGACY_ALGORITHMS if args.legacy_hashes else None,
        follow_symlinks=args.follow_symlinks or None,
        ignore_patterns=args.ignore or None,
    )
    try:
        event_handler = setup_logging(config.log_file, args.verbose)
    except OSError as e:
        logger.error(f"Cannot open event log {config.log_file}: {e}")
        return 1

    if not config.root.exists():
        logger.warning(f"Root path does not exist yet: {config.root}")

    stop_event = threading.Event()

    try:
        process = WatchProcess(config=config, stop_event=stop_event)
    except StoreUnavailableError as e:
        logger.error(str(e))
        _close_event_log(event_handler)
        return 1

    shutdown = GracefulShutdown(stop_event)

    try:
        with process:
            logger.info("diskwatch running...")
            logger.info(f"Database: {config.db_path.resolve()}")
            if config.log_file:
                logger.info(f"Event log: {config.log_file.resolve()}")
            logger.info("Press Ctrl+C to stop")
            try:
                process.watch(reset=args.reset, max_cycles=1 if args.once else None)
            except StoreError as e:
                logger.error(f"Watch aborted: {e}")
                return 1
    finally:
        shutdown.restore()
        _close_event_log(event_handler)

    logger.info("diskwatch stopped")
    return 0


def cmd_report(args) -> int:
    """Print the recorded history."""
    config = _build_config(args)
    setup_logging(None, args.verbose)

    if not config.db_path.exists():
        logger.error(f"History database not found: {config.db_path}")
        return 1

    try:
        process = WatchProcess(config=config)
    except StoreUnavailableError as e:
        logger.error(str(e))
        return 1

    with process:
        path = str(Path(args.path).resolve()) if args.path else None
        entries = process.report(latest=args.latest, path=path)

    output = format_report(entries, fmt="json" if args.json else "text")
    if output:
        print(output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diskwatch",
        description="Small tool to watch disk files change.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch a folder, starting from an empty history
  python -m diskwatch watch ./documents --reset

  # Dump every recorded event
  python -m diskwatch report --raw

  # Show the current state of every known path as JSON
  python -m diskwatch report --latest --json
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Watch a directory tree for changes")
    watch_parser.add_argument("root", help="Directory to watch")
    watch_parser.add_argument("--reset", action="store_true", help="Clear all history before the first scan")
    watch_parser.add_argument("--db", default=None, help="History database path (default: diskwatcher.db)")
    watch_parser.add_argument("--log-file", default=None, help="Event log path (default: diskwatcher.log)")
    watch_parser.add_argument("--interval", type=float, default=None, help="Seconds between scans (default: 0.5)")
    watch_parser.add_argument("--workers", type=int, default=None, help="Threads used to fingerprint files")
    watch_parser.add_argument("--read-timeout", type=float, default=None,
                              help="Seconds to wait for one file when using several workers")
    watch_parser.add_argument("--legacy-hashes", action="store_true",
                              help="Fingerprint with MD5 + SHA-1 for compatibility with older databases")
    watch_parser.add_argument("--follow-symlinks", action="store_true", help="Follow symbolic links")
    watch_parser.add_argument("--ignore", nargs="+", default=None, metavar="PATTERN",
                              help="Glob patterns of paths to leave out")
    watch_parser.add_argument("--once", action="store_true", help="Run a single scan and exit")
    watch_parser.set_defaults(func=cmd_watch)

    # Report command
    report_parser = subparsers.add_parser("report", help="Print the recorded history")
    mode = report_parser.add_mutually_exclusive_group()
    mode.add_argument("--raw", action="store_true", help="Every recorded event, oldest first (default)")
    mode.add_argument("--latest", action="store_true", help="Current state of every path, newest first")
    mode.add_argument("--path", default=None, help="Every recorded event for one path")
    report_parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    report_parser.add_argument("--db", default=None, help="History database path (default: diskwatcher.db)")
    report_parser.set_defaults(func=cmd_report)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except ConfigError as e:
        parser.error(str(e))


if __name__ == "__main__":
    sys.exit(main())
