#!/usr/bin/env python3
#
# bleview - live terminal table of nearby Bluetooth LE devices
#
# Lists every broadcasting device in a navigable table, shows
# advertisement details for the selected one, and lets the operator
# pause and resume scanning without leaving the view.
#

"""Bluetooth LE viewer - browse nearby devices in a terminal table."""

import argparse
import locale
import logging
import os
import queue
import sys
from typing import Optional

_HAS_CURSES = False
try:
    import curses
    _HAS_CURSES = True
except ImportError:
    pass

from bleview.scanner import DeviceScanner
from bleview.state import PauseFlag

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_DEFAULT_POLL_MS = 100
_DEFAULT_REFRESH = 1.0


def configure_logging(log_file: Optional[str], verbose: bool = False):
    """Send log records to *log_file*, or nowhere while curses owns the tty."""
    root = logging.getLogger()
    if log_file:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=_LOG_FORMAT,
            filename=os.path.expanduser(log_file),
            filemode="a",
        )
    else:
        root.addHandler(logging.NullHandler())


def _open_screen():
    screen = curses.initscr()
    curses.noecho()
    curses.cbreak()
    screen.keypad(True)
    try:
        curses.curs_set(0)
    except curses.error:
        # some terminals cannot hide the cursor
        pass
    return screen


def _close_screen(screen):
    screen.keypad(False)
    try:
        curses.curs_set(1)
    except curses.error:
        pass
    curses.nocbreak()
    curses.echo()
    curses.endwin()


def run(args: argparse.Namespace) -> int:
    """Start the scanner, run the viewer, and tear both down."""
    # viewer needs curses, which main() has checked for by now
    from bleview.viewer import run_viewer

    updates: "queue.Queue" = queue.Queue()
    pause = PauseFlag(paused=args.paused)
    scanner = DeviceScanner(
        updates, pause,
        publish_interval=args.refresh,
        active=args.active,
        adapter=args.adapter,
        min_rssi=args.min_rssi,
        name_filter=args.name_filter,
        expire_after=args.expire,
    )
    scanner.start()
    logger.info("Viewer started (poll %d ms, refresh %.1fs)",
                args.poll_interval, args.refresh)

    screen = _open_screen()
    error: Optional[BaseException] = None
    try:
        run_viewer(screen, updates, pause,
                   poll_interval=args.poll_interval / 1000.0)
    except KeyboardInterrupt:
        pass
    except curses.error as e:
        error = e
        logger.exception("Terminal error")
    finally:
        _close_screen(screen)
        scanner.stop()

    if error is not None:
        print(f"Error: terminal failure: {error}", file=sys.stderr)
        return 1
    if scanner.error is not None:
        print(f"Scanner stopped early: {scanner.error}", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bleview",
        description="BLE viewer — live table of nearby Bluetooth LE devices"
    )

    # Viewer
    parser.add_argument(
        "--poll-interval", type=int, default=_DEFAULT_POLL_MS, metavar="MS",
        help=f"Longest wait for a key press per frame (default: {_DEFAULT_POLL_MS})"
    )
    parser.add_argument(
        "--refresh", type=float, default=_DEFAULT_REFRESH, metavar="SECONDS",
        help="Seconds between device list updates (default: 1.0)"
    )
    parser.add_argument(
        "--paused", action="store_true",
        help="Start with scanning paused (press s to start)"
    )

    # Scanning
    parser.add_argument(
        "--active", action="store_true",
        help="Use active scanning — sends SCAN_REQ to get SCAN_RSP with "
             "additional service UUIDs and names (default: passive)"
    )
    parser.add_argument(
        "--adapter", type=str, default=os.environ.get("BLEVIEW_ADAPTER"),
        metavar="NAME",
        help="Bluetooth adapter to scan with (e.g. hci0 — Linux only; "
             "default: $BLEVIEW_ADAPTER)"
    )

    # Filtering
    parser.add_argument(
        "--min-rssi", type=int, default=None, metavar="DBM",
        help="Minimum RSSI threshold (e.g. -70) — ignore weaker signals"
    )
    parser.add_argument(
        "--name-filter", type=str, default=None, metavar="PATTERN",
        help="Filter devices by name (case-insensitive substring match)"
    )
    parser.add_argument(
        "--expire", type=float, default=None, metavar="SECONDS",
        help="Drop devices that have not been heard for this long"
    )

    # Logging
    parser.add_argument(
        "--log", type=str, default=None, metavar="FILE",
        help="Write log messages to FILE (the screen is reserved for the table)"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Verbose logging — include debug messages in the log file"
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    if not _HAS_CURSES:
        parser.error("bleview requires the 'curses' module "
                     "(install 'windows-curses' on Windows)")

    if args.poll_interval < 1:
        parser.error("--poll-interval must be at least 1 ms")

    if args.refresh <= 0:
        parser.error("--refresh must be greater than 0")

    if args.expire is not None and args.expire <= 0:
        parser.error("--expire must be greater than 0")

    if args.verbose and not args.log:
        parser.error("--verbose requires --log FILE")

    if args.adapter is not None and not args.adapter.strip():
        parser.error("--adapter requires an adapter name")

    configure_logging(args.log, verbose=args.verbose)
    locale.setlocale(locale.LC_ALL, "")

    sys.exit(run(args))


if __name__ == "__main__":
    main()
