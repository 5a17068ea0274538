#!/usr/bin/env python3
"""Main entry point for Livestream Notifier."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime

from .__version__ import __version__
from .core.models import Platform
from .core.monitor import LiveMonitor
from .core.settings import Settings
from .core.store import KEY_STATE, HandleMap, JsonStore
from .notifications.desktop import DesktopNotificationHost
from .notifications.notifier import Notifier

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_monitor(store: JsonStore) -> LiveMonitor:
    """Wire the desktop host, notifier and monitor together."""
    host = DesktopNotificationHost()
    notifier = Notifier(host, HandleMap(store))
    host.on_clicked = notifier.on_clicked
    host.on_dismissed = notifier.on_dismissed
    return LiveMonitor(store, notifier)


async def _run_service(store: JsonStore) -> int:
    monitor = build_monitor(store)
    # Seed defaults on first run
    Settings.load(store).save(store)
    try:
        await monitor.start()
        response = await monitor.poll_now()
        if not response["ok"]:
            logger.error(f"Initial poll failed: {response['error']}")
        await asyncio.Event().wait()
    finally:
        await monitor.stop()
    return 0


async def _poll_once(store: JsonStore) -> int:
    monitor = build_monitor(store)
    try:
        response = await monitor.poll_now()
    finally:
        await monitor.stop()
    print(json.dumps(response, ensure_ascii=False))
    return 0 if response["ok"] else 1


async def _test_notification(store: JsonStore) -> int:
    monitor = build_monitor(store)
    try:
        ok = await monitor.notifier.send_test_notification()
    finally:
        await monitor.stop()
    print("Test notification sent" if ok else "Test notification failed")
    return 0 if ok else 1


def _format_time(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _list_channels(store: JsonStore) -> int:
    items = store.load_watchlist()
    if not items:
        print("No channels on the watchlist")
        return 0
    state = store.get(KEY_STATE, {})
    if not isinstance(state, dict):
        state = {}
    for item in items:
        entry = state.get(item.key) or {}
        live = "LIVE" if entry.get("lastIsLive") is True else "OFF"
        title = entry.get("lastTitle") or ""
        updated = _format_time(entry.get("updatedAt") or 0)
        print(f"{live:4}  {item.key:40}  {item.display_label:20}  {updated}  {title}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livestream-notifier",
        description="Desktop notifications when CHZZK and SOOP channels go live.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Poll on a timer and show notifications (default)")
    sub.add_parser("poll", help="Run one poll cycle now and print the result")
    sub.add_parser("list", help="Show the watchlist with the last known status")
    sub.add_parser("test-notification", help="Show a test notification")

    add = sub.add_parser("add", help="Add a channel by id or URL")
    add.add_argument("platform", choices=[p.value for p in Platform])
    add.add_argument("channel", help="Channel id or channel URL")
    add.add_argument("--name", default=None, help="Display name")

    remove = sub.add_parser("remove", help="Remove a channel by key (platform:id)")
    remove.add_argument("key")

    settings = sub.add_parser("settings", help="Show or change settings")
    settings.add_argument("--poll-interval", type=str, dest="pollIntervalMin")
    settings.add_argument("--cooldown", type=str, dest="cooldownMin")
    settings.add_argument("--request-timeout", type=str, dest="requestTimeoutMs")
    settings.add_argument("--concurrency", type=str, dest="concurrency")
    settings.add_argument("--notify-if-already-live", type=str, dest="notifyIfAlreadyLive")
    settings.add_argument(
        "--notify-on-signature-change", type=str, dest="notifyOnSignatureChange"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)
    setup_logging(args.debug)
    store = JsonStore()
    command = args.command or "run"

    try:
        if command == "run":
            return asyncio.run(_run_service(store))
        if command == "poll":
            return asyncio.run(_poll_once(store))
        if command == "test-notification":
            return asyncio.run(_test_notification(store))
        if command == "list":
            return _list_channels(store)
        if command == "add":
            item = store.add_watch_item(args.platform, args.channel, args.name)
            print(f"Added {item.key}" if item else "Already on the watchlist")
            return 0
        if command == "remove":
            removed = store.remove_watch_item(args.key)
            print(f"Removed {args.key}" if removed else f"{args.key} is not on the watchlist")
            return 0 if removed else 1
        if command == "settings":
            patch = {
                name: value
                for name, value in vars(args).items()
                if name not in ("command", "debug") and value is not None
            }
            current = Settings.update(store, patch) if patch else Settings.load(store)
            print(json.dumps(current.to_dict(), indent=2))
            return 0
    except KeyboardInterrupt:
        return 0
    except ValueError as e:
        logger.error(str(e))
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
