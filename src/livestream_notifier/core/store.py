"""JSON document store backing all persisted state."""

import asyncio
import fcntl
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .models import WatchItem
from .settings import get_data_dir

logger = logging.getLogger(__name__)

STORE_FILENAME = "store.json"
LOCK_SUFFIX = ".lock"

# Top-level document keys
KEY_WATCHLIST = "watchlist"
KEY_SETTINGS = "settings"
KEY_STATE = "state"  # key -> ChannelState
KEY_NOTIFIED = "notified"  # key -> NotificationRecord
KEY_AVATAR_CACHE = "avatarCache"  # key -> AvatarCacheEntry
KEY_NOTIF_MAP = "notifMap"  # handle -> {"url": ...}


class JsonStore:
    """Key-value document store persisted as a single JSON file.

    Every read parses the file afresh, so callers may mutate what they get.
    Writes replace whole top-level keys and hit disk atomically.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path if path is not None else get_data_dir() / STORE_FILENAME
        self._lock = threading.Lock()

    @property
    def lock_path(self) -> Path:
        """File the poll cycle lock is taken on."""
        return self.path.with_name(self.path.name + LOCK_SUFFIX)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring store {self.path}: top level is not an object")
            return {}
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix="store_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            data = self._read()
        return data.get(key, default)

    def get_many(self, *keys: str) -> dict[str, Any]:
        with self._lock:
            data = self._read()
        return {key: data[key] for key in keys if key in data}

    def set(self, **values: Any) -> None:
        """Replace the given top-level keys in one atomic write."""
        with self._lock:
            data = self._read()
            data.update(values)
            self._write(data)

    # --- watchlist ---

    def load_watchlist(self) -> list[WatchItem]:
        raw = self.get(KEY_WATCHLIST, [])
        if not isinstance(raw, list):
            return []
        items = []
        for entry in raw:
            item = WatchItem.from_dict(entry)
            if item is None:
                logger.warning(f"Skipping malformed watchlist entry: {entry!r}")
                continue
            items.append(item)
        return items

    def save_watchlist(self, items: list[WatchItem]) -> None:
        self.set(**{KEY_WATCHLIST: [item.to_dict() for item in items]})

    def add_watch_item(
        self, platform: str, raw: str, display_name: str | None = None
    ) -> WatchItem | None:
        """Add a channel by id or URL. Returns None if it is already watched."""
        external_id = parse_channel_id(platform, raw)
        if not external_id:
            raise ValueError(f"No channel id in {raw!r}")
        item = WatchItem(platform=platform, external_id=external_id, display_name=display_name)
        items = self.load_watchlist()
        if any(existing.key == item.key for existing in items):
            return None
        items.append(item)
        self.save_watchlist(items)
        logger.info(f"Added {item.key} to watchlist")
        return item

    def remove_watch_item(self, key: str) -> bool:
        items = self.load_watchlist()
        remaining = [item for item in items if item.key != key]
        if len(remaining) == len(items):
            return False
        self.save_watchlist(remaining)
        logger.info(f"Removed {key} from watchlist")
        return True


def parse_channel_id(platform: str, raw: str) -> str:
    """Extract a channel id from a raw id or a channel URL."""
    text = (raw or "").strip()
    if not text:
        return ""
    if "://" not in text:
        return text

    parsed = urlparse(text)
    host = parsed.hostname or ""
    parts = [p for p in parsed.path.split("/") if p]
    if platform == "chzzk":
        if len(parts) >= 2 and parts[0] == "live":
            return parts[1]
        if parts:
            return parts[0]
    elif platform == "soop":
        if host.startswith("play.sooplive.co.kr") and parts:
            return parts[0]
        if host.endswith("sooplive.co.kr") and len(parts) >= 2 and parts[0] == "station":
            return parts[1]
        if parts:
            return parts[0]
    return text


class HandleMap:
    """Notification handle -> target URL map.

    Touched from the poll path and from click/dismiss callbacks at arbitrary
    times, so every read-modify-write goes through one lock.
    """

    def __init__(self, store: JsonStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, dict]:
        raw = self._store.get(KEY_NOTIF_MAP, {})
        return raw if isinstance(raw, dict) else {}

    async def put(self, handle: str, url: str) -> None:
        async with self._lock:
            entries = self._load()
            entries[handle] = {"url": url}
            self._store.set(**{KEY_NOTIF_MAP: entries})

    async def pop(self, handle: str) -> str | None:
        """Remove a handle and return its target URL, if any."""
        async with self._lock:
            entries = self._load()
            entry = entries.pop(handle, None)
            if entry is None:
                return None
            self._store.set(**{KEY_NOTIF_MAP: entries})
        if isinstance(entry, dict) and isinstance(entry.get("url"), str):
            return entry["url"]
        return None

    async def clear(self) -> int:
        """Forget every handle. Returns how many were dropped."""
        async with self._lock:
            entries = self._load()
            if entries:
                self._store.set(**{KEY_NOTIF_MAP: {}})
        return len(entries)


class CycleLock:
    """Exclusive flock on a file beside the store, held for a whole poll cycle.

    Keeps the `run` service and a one-off `poll` from another process from
    running cycles over the same state at once. The lock is tried without
    blocking and retried on a short sleep, so the event loop keeps running
    while another process holds it.
    """

    RETRY_S = 0.05

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    async def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            waited = False
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if not waited:
                        logger.info("Another poll cycle is running, waiting for it")
                        waited = True
                    await asyncio.sleep(self.RETRY_S)
        except BaseException:
            os.close(fd)
            raise
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("utf-8"))
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    async def __aenter__(self) -> "CycleLock":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()
