"""Settings management for Livestream Notifier."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from appdirs import user_data_dir

if TYPE_CHECKING:
    from .store import JsonStore

logger = logging.getLogger(__name__)

APP_NAME = "livestream-notifier"
APP_AUTHOR = "livestream-notifier"

# (min, max) for every integer setting
INT_BOUNDS: dict[str, tuple[int, int]] = {
    "poll_interval_minutes": (1, 60),
    "cooldown_minutes": (0, 60 * 24),
    "request_timeout_ms": (2000, 30000),
    "concurrency": (1, 16),
    "avatar_timeout_ms": (2000, 30000),
    "avatar_ttl_days": (1, 30),
}

# Stored (camelCase) name for each field
_STORED_NAMES = {
    "poll_interval_minutes": "pollIntervalMin",
    "cooldown_minutes": "cooldownMin",
    "notify_if_already_live": "notifyIfAlreadyLive",
    "request_timeout_ms": "requestTimeoutMs",
    "concurrency": "concurrency",
    "avatar_timeout_ms": "avatarTimeoutMs",
    "avatar_ttl_days": "avatarTtlDays",
    "notify_on_signature_change": "notifyOnSignatureChange",
}


def get_data_dir() -> Path:
    """Get the data directory."""
    path = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def clamp_int(value: Any, min_val: int, max_val: int) -> int:
    """Coerce a value to an int within [min_val, max_val].

    Strings and floats are parsed; anything unparseable becomes min_val.
    """
    if isinstance(value, bool) or value is None:
        return min_val
    try:
        number = int(float(value)) if isinstance(value, (int, float)) else int(float(str(value)))
    except (ValueError, OverflowError):
        return min_val
    return min(max_val, max(min_val, number))


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    if isinstance(value, int):
        return value != 0
    return default


@dataclass
class Settings:
    """Process-wide polling settings."""

    poll_interval_minutes: int = 1
    cooldown_minutes: int = 10  # same-signature renotify cooldown
    notify_if_already_live: bool = False  # notify for channels already live when first seen
    request_timeout_ms: int = 8000

    concurrency: int = 4  # status fetches in flight at once
    avatar_timeout_ms: int = 5000
    avatar_ttl_days: int = 7
    notify_on_signature_change: bool = False  # live -> live with a new signature

    @property
    def cooldown_ms(self) -> int:
        return self.cooldown_minutes * 60 * 1000

    @property
    def avatar_ttl_ms(self) -> int:
        return self.avatar_ttl_days * 24 * 60 * 60 * 1000

    @classmethod
    def from_dict(cls, data: Any) -> Settings:
        """Create Settings from a stored dict, filling in defaults and clamping."""
        return cls.merge(cls(), data)

    @classmethod
    def merge(cls, current: Settings, patch: Any) -> Settings:
        """Merge a patch into current settings and clamp the result.

        This is the only way settings change. Invalid input is coerced, never
        rejected. The patch may use stored (camelCase) or attribute names.
        """
        values = asdict(current)
        if isinstance(patch, dict):
            for attr, stored in _STORED_NAMES.items():
                if stored in patch:
                    values[attr] = patch[stored]
                elif attr in patch:
                    values[attr] = patch[attr]

        defaults = cls()
        for attr, (min_val, max_val) in INT_BOUNDS.items():
            values[attr] = clamp_int(values[attr], min_val, max_val)
        for attr in ("notify_if_already_live", "notify_on_signature_change"):
            values[attr] = _as_bool(values[attr], getattr(defaults, attr))
        return cls(**values)

    def to_dict(self) -> dict:
        return {stored: getattr(self, attr) for attr, stored in _STORED_NAMES.items()}

    @classmethod
    def load(cls, store: JsonStore) -> Settings:
        """Load settings, merged with defaults."""
        return cls.from_dict(store.get("settings"))

    @classmethod
    def update(cls, store: JsonStore, patch: Any) -> Settings:
        """Merge a patch into the stored settings, persist and return them."""
        merged = cls.merge(cls.load(store), patch)
        merged.save(store)
        logger.info(f"Settings updated: {merged.to_dict()}")
        return merged

    def save(self, store: JsonStore) -> None:
        store.set(settings=self.to_dict())
