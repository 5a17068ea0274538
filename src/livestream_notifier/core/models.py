"""Core data models for Livestream Notifier."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Sentinel signatures
SIG_OFF = "OFF"
SIG_UNKNOWN = "UNKNOWN"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _as_str(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class Platform(str, Enum):
    """Supported streaming platforms."""

    CHZZK = "chzzk"
    SOOP = "soop"


def default_channel_url(platform: str, external_id: str) -> str:
    """Public live page for a channel."""
    if platform == Platform.CHZZK.value:
        return f"https://chzzk.naver.com/live/{external_id}"
    if platform == Platform.SOOP.value:
        return f"https://play.sooplive.co.kr/{external_id}"
    return ""


@dataclass(frozen=True)
class WatchItem:
    """A channel on the watchlist."""

    platform: str
    external_id: str
    display_name: str | None = None
    added_at: int = field(default_factory=now_ms)

    @property
    def key(self) -> str:
        """Unique identifier for this channel across all platforms."""
        return f"{self.platform}:{self.external_id}"

    @property
    def display_label(self) -> str:
        return self.display_name or self.external_id

    @property
    def default_url(self) -> str:
        return default_channel_url(self.platform, self.external_id)

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "id": self.external_id,
            "name": self.display_name or "",
            "key": self.key,
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WatchItem | None":
        """Build an item from its stored form; None if the entry is unusable."""
        if not isinstance(data, dict):
            return None
        platform = _as_str(data.get("platform"))
        external_id = _as_str(data.get("id"))
        if not platform or not external_id:
            return None
        added_at = _as_int(data.get("addedAt"))
        return cls(
            platform=platform,
            external_id=external_id,
            display_name=_as_str(data.get("name")) or None,
            added_at=added_at if added_at is not None else 0,
        )


@dataclass
class StatusFragment:
    """What a platform adapter reports for one channel."""

    is_live: bool
    title: str = ""
    signature: str = SIG_OFF
    url: str = ""


@dataclass
class ChannelStatus:
    """Normalized status of one channel for a single poll."""

    platform: str
    external_id: str
    key: str
    display_name: str
    is_live: bool
    title: str
    signature: str
    url: str

    @classmethod
    def from_fragment(cls, item: WatchItem, fragment: StatusFragment) -> "ChannelStatus":
        is_live = bool(fragment.is_live)
        return cls(
            platform=item.platform,
            external_id=item.external_id,
            key=item.key,
            display_name=item.display_name or "",
            is_live=is_live,
            title=fragment.title or "",
            signature=fragment.signature or ("LIVE" if is_live else SIG_OFF),
            url=fragment.url or item.default_url,
        )

    @property
    def display_label(self) -> str:
        return self.display_name or self.external_id


@dataclass
class ChannelState:
    """Last known truth about a channel, persisted between polls."""

    last_is_live: bool = False
    last_sig: str = ""
    last_title: str = ""
    updated_at: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict:
        data = {
            "lastIsLive": self.last_is_live,
            "lastSig": self.last_sig,
            "lastTitle": self.last_title,
            "updatedAt": self.updated_at,
        }
        if self.last_error:
            data["lastError"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ChannelState | None":
        if not isinstance(data, dict):
            return None
        return cls(
            last_is_live=data.get("lastIsLive") is True,
            last_sig=_as_str(data.get("lastSig")),
            last_title=_as_str(data.get("lastTitle")),
            updated_at=_as_int(data.get("updatedAt")) or 0,
            last_error=_as_str(data.get("lastError")) or None,
        )


@dataclass
class NotificationRecord:
    """The last notification issued for a channel."""

    last_notified_sig: str
    last_notified_at: int

    def to_dict(self) -> dict:
        return {
            "lastNotifiedSig": self.last_notified_sig,
            "lastNotifiedAt": self.last_notified_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "NotificationRecord | None":
        if not isinstance(data, dict):
            return None
        return cls(
            last_notified_sig=_as_str(data.get("lastNotifiedSig")),
            last_notified_at=_as_int(data.get("lastNotifiedAt")) or 0,
        )


@dataclass
class AvatarCacheEntry:
    """Cached avatar lookups for one channel.

    The remote URL (platform lookup) and the resolved icon (downloaded and
    encoded image) expire independently.
    """

    remote_url: str | None = None
    remote_fetched_at: int | None = None
    resolved_icon: str | None = None
    resolved_fetched_at: int | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.remote_url:
            data["remoteUrl"] = self.remote_url
            data["remoteFetchedAt"] = self.remote_fetched_at
        if self.resolved_icon:
            data["resolvedIcon"] = self.resolved_icon
            data["resolvedFetchedAt"] = self.resolved_fetched_at
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "AvatarCacheEntry":
        if not isinstance(data, dict):
            return cls()
        return cls(
            remote_url=_as_str(data.get("remoteUrl")) or None,
            remote_fetched_at=_as_int(data.get("remoteFetchedAt")),
            resolved_icon=_as_str(data.get("resolvedIcon")) or None,
            resolved_fetched_at=_as_int(data.get("resolvedFetchedAt")),
        )


@dataclass
class PollSummary:
    """Aggregate counts for one poll cycle."""

    checked: int = 0
    live_now: int = 0
    notified_count: int = 0

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "liveNow": self.live_now,
            "notifiedCount": self.notified_count,
        }
