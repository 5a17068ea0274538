"""CHZZK API client."""

import logging
from typing import Any

from ..core.errors import MalformedResponse
from ..core.models import SIG_OFF, Platform, StatusFragment
from .base import BaseApiClient

logger = logging.getLogger(__name__)

OPEN_STATUS = "OPEN"


def _content(data: dict) -> dict:
    content = data.get("content")
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise MalformedResponse(f"CHZZK: 'content' is {type(content).__name__}, not an object")
    return content


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_chzzk_status(data: dict, channel_id: str) -> StatusFragment:
    """Build a status from a live-status response.

    The signature embeds the title, so a mid-broadcast title edit reads as a
    new broadcast to the cooldown gate.
    """
    content = _content(data)
    title = _text(content.get("liveTitle"))
    is_live = _text(content.get("status")).upper() == OPEN_STATUS
    return StatusFragment(
        is_live=is_live,
        title=title,
        signature=f"OPEN:{title}" if is_live else SIG_OFF,
        url=f"https://chzzk.naver.com/live/{channel_id}",
    )


def parse_chzzk_avatar(data: dict) -> str | None:
    return _text(_content(data).get("channelImageUrl")) or None


class ChzzkApiClient(BaseApiClient):
    """Client for the CHZZK polling API (no auth required)."""

    POLLING_URLS = (
        "https://api.chzzk.naver.com/polling/v2/channels/{channel_id}/live-status",
        "https://api.chzzk.naver.com/polling/v1/channels/{channel_id}/live-status",
    )
    CHANNEL_URL = "https://api.chzzk.naver.com/service/v1/channels/{channel_id}"

    @property
    def platform(self) -> Platform:
        return Platform.CHZZK

    @property
    def name(self) -> str:
        return "CHZZK"

    async def _status_from(self, url: str, channel_id: str) -> StatusFragment:
        data = await self._fetch_json("GET", url)
        return parse_chzzk_status(data, channel_id)

    async def resolve_status(self, external_id: str) -> StatusFragment:
        """Get live status, trying the newest polling endpoint first."""
        candidates = [
            lambda url=url: self._status_from(url.format(channel_id=external_id), external_id)
            for url in self.POLLING_URLS
        ]
        return await self._first_success(candidates)

    async def resolve_avatar_url(self, external_id: str) -> str | None:
        data = await self._fetch_json("GET", self.CHANNEL_URL.format(channel_id=external_id))
        return parse_chzzk_avatar(data)
