"""SOOP (formerly AfreecaTV) API client."""

import html
import logging
import re
from typing import Any
from urllib.parse import quote

from ..core.errors import MalformedResponse
from ..core.models import SIG_OFF, Platform, StatusFragment
from .base import USER_AGENT, BaseApiClient

logger = logging.getLogger(__name__)

LIVE_RESULT = 1

# <meta property="og:image" content="..."> in either attribute order
_OG_IMAGE_PATTERNS = (
    re.compile(
        r"""<meta[^>]+property=["']og:image["'][^>]*content=["']([^"']+)["']""",
        re.IGNORECASE,
    ),
    re.compile(
        r"""<meta[^>]+content=["']([^"']+)["'][^>]*property=["']og:image["']""",
        re.IGNORECASE,
    ),
)


def _field(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return ""


def _result_code(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_soop_status(data: dict, streamer_id: str) -> StatusFragment:
    """Build a status from a player_live_api response."""
    channel = data.get("CHANNEL")
    if channel is None:
        channel = {}
    elif not isinstance(channel, dict):
        raise MalformedResponse(f"SOOP: 'CHANNEL' is {type(channel).__name__}, not an object")

    is_live = _result_code(channel.get("RESULT")) == LIVE_RESULT
    title = _field(channel.get("TITLE"))
    broadcast_no = _field(channel.get("BNO")) or _field(channel.get("PBNO"))
    return StatusFragment(
        is_live=is_live,
        title=title,
        signature=f"LIVE:{broadcast_no or title}" if is_live else SIG_OFF,
        url=f"https://play.sooplive.co.kr/{streamer_id}",
    )


def parse_og_image(page: str) -> str | None:
    """Pull the og:image URL out of a page.

    Entities in the attribute are decoded and protocol-relative URLs upgraded.
    """
    for pattern in _OG_IMAGE_PATTERNS:
        match = pattern.search(page)
        if match:
            url = html.unescape(match.group(1)).strip()
            if url.startswith("//"):
                url = "https:" + url
            return url or None
    return None


class SoopApiClient(BaseApiClient):
    """Client for the SOOP player API (no auth required)."""

    LIVE_API_URL = "https://live.sooplive.co.kr/afreeca/player_live_api.php?bjid={streamer_id}"
    STATION_URL = "https://www.sooplive.co.kr/station/{streamer_id}"

    @property
    def platform(self) -> Platform:
        return Platform.SOOP

    @property
    def name(self) -> str:
        return "SOOP"

    @staticmethod
    def _live_form(streamer_id: str) -> dict[str, str]:
        """Form body the player API expects; every field is required."""
        return {
            "bid": streamer_id,
            "type": "live",
            "pwd": "",
            "player_type": "html5",
            "stream_type": "common",
            "quality": "HD",
            "mode": "landing",
            "from_api": "0",
            "is_revive": "false",
        }

    async def resolve_status(self, external_id: str) -> StatusFragment:
        url = self.LIVE_API_URL.format(streamer_id=quote(external_id, safe=""))
        data = await self._fetch_json("POST", url, data=self._live_form(external_id))
        return parse_soop_status(data, external_id)

    async def resolve_avatar_url(self, external_id: str) -> str | None:
        page = await self._fetch_text(
            self.STATION_URL.format(streamer_id=quote(external_id, safe=""))
        )
        url = parse_og_image(page)
        if url is None:
            logger.debug(f"SOOP: no og:image on station page for {external_id}")
        return url

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json, text/html;q=0.9",
            "User-Agent": USER_AGENT,
        }
