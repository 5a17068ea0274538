"""Channel avatar resolution with a two-tier TTL cache.

Tier one caches the image URL a platform reports for a channel, tier two the
downloaded image encoded as a data URI. Either tier may be missing or stale
independently of the other.
"""

import base64
import logging
from collections.abc import Callable

import aiohttp

from ..api import ClientRegistry
from ..api.base import USER_AGENT, new_session
from .concurrency import with_timeout
from .errors import AvatarRejected, LiveNotifierError, NetworkError
from .models import AvatarCacheEntry, WatchItem, now_ms
from .settings import Settings

logger = logging.getLogger(__name__)

MAX_ICON_BYTES = 512 * 1024
_CHUNK_SIZE = 16 * 1024


def _is_fresh(fetched_at: int | None, now: int, ttl_ms: int) -> bool:
    return fetched_at is not None and now - fetched_at < ttl_ms


def encode_data_uri(content_type: str, body: bytes) -> str:
    mime = content_type.split(";", 1)[0].strip().lower()
    return f"data:{mime};base64,{base64.b64encode(body).decode('ascii')}"


def check_image(content_type: str, declared_length: int | None, max_bytes: int) -> None:
    """Reject responses that are not images or declare an oversized body."""
    if not content_type.lower().startswith("image/"):
        raise AvatarRejected(f"not an image: {content_type or 'no content type'}")
    if declared_length is not None and declared_length > max_bytes:
        raise AvatarRejected(f"image too large: {declared_length} bytes")


class ImageDownloader:
    """Fetches image bytes with a size ceiling."""

    def __init__(self, max_bytes: int = MAX_ICON_BYTES) -> None:
        self.max_bytes = max_bytes
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = new_session()
        return self._session

    async def fetch(self, url: str) -> tuple[str, bytes]:
        """Download an image, returning (content type, body)."""
        try:
            async with self.session.get(
                url, headers={"Accept": "image/*", "User-Agent": USER_AGENT}
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise NetworkError(f"HTTP {resp.status} from {url}", resp.status)
                content_type = resp.headers.get("Content-Type", "")
                check_image(content_type, resp.content_length, self.max_bytes)

                body = bytearray()
                async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise AvatarRejected(f"image larger than {self.max_bytes} bytes")
                return content_type, bytes(body)
        except aiohttp.ClientError as e:
            raise NetworkError(f"{e.__class__.__name__}: {e}") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


class AvatarResolver:
    """Resolves a channel's avatar to a self-contained icon."""

    def __init__(
        self,
        clients: ClientRegistry,
        downloader: ImageDownloader | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.clients = clients
        self.downloader = downloader or ImageDownloader()
        self._clock = clock

    async def resolve_icon(
        self,
        item: WatchItem,
        cache: dict[str, AvatarCacheEntry],
        settings: Settings,
    ) -> str | None:
        """Return a data URI for the channel avatar, or None.

        Never raises: a missing avatar must not stop a notification. The cache
        dict is updated in place with whatever was fetched.
        """
        try:
            return await self._resolve(item, cache, settings)
        except LiveNotifierError as e:
            logger.warning(f"Avatar unavailable for {item.key}: {e}")
        except Exception as e:
            logger.error(f"Unexpected avatar error for {item.key}: {e}")
        return None

    async def _resolve(
        self,
        item: WatchItem,
        cache: dict[str, AvatarCacheEntry],
        settings: Settings,
    ) -> str | None:
        now = self._clock()
        ttl_ms = settings.avatar_ttl_ms
        entry = cache.setdefault(item.key, AvatarCacheEntry())

        if entry.resolved_icon and _is_fresh(entry.resolved_fetched_at, now, ttl_ms):
            return entry.resolved_icon

        if entry.remote_url and _is_fresh(entry.remote_fetched_at, now, ttl_ms):
            remote_url = entry.remote_url
        else:
            client = self.clients.get(item.platform)
            remote_url = await with_timeout(
                client.resolve_avatar_url(item.external_id), settings.avatar_timeout_ms
            )
            if not remote_url:
                logger.debug(f"No avatar URL for {item.key}")
                return None
            entry.remote_url = remote_url
            entry.remote_fetched_at = now

        content_type, body = await with_timeout(
            self.downloader.fetch(remote_url), settings.avatar_timeout_ms
        )
        # Re-checked for downloaders that do not stream the body
        check_image(content_type, len(body), self.downloader.max_bytes)

        entry.resolved_icon = encode_data_uri(content_type, body)
        entry.resolved_fetched_at = now
        logger.debug(f"Cached avatar for {item.key} ({len(body)} bytes)")
        return entry.resolved_icon

    async def close(self) -> None:
        await self.downloader.close()
