"""Base API client interface."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import aiohttp

from ..core.errors import LiveNotifierError, MalformedResponse, NetworkError
from ..core.models import Platform, StatusFragment

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36"


def new_session() -> aiohttp.ClientSession:
    """Create an HTTP session that never sends or stores cookies."""
    # Use explicit timeout to avoid Python 3.11 compatibility issues
    timeout = aiohttp.ClientTimeout(total=30)
    connector = aiohttp.TCPConnector(limit=50)
    return aiohttp.ClientSession(
        timeout=timeout,
        connector=connector,
        cookie_jar=aiohttp.DummyCookieJar(),
    )


def safe_json(body: bytes) -> Any:
    """Safely parse a JSON body, returning None on error.

    Handles HTML error pages, malformed JSON and empty bodies. The content
    type is not checked since some endpoints answer JSON as text/html.
    """
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class BaseApiClient(ABC):
    """Abstract base class for streaming platform API clients."""

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Get the platform this client handles."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the display name for this platform."""
        ...

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = new_session()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            try:
                await self._session.close()
                # Allow time for underlying connections to fully close
                await asyncio.sleep(0.1)
            finally:
                self._session = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _fetch_bytes(self, method: str, url: str, **kwargs: Any) -> bytes:
        try:
            async with self.session.request(
                method, url, headers=self._get_headers(), **kwargs
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise NetworkError(f"{self.name}: HTTP {resp.status} from {url}", resp.status)
                return await resp.read()
        except aiohttp.ClientError as e:
            raise NetworkError(f"{self.name}: {e.__class__.__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"{self.name}: session timeout for {url}") from e

    async def _fetch_json(self, method: str, url: str, **kwargs: Any) -> dict:
        """Request a URL and return its JSON object body."""
        data = safe_json(await self._fetch_bytes(method, url, **kwargs))
        if not isinstance(data, dict):
            raise MalformedResponse(f"{self.name}: expected a JSON object from {url}")
        return data

    async def _fetch_text(self, url: str) -> str:
        body = await self._fetch_bytes("GET", url)
        return body.decode("utf-8", errors="replace")

    async def _first_success(self, candidates: Sequence[Callable[[], Awaitable[T]]]) -> T:
        """Try candidate resolvers in order and return the first success.

        Raises the last failure if every candidate fails.
        """
        last_error: LiveNotifierError | None = None
        for attempt, candidate in enumerate(candidates, start=1):
            try:
                return await candidate()
            except LiveNotifierError as e:
                last_error = e
                logger.debug(f"{self.name}: candidate {attempt}/{len(candidates)} failed: {e}")
        if last_error is None:
            raise NetworkError(f"{self.name}: no endpoints to try")
        raise last_error

    @abstractmethod
    async def resolve_status(self, external_id: str) -> StatusFragment:
        """
        Get the live status of a channel.
        Raises a LiveNotifierError when the status cannot be determined;
        never reports offline for a failed lookup.
        """
        ...

    @abstractmethod
    async def resolve_avatar_url(self, external_id: str) -> str | None:
        """
        Get the channel's profile image URL.
        Returns None if the channel has no image.
        """
        ...
