"""API clients for streaming platforms."""

from ..core.errors import UnsupportedPlatform
from .base import BaseApiClient
from .chzzk import ChzzkApiClient
from .soop import SoopApiClient


class ClientRegistry:
    """One lazily-created client per platform key."""

    FACTORIES = {
        "chzzk": ChzzkApiClient,
        "soop": SoopApiClient,
    }

    def __init__(self) -> None:
        self._clients: dict[str, BaseApiClient] = {}

    def get(self, platform: str) -> BaseApiClient:
        """Get the client for a platform key.

        Raises:
            UnsupportedPlatform: no adapter exists for the key.
        """
        client = self._clients.get(platform)
        if client is None:
            factory = self.FACTORIES.get(platform)
            if factory is None:
                raise UnsupportedPlatform(platform)
            client = factory()
            self._clients[platform] = client
        return client

    async def close(self) -> None:
        """Close all client sessions."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


__all__ = [
    "BaseApiClient",
    "ChzzkApiClient",
    "SoopApiClient",
    "ClientRegistry",
]
