"""Notification issuing and click-through routing."""

import logging
import secrets
import webbrowser
from abc import ABC, abstractmethod
from collections.abc import Callable

from ..core.errors import NotificationCreateFailed
from ..core.models import now_ms
from ..core.store import HandleMap

logger = logging.getLogger(__name__)

# Tells the host to use its own, always-available application icon
DEFAULT_ICON: str | None = None


def new_handle() -> str:
    return f"live:{now_ms()}:{secrets.token_hex(6)}"


class NotificationHost(ABC):
    """Whatever actually puts a notification on screen."""

    @abstractmethod
    async def show(
        self,
        handle: str,
        icon: str | None,
        title: str,
        message: str,
    ) -> str | None:
        """Display a notification.

        Returns the handle on success and None (or raises
        NotificationCreateFailed) when the host refuses it. `icon` is a data
        URI, or DEFAULT_ICON for the application icon.
        """
        ...

    @property
    def supports_callbacks(self) -> bool:
        """Whether clicks and dismissals are reported back for shown handles."""
        return True

    async def close(self) -> None:
        """Release host resources."""


class Notifier:
    """Shows notifications and remembers where each one should lead."""

    def __init__(
        self,
        host: NotificationHost,
        handle_map: HandleMap,
        open_url: Callable[[str], object] = webbrowser.open,
    ) -> None:
        self.host = host
        self.handle_map = handle_map
        self.open_url = open_url

    async def _try_show(self, handle: str, icon: str | None, title: str, message: str) -> bool:
        try:
            created = await self.host.show(handle, icon, title, message)
        except NotificationCreateFailed as e:
            logger.warning(f"Notification create failed: {e}")
            return False
        if not created:
            logger.warning(f"Notification host refused {handle}")
            return False
        return True

    async def notify(
        self,
        title: str,
        message: str,
        url: str,
        icon: str | None = None,
    ) -> str | None:
        """Show a notification and return its handle, or None if it failed.

        Hosts can reject a notification because of its image even after the
        image downloaded fine, so a failure with a custom icon is retried once
        with the default icon.
        """
        handle = new_handle()
        shown = await self._try_show(handle, icon, title, message)
        if not shown and icon is not DEFAULT_ICON:
            logger.info(f"Retrying {handle} with the default icon")
            shown = await self._try_show(handle, DEFAULT_ICON, title, message)
        if not shown:
            return None

        if self.host.supports_callbacks:
            await self.handle_map.put(handle, url)
        logger.info(f"Notified: {title}")
        return handle

    async def on_clicked(self, handle: str) -> None:
        """Open the notification's target and forget the handle."""
        url = await self.handle_map.pop(handle)
        if url:
            try:
                self.open_url(url)
            except Exception as e:
                logger.error(f"Error opening {url}: {e}")

    async def on_dismissed(self, handle: str) -> None:
        await self.handle_map.pop(handle)

    async def send_test_notification(self) -> bool:
        """Send a test notification. Returns True if successful."""
        handle = await self.notify(
            title="Livestream Notifier",
            message="Test notification - notifications are working!",
            url="https://www.google.com",
        )
        return handle is not None
