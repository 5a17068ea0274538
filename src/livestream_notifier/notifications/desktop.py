"""Desktop notification host."""

import asyncio
import base64
import binascii
import hashlib
import logging
import shutil
import subprocess
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..core.errors import NotificationCreateFailed
from ..core.settings import get_data_dir
from .notifier import NotificationHost

logger = logging.getLogger(__name__)

APP_NAME = "Livestream Notifier"
ICON_DIR_NAME = "icons"

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}


def _get_icon_dir() -> Path:
    icon_dir = get_data_dir() / ICON_DIR_NAME
    icon_dir.mkdir(parents=True, exist_ok=True)
    return icon_dir


def icon_file_for(data_uri: str, icon_dir: Path | None = None) -> Path:
    """Write a data URI image to disk (once) and return its path.

    Raises:
        NotificationCreateFailed: the data URI cannot be decoded.
    """
    header, sep, payload = data_uri.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise NotificationCreateFailed("icon is not a base64 data URI")
    mime = header[len("data:") :].split(";", 1)[0]
    try:
        body = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise NotificationCreateFailed(f"icon data is not valid base64: {e}") from e

    digest = hashlib.md5(body).hexdigest()
    path = (icon_dir or _get_icon_dir()) / (digest + _EXTENSIONS.get(mime, ".img"))
    if not path.exists():
        try:
            path.write_bytes(body)
        except OSError as e:
            raise NotificationCreateFailed(f"cannot write icon file: {e}") from e
    return path


class DesktopNotificationHost(NotificationHost):
    """Shows notifications via desktop-notifier, falling back to notify-send.

    Click and dismiss events are forwarded to the callbacks given at
    construction, keyed by the handle passed to show().
    """

    def __init__(
        self,
        on_clicked: Callable[[str], Awaitable[None]] | None = None,
        on_dismissed: Callable[[str], Awaitable[None]] | None = None,
        backend: str = "auto",
    ) -> None:
        self.on_clicked = on_clicked
        self.on_dismissed = on_dismissed
        self._notifier = None
        self._backend = "none"
        self._callback_tasks: set[asyncio.Task] = set()
        self._init_backend(backend)

    def _init_backend(self, backend: str) -> None:
        """Initialize the notification backend."""
        if backend in ("auto", "dbus"):
            try:
                from desktop_notifier import DesktopNotifier

                self._notifier = DesktopNotifier(app_name=APP_NAME)
                self._backend = "desktop-notifier"
                logger.info("Using desktop-notifier backend")
                return
            except Exception as e:
                logger.warning(f"desktop-notifier failed: {e}, trying fallback")

        if backend in ("auto", "notify-send") and shutil.which("notify-send"):
            self._backend = "notify-send"
            logger.info("Using notify-send backend")
            return

        logger.error("No notification backend available")
        self._backend = "none"

    @property
    def supports_callbacks(self) -> bool:
        # notify-send reports nothing back
        return self._backend == "desktop-notifier"

    def _dispatch(self, callback: Callable[[str], Awaitable[None]] | None, handle: str) -> None:
        if callback is None:
            return
        task = asyncio.get_running_loop().create_task(callback(handle))
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    async def show(
        self,
        handle: str,
        icon: str | None,
        title: str,
        message: str,
    ) -> str | None:
        if self._backend == "none":
            raise NotificationCreateFailed("no notification backend available")

        icon_path = icon_file_for(icon) if icon else None

        if self._backend == "desktop-notifier" and self._notifier:
            from desktop_notifier import Icon

            try:
                await self._notifier.send(
                    title=title,
                    message=message,
                    icon=Icon(path=icon_path) if icon_path else None,
                    on_clicked=lambda: self._dispatch(self.on_clicked, handle),
                    on_dismissed=lambda: self._dispatch(self.on_dismissed, handle),
                )
            except Exception as e:
                raise NotificationCreateFailed(f"desktop-notifier: {e}") from e
            return handle

        cmd = ["notify-send", f"--app-name={APP_NAME}", title, message]
        if icon_path:
            cmd.append(f"--icon={icon_path}")
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise NotificationCreateFailed(f"notify-send: {e}") from e
        return handle

    async def close(self) -> None:
        for task in list(self._callback_tasks):
            task.cancel()
        self._callback_tasks.clear()
