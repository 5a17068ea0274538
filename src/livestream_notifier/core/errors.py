"""Error types raised by the polling engine."""


class LiveNotifierError(Exception):
    """Base class for all errors raised by livestream_notifier."""


class NetworkError(LiveNotifierError):
    """A request failed to connect or returned a non-2xx status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class Timeout(LiveNotifierError):
    """An operation did not finish before its deadline."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class MalformedResponse(LiveNotifierError):
    """A response body did not have the expected shape."""


class UnsupportedPlatform(LiveNotifierError):
    """No adapter is registered for the requested platform key."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"unknown platform: {platform}")
        self.platform = platform


class AvatarRejected(LiveNotifierError):
    """An avatar download was not an image or exceeded the size ceiling."""


class NotificationCreateFailed(LiveNotifierError):
    """The notification host refused to show a notification."""
