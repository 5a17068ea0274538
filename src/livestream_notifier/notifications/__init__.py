"""Desktop notifications for channels going live."""

from .notifier import DEFAULT_ICON, NotificationHost, Notifier

__all__ = ["DEFAULT_ICON", "NotificationHost", "Notifier"]
