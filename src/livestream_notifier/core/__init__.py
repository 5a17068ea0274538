"""Core models and utilities for Livestream Notifier."""

from .models import ChannelState, ChannelStatus, Platform, PollSummary, WatchItem
from .settings import Settings

__all__ = [
    "ChannelState",
    "ChannelStatus",
    "Platform",
    "PollSummary",
    "WatchItem",
    "Settings",
]
