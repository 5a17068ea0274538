"""Livestream Notifier - desktop alerts when CHZZK and SOOP channels go live."""

from .__version__ import __version__

__all__ = ["__version__"]
