"""Live/offline transition detection and the same-broadcast cooldown gate.

The two checks are independent and both must pass before a notification is
sent: `compute_transition` decides whether this poll is a real offline -> live
edge, `can_notify` decides whether the same broadcast was announced too
recently.
"""

from dataclasses import dataclass

from .models import ChannelState, ChannelStatus, NotificationRecord, now_ms
from .settings import Settings

DEFAULT_LIVE_MESSAGE = "Live stream has started."


@dataclass
class TransitionDecision:
    should_notify: bool
    title: str | None = None
    message: str | None = None


def _went_live(status: ChannelStatus) -> TransitionDecision:
    return TransitionDecision(
        should_notify=True,
        title=f"{status.display_label} started streaming",
        message=status.title or DEFAULT_LIVE_MESSAGE,
    )


def compute_transition(
    previous: ChannelState | None,
    status: ChannelStatus,
    settings: Settings,
) -> TransitionDecision:
    """Decide whether this poll is notification-worthy.

    A channel with no previous state that is already live only notifies when
    notify_if_already_live is set, so a fresh install does not alert for every
    channel that happens to be on air.
    """
    if previous is None:
        if status.is_live and settings.notify_if_already_live:
            return _went_live(status)
        return TransitionDecision(should_notify=False)

    if not previous.last_is_live and status.is_live:
        return _went_live(status)

    # Live -> live under a new signature: either a title edit or a new
    # broadcast with no offline poll in between. Off unless opted in.
    if (
        previous.last_is_live
        and status.is_live
        and previous.last_sig
        and status.signature
        and previous.last_sig != status.signature
        and settings.notify_on_signature_change
    ):
        return _went_live(status)

    return TransitionDecision(should_notify=False)


def can_notify(
    key: str,
    signature: str,
    notified: dict[str, NotificationRecord],
    settings: Settings,
    now: int | None = None,
) -> bool:
    """Return False if this exact broadcast was announced within the cooldown."""
    record = notified.get(key)
    if record is None:
        return True
    if record.last_notified_sig != signature:
        return True
    cooldown_ms = settings.cooldown_ms
    if cooldown_ms <= 0:
        return True
    current = now if now is not None else now_ms()
    return current - record.last_notified_at >= cooldown_ms
