"""Tests for transition detection and the cooldown gate."""

from conftest import START_MS, live, offline

from livestream_notifier.core.models import ChannelState, ChannelStatus, NotificationRecord
from livestream_notifier.core.settings import Settings
from livestream_notifier.core.transitions import (
    DEFAULT_LIVE_MESSAGE,
    can_notify,
    compute_transition,
)


def _status(item, fragment):
    return ChannelStatus.from_fragment(item, fragment)


def _state(is_live, sig="OFF", title=""):
    return ChannelState(last_is_live=is_live, last_sig=sig, last_title=title, updated_at=START_MS)


# --- compute_transition: first sighting ---


def test_first_seen_live_silent_by_default(chzzk_item):
    decision = compute_transition(None, _status(chzzk_item, live()), Settings())
    assert decision.should_notify is False


def test_first_seen_live_notifies_when_enabled(chzzk_item):
    settings = Settings(notify_if_already_live=True)
    decision = compute_transition(None, _status(chzzk_item, live("Hello")), settings)
    assert decision.should_notify is True
    assert decision.title == "Streamer started streaming"
    assert decision.message == "Hello"


def test_first_seen_offline_never_notifies(chzzk_item):
    settings = Settings(notify_if_already_live=True)
    assert compute_transition(None, _status(chzzk_item, offline()), settings).should_notify is False


# --- compute_transition: known channels ---


def test_offline_to_live_notifies(soop_item):
    decision = compute_transition(_state(False), _status(soop_item, live("Morning")), Settings())
    assert decision.should_notify is True
    assert decision.title == "soopbj started streaming"


def test_offline_to_live_empty_title_uses_default_message(chzzk_item):
    decision = compute_transition(_state(False), _status(chzzk_item, live("")), Settings())
    assert decision.message == DEFAULT_LIVE_MESSAGE


def test_live_to_live_same_signature_is_silent(chzzk_item):
    previous = _state(True, "OPEN:Test Stream", "Test Stream")
    decision = compute_transition(previous, _status(chzzk_item, live()), Settings())
    assert decision.should_notify is False


def test_live_to_offline_is_silent(chzzk_item):
    previous = _state(True, "OPEN:Test Stream", "Test Stream")
    assert compute_transition(previous, _status(chzzk_item, offline()), Settings()).should_notify is False


def test_offline_to_offline_is_silent(chzzk_item):
    assert compute_transition(_state(False), _status(chzzk_item, offline()), Settings()).should_notify is False


def test_signature_change_silent_by_default(chzzk_item):
    previous = _state(True, "OPEN:Old title", "Old title")
    decision = compute_transition(previous, _status(chzzk_item, live("New title")), Settings())
    assert decision.should_notify is False


def test_signature_change_notifies_when_enabled(chzzk_item):
    previous = _state(True, "OPEN:Old title", "Old title")
    settings = Settings(notify_on_signature_change=True)
    decision = compute_transition(previous, _status(chzzk_item, live("New title")), settings)
    assert decision.should_notify is True
    assert decision.message == "New title"


# --- can_notify ---


def test_can_notify_without_record():
    assert can_notify("chzzk:a", "OPEN:x", {}, Settings(), now=START_MS) is True


def test_can_notify_different_signature():
    notified = {"chzzk:a": NotificationRecord("OPEN:x", START_MS)}
    assert can_notify("chzzk:a", "OPEN:y", notified, Settings(), now=START_MS) is True


def test_can_notify_same_signature_within_cooldown():
    notified = {"chzzk:a": NotificationRecord("OPEN:x", START_MS)}
    now = START_MS + 9 * 60 * 1000
    assert can_notify("chzzk:a", "OPEN:x", notified, Settings(cooldown_minutes=10), now=now) is False


def test_can_notify_same_signature_at_cooldown_boundary():
    notified = {"chzzk:a": NotificationRecord("OPEN:x", START_MS)}
    now = START_MS + 10 * 60 * 1000
    assert can_notify("chzzk:a", "OPEN:x", notified, Settings(cooldown_minutes=10), now=now) is True


def test_can_notify_zero_cooldown_always_passes():
    notified = {"chzzk:a": NotificationRecord("OPEN:x", START_MS)}
    assert can_notify("chzzk:a", "OPEN:x", notified, Settings(cooldown_minutes=0), now=START_MS) is True


def test_can_notify_record_for_other_channel_ignored():
    notified = {"soop:b": NotificationRecord("OPEN:x", START_MS)}
    assert can_notify("chzzk:a", "OPEN:x", notified, Settings(), now=START_MS) is True
