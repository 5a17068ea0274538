"""Shared test fixtures for livestream_notifier tests."""

import pytest

from livestream_notifier.api import ClientRegistry
from livestream_notifier.api.base import BaseApiClient
from livestream_notifier.core.avatar import MAX_ICON_BYTES, AvatarResolver
from livestream_notifier.core.errors import NotificationCreateFailed
from livestream_notifier.core.models import SIG_OFF, Platform, StatusFragment, WatchItem
from livestream_notifier.core.monitor import LiveMonitor
from livestream_notifier.core.store import HandleMap, JsonStore
from livestream_notifier.notifications.notifier import NotificationHost, Notifier

START_MS = 1_700_000_000_000


def live(title="Test Stream", signature=None):
    return StatusFragment(
        is_live=True,
        title=title,
        signature=signature or f"OPEN:{title}",
        url="https://example.com/live",
    )


def offline():
    return StatusFragment(is_live=False, title="", signature=SIG_OFF, url="https://example.com")


class FakeClock:
    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance_minutes(self, minutes):
        self.now += minutes * 60 * 1000


class FakeClient(BaseApiClient):
    """Adapter that replays scripted results per channel.

    Each poll consumes the next entry; the last entry repeats. Exceptions in
    the script are raised.
    """

    def __init__(self, platform=Platform.CHZZK):
        super().__init__()
        self._platform = platform
        self.statuses = {}
        self.avatar_urls = {}
        self.status_calls = 0
        self.avatar_calls = 0

    @property
    def platform(self):
        return self._platform

    @property
    def name(self):
        return f"Fake {self._platform.value}"

    def script(self, external_id, *results):
        self.statuses[external_id] = list(results)

    async def resolve_status(self, external_id):
        self.status_calls += 1
        queue = self.statuses[external_id]
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def resolve_avatar_url(self, external_id):
        self.avatar_calls += 1
        result = self.avatar_urls.get(external_id)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeDownloader:
    def __init__(self, content_type="image/png", body=b"\x89PNG fake image"):
        self.max_bytes = MAX_ICON_BYTES
        self.content_type = content_type
        self.body = body
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        if isinstance(self.body, BaseException):
            raise self.body
        return self.content_type, self.body

    async def close(self):
        pass


class FakeHost(NotificationHost):
    """Records notifications instead of showing them."""

    def __init__(self, fail_with_icon=False, fail_always=False, callbacks=True):
        self.fail_with_icon = fail_with_icon
        self.fail_always = fail_always
        self.callbacks = callbacks
        self.attempts = []
        self.shown = []

    async def show(self, handle, icon, title, message):
        self.attempts.append({"handle": handle, "icon": icon, "title": title})
        if self.fail_always or (self.fail_with_icon and icon is not None):
            raise NotificationCreateFailed("host rejected the notification")
        self.shown.append({"handle": handle, "icon": icon, "title": title, "message": message})
        return handle

    @property
    def supports_callbacks(self):
        return self.callbacks


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "store.json")


@pytest.fixture
def chzzk_item():
    return WatchItem(
        platform="chzzk",
        external_id="abcdef0123456789",
        display_name="Streamer",
        added_at=START_MS,
    )


@pytest.fixture
def soop_item():
    return WatchItem(platform="soop", external_id="soopbj", added_at=START_MS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chzzk_client():
    return FakeClient(Platform.CHZZK)


@pytest.fixture
def soop_client():
    return FakeClient(Platform.SOOP)


@pytest.fixture
def registry(chzzk_client, soop_client):
    registry = ClientRegistry()
    registry._clients = {"chzzk": chzzk_client, "soop": soop_client}
    return registry


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def opened_urls():
    return []


@pytest.fixture
def notifier(host, store, opened_urls):
    return Notifier(host, HandleMap(store), open_url=opened_urls.append)


@pytest.fixture
def monitor(store, notifier, registry, downloader, clock):
    avatars = AvatarResolver(registry, downloader=downloader, clock=clock)
    return LiveMonitor(store, notifier, clients=registry, avatars=avatars, clock=clock)
