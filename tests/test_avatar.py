"""Tests for avatar resolution and its two-tier cache."""

import asyncio
import base64

import pytest

from livestream_notifier.core.avatar import AvatarResolver, check_image, encode_data_uri
from livestream_notifier.core.errors import AvatarRejected, NetworkError
from livestream_notifier.core.models import AvatarCacheEntry, WatchItem
from livestream_notifier.core.settings import Settings

DAY_MS = 24 * 60 * 60 * 1000


@pytest.fixture
def resolver(registry, downloader, clock):
    return AvatarResolver(registry, downloader=downloader, clock=clock)


# --- helpers ---


def test_encode_data_uri_strips_parameters():
    uri = encode_data_uri("image/PNG; charset=binary", b"abc")
    assert uri == "data:image/png;base64," + base64.b64encode(b"abc").decode("ascii")


def test_check_image_rejects_non_image():
    with pytest.raises(AvatarRejected):
        check_image("text/html", 100, 1000)


def test_check_image_rejects_oversized():
    with pytest.raises(AvatarRejected):
        check_image("image/jpeg", 1001, 1000)


def test_check_image_unknown_length_passes():
    check_image("image/webp", None, 1000)


# --- resolve_icon ---


def test_resolve_fetches_and_caches(resolver, chzzk_item, chzzk_client, downloader, clock):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    cache = {}

    icon = asyncio.run(resolver.resolve_icon(chzzk_item, cache, Settings()))

    assert icon.startswith("data:image/png;base64,")
    entry = cache[chzzk_item.key]
    assert entry.remote_url == "https://img/a.png"
    assert entry.remote_fetched_at == clock.now
    assert entry.resolved_icon == icon
    assert downloader.calls == ["https://img/a.png"]


def test_fresh_icon_is_reused(resolver, chzzk_item, chzzk_client, downloader, clock):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    settings = Settings(avatar_ttl_days=1)
    cache = {}

    async def run():
        first = await resolver.resolve_icon(chzzk_item, cache, settings)
        clock.now += DAY_MS - 1
        second = await resolver.resolve_icon(chzzk_item, cache, settings)
        return first, second

    first, second = asyncio.run(run())

    assert first == second
    assert chzzk_client.avatar_calls == 1
    assert len(downloader.calls) == 1


def test_expired_icon_is_refetched(resolver, chzzk_item, chzzk_client, downloader, clock):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    settings = Settings(avatar_ttl_days=1)
    cache = {}

    async def run():
        await resolver.resolve_icon(chzzk_item, cache, settings)
        clock.now += DAY_MS + 1
        await resolver.resolve_icon(chzzk_item, cache, settings)

    asyncio.run(run())

    assert chzzk_client.avatar_calls == 2
    assert len(downloader.calls) == 2
    assert cache[chzzk_item.key].resolved_fetched_at == clock.now


def test_fresh_remote_url_skips_lookup(resolver, soop_item, soop_client, downloader, clock):
    cache = {
        soop_item.key: AvatarCacheEntry(
            remote_url="https://stimg/cached.jpg", remote_fetched_at=clock.now
        )
    }

    icon = asyncio.run(resolver.resolve_icon(soop_item, cache, Settings()))

    assert icon is not None
    assert soop_client.avatar_calls == 0
    assert downloader.calls == ["https://stimg/cached.jpg"]


def test_no_avatar_url_gives_none(resolver, soop_item):
    assert asyncio.run(resolver.resolve_icon(soop_item, {}, Settings())) is None


def test_lookup_failure_gives_none(resolver, chzzk_item, chzzk_client):
    chzzk_client.avatar_urls[chzzk_item.external_id] = NetworkError("HTTP 500", 500)
    assert asyncio.run(resolver.resolve_icon(chzzk_item, {}, Settings())) is None


def test_non_image_gives_none(resolver, chzzk_item, chzzk_client, downloader):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    downloader.content_type = "text/html"
    cache = {}

    assert asyncio.run(resolver.resolve_icon(chzzk_item, cache, Settings())) is None
    assert cache[chzzk_item.key].resolved_icon is None


def test_oversized_body_gives_none(resolver, chzzk_item, chzzk_client, downloader):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    downloader.body = b"x" * (downloader.max_bytes + 1)

    assert asyncio.run(resolver.resolve_icon(chzzk_item, {}, Settings())) is None


def test_download_failure_keeps_remote_url(resolver, chzzk_item, chzzk_client, downloader):
    chzzk_client.avatar_urls[chzzk_item.external_id] = "https://img/a.png"
    downloader.body = NetworkError("connection reset")
    cache = {}

    assert asyncio.run(resolver.resolve_icon(chzzk_item, cache, Settings())) is None
    assert cache[chzzk_item.key].remote_url == "https://img/a.png"


def test_unknown_platform_gives_none(resolver):
    item = WatchItem(platform="twitch", external_id="x", added_at=0)
    assert asyncio.run(resolver.resolve_icon(item, {}, Settings())) is None
