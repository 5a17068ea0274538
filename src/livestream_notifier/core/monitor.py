"""Live status polling service."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..api import ClientRegistry
from ..notifications.notifier import Notifier
from .avatar import AvatarResolver
from .concurrency import run_pool, with_timeout
from .errors import LiveNotifierError
from .models import (
    SIG_UNKNOWN,
    AvatarCacheEntry,
    ChannelState,
    ChannelStatus,
    NotificationRecord,
    PollSummary,
    WatchItem,
    now_ms,
)
from .settings import Settings
from .store import KEY_AVATAR_CACHE, KEY_NOTIFIED, KEY_STATE, CycleLock, JsonStore
from .transitions import can_notify, compute_transition

logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE = 60

# How often the loop re-reads stored settings, so changes made by another
# process (the `settings` command) re-arm the timer
SETTINGS_CHECK_S = 5.0


@dataclass
class ChannelOutcome:
    """Result of polling one channel."""

    status: ChannelStatus
    state: ChannelState | None
    record: NotificationRecord | None = None
    failed: bool = False


def _load_map(raw: Any, parse: Callable[[Any], Any]) -> dict:
    if not isinstance(raw, dict):
        return {}
    parsed = {}
    for key, value in raw.items():
        entry = parse(value)
        if entry is not None:
            parsed[key] = entry
    return parsed


class LiveMonitor:
    """
    Polls every watched channel and notifies on offline -> live transitions.
    Owns the periodic loop and serializes poll cycles.
    """

    def __init__(
        self,
        store: JsonStore,
        notifier: Notifier,
        clients: ClientRegistry | None = None,
        avatars: AvatarResolver | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clients = clients or ClientRegistry()
        self.avatars = avatars or AvatarResolver(self.clients, clock=clock)
        self._clock = clock

        # At most one cycle touches state/notified/avatarCache at a time
        self._cycle_lock = asyncio.Lock()

        self._running = False
        self._loop_task: asyncio.Task | None = None
        self._rearm = asyncio.Event()

    # --- triggers ---

    async def start(self) -> None:
        """Start the periodic poll loop.

        Handles left by an earlier process can no longer be clicked, so the
        handle map is emptied first.
        """
        if self._running:
            return
        dropped = await self.notifier.handle_map.clear()
        if dropped:
            logger.info(f"Dropped {dropped} stale notification handles")
        self._running = True
        self._rearm.clear()
        self._loop_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop the loop and close network sessions."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        await self.avatars.close()
        await self.clients.close()
        await self.notifier.host.close()

    async def _poll_loop(self) -> None:
        """Main poll loop.

        The timer restarts whenever the stored settings change, whether
        through update_settings() or by another process writing the store.
        """
        loop = asyncio.get_running_loop()
        settings = Settings.load(self.store)
        deadline = loop.time() + settings.poll_interval_minutes * SECONDS_PER_MINUTE

        while self._running:
            wait_s = max(0.0, min(SETTINGS_CHECK_S, deadline - loop.time()))
            try:
                await asyncio.wait_for(self._rearm.wait(), timeout=wait_s)
                self._rearm.clear()
                rearm = True
            except asyncio.TimeoutError:
                rearm = False

            current = Settings.load(self.store)
            if rearm or current != settings:
                settings = current
                deadline = loop.time() + settings.poll_interval_minutes * SECONDS_PER_MINUTE
                logger.info(f"Poll timer re-armed: every {settings.poll_interval_minutes} min")
                continue
            if loop.time() < deadline:
                continue

            try:
                await self.poll_all(reason="alarm")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in poll loop: {e}")
            deadline = loop.time() + settings.poll_interval_minutes * SECONDS_PER_MINUTE

    def update_settings(self, patch: dict) -> Settings:
        """Merge and persist settings, then re-arm the poll timer."""
        merged = Settings.update(self.store, patch)
        self._rearm.set()
        return merged

    async def poll_now(self) -> dict:
        """Run one cycle on demand and report the outcome as a plain dict."""
        try:
            summary = await self.poll_all(reason="manual")
        except Exception as e:
            logger.error(f"Manual poll failed: {e}")
            return {"ok": False, "error": str(e)}
        return {"ok": True, "result": summary.to_dict()}

    # --- poll cycle ---

    async def poll_all(self, reason: str = "alarm") -> PollSummary:
        """Poll every channel once.

        Cycles never overlap, within this process or across processes sharing
        the same store.
        """
        async with self._cycle_lock:
            async with CycleLock(self.store.lock_path):
                return await self._run_cycle(reason)

    async def _run_cycle(self, reason: str) -> PollSummary:
        settings = Settings.load(self.store)
        watchlist = self.store.load_watchlist()
        docs = self.store.get_many(KEY_STATE, KEY_NOTIFIED, KEY_AVATAR_CACHE)

        state: dict[str, ChannelState] = _load_map(docs.get(KEY_STATE), ChannelState.from_dict)
        notified: dict[str, NotificationRecord] = _load_map(
            docs.get(KEY_NOTIFIED), NotificationRecord.from_dict
        )
        avatar_cache: dict[str, AvatarCacheEntry] = _load_map(
            docs.get(KEY_AVATAR_CACHE), AvatarCacheEntry.from_dict
        )

        logger.debug(f"Poll cycle ({reason}): {len(watchlist)} channels")

        async def task(item: WatchItem) -> ChannelOutcome:
            return await self._poll_channel(
                item, settings, state.get(item.key), notified, avatar_cache
            )

        outcomes = await run_pool(watchlist, settings.concurrency, task)

        summary = PollSummary()
        failed = 0
        for outcome in outcomes:
            if outcome is None:
                continue
            failed += outcome.failed
            key = outcome.status.key
            summary.checked += 1
            if outcome.status.is_live:
                summary.live_now += 1
            if outcome.state is not None:
                state[key] = outcome.state
            if outcome.record is not None:
                notified[key] = outcome.record
                summary.notified_count += 1

        self.store.set(
            **{
                KEY_STATE: {key: value.to_dict() for key, value in state.items()},
                KEY_NOTIFIED: {key: value.to_dict() for key, value in notified.items()},
                KEY_AVATAR_CACHE: {
                    key: value.to_dict() for key, value in avatar_cache.items() if value.to_dict()
                },
            }
        )

        logger.info(
            f"Poll ({reason}) done: checked={summary.checked} live={summary.live_now} "
            f"notified={summary.notified_count} failed={failed}"
        )
        return summary

    async def _fetch_status(
        self,
        item: WatchItem,
        settings: Settings,
        previous: ChannelState | None,
    ) -> tuple[ChannelStatus, str | None]:
        """Fetch status, or fall back to the last known one.

        Returns (status, error message). On failure the previous live flag is
        kept, so an outage never reads as the channel going offline.
        """
        try:
            client = self.clients.get(item.platform)
            fragment = await with_timeout(
                client.resolve_status(item.external_id), settings.request_timeout_ms
            )
            return ChannelStatus.from_fragment(item, fragment), None
        except LiveNotifierError as e:
            logger.warning(f"Status check failed for {item.key}: {e}")
            status = ChannelStatus(
                platform=item.platform,
                external_id=item.external_id,
                key=item.key,
                display_name=item.display_name or "",
                is_live=previous.last_is_live if previous else False,
                title=previous.last_title if previous else "",
                signature=(previous.last_sig if previous else "") or SIG_UNKNOWN,
                url=item.default_url,
            )
            return status, str(e) or e.__class__.__name__

    async def _poll_channel(
        self,
        item: WatchItem,
        settings: Settings,
        previous: ChannelState | None,
        notified: dict[str, NotificationRecord],
        avatar_cache: dict[str, AvatarCacheEntry],
    ) -> ChannelOutcome:
        status, error = await self._fetch_status(item, settings, previous)

        if error is not None:
            # Keep the last good timestamp so staleness stays visible
            if previous is None:
                return ChannelOutcome(status=status, state=None, failed=True)
            return ChannelOutcome(
                status=status,
                state=ChannelState(
                    last_is_live=previous.last_is_live,
                    last_sig=previous.last_sig,
                    last_title=previous.last_title,
                    updated_at=previous.updated_at,
                    last_error=error,
                ),
                failed=True,
            )

        record = None
        decision = compute_transition(previous, status, settings)
        if decision.should_notify:
            if can_notify(item.key, status.signature, notified, settings, now=self._clock()):
                icon = await self.avatars.resolve_icon(item, avatar_cache, settings)
                handle = await self.notifier.notify(
                    title=decision.title or status.display_label,
                    message=decision.message or "",
                    url=status.url,
                    icon=icon,
                )
                if handle is not None:
                    record = NotificationRecord(
                        last_notified_sig=status.signature,
                        last_notified_at=self._clock(),
                    )
            else:
                logger.info(f"Suppressed repeat notification for {item.key} (cooldown)")

        return ChannelOutcome(
            status=status,
            state=ChannelState(
                last_is_live=status.is_live,
                last_sig=status.signature,
                last_title=status.title,
                updated_at=self._clock(),
            ),
            record=record,
        )
