"""Subscription manager: one change-feed channel per watched table.

Owns:
- opening/closing channels through the :class:`ChangeFeed`
- translating notifications into cache invalidations and bus events
- the recovery paths (resubscribe, force reconnect, emergency cleanup)
- the debounced channel status check
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any

from ledgersync._constants import FORCE_RECONNECT_DELAY_S, RESUBSCRIBE_COOLDOWN_S
from ledgersync._redact import redact_for_log
from ledgersync.bus import EventBus
from ledgersync.ingestion import build_change_notification
from ledgersync.realtime.feed import ChangeFeed, SubscriptionState
from ledgersync.realtime.reconnect import ReconnectionController
from ledgersync.routing import RoutingConfig
from ledgersync.state.events import (
    DATA_UPDATED,
    SHOW_TOAST,
    DataUpdated,
    EntityChanged,
    Severity,
    ShowToast,
    entity_changed_topic,
)
from ledgersync.state.policy import should_force_reconnect
from ledgersync.state.store import CacheStore

_logger = logging.getLogger(__name__)

_FAILED_STATES = frozenset({SubscriptionState.ERRORED, SubscriptionState.CLOSED})

EMERGENCY_MESSAGE = "Realtime updates are unavailable. Please reload the page."


@dataclass(eq=False)
class Subscription:
    table: str
    state: SubscriptionState = SubscriptionState.PENDING
    handle: Any = None


@dataclass(frozen=True)
class StatusReport:
    """Outcome of :meth:`SubscriptionManager.check_status`."""

    sampled: bool
    total: int = 0
    errored: int = 0
    transport_connected: bool | None = None
    reconnect_forced: bool = False
    errored_tables: tuple[str, ...] = ()


class SubscriptionManager:
    def __init__(
        self,
        *,
        feed: ChangeFeed,
        store: CacheStore,
        bus: EventBus,
        routing: RoutingConfig,
        controller: ReconnectionController,
        resubscribe_cooldown: float = RESUBSCRIBE_COOLDOWN_S,
        force_reconnect_delay: float = FORCE_RECONNECT_DELAY_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        for watched in routing.tables.values():
            for kind in watched.invalidates:
                store.spec(kind)
        self._feed = feed
        self._store = store
        self._bus = bus
        self._routing = routing
        self._controller = controller
        self._resubscribe_cooldown = resubscribe_cooldown
        self._force_reconnect_delay = force_reconnect_delay
        self._sleep = sleep
        self._subscriptions: dict[str, Subscription] = {}
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._reconnect_cycles = 0

    @property
    def controller(self) -> ReconnectionController:
        return self._controller

    @property
    def realtime_disabled(self) -> bool:
        return self._controller.realtime_disabled

    @property
    def reconnect_cycles(self) -> int:
        """Completed teardown/resubscribe cycles."""
        return self._reconnect_cycles

    def subscription_states(self) -> Mapping[str, SubscriptionState]:
        return {table: sub.state for table, sub in self._subscriptions.items()}

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------

    async def setup_subscriptions(self) -> None:
        """Open one channel per watched table (no-op if disabled or already open)."""
        if self._controller.realtime_disabled:
            _logger.debug("Realtime disabled; not opening subscriptions")
            return
        if self._subscriptions:
            return

        # Reserve every slot before the first await so a concurrent call
        # sees a non-empty map and backs off.
        pending = [Subscription(table=table) for table in self._routing.tables]
        for sub in pending:
            self._subscriptions[sub.table] = sub

        for sub in pending:
            if self._subscriptions.get(sub.table) is not sub:
                continue
            try:
                handle = await self._feed.subscribe(
                    sub.table,
                    partial(self._on_feed_change, sub),
                    partial(self._on_feed_status, sub),
                )
            except Exception:
                _logger.warning("Opening subscription for %s failed", sub.table, exc_info=True)
                sub.state = SubscriptionState.ERRORED
                continue
            if self._subscriptions.get(sub.table) is not sub:
                # Torn down while the channel was opening.
                await self._close_orphan(sub.table, handle)
                continue
            sub.handle = handle
        _logger.debug("Opened %d subscription(s)", len(pending))

    async def teardown(self) -> None:
        """Close every channel and forget them. Safe with nothing open."""
        subs = list(self._subscriptions.values())
        self._subscriptions.clear()
        for sub in subs:
            sub.state = SubscriptionState.CLOSED
            if sub.handle is None:
                continue
            try:
                await self._feed.unsubscribe(sub.handle)
            except Exception:
                _logger.warning("Closing subscription for %s failed", sub.table, exc_info=True)
        if subs:
            _logger.debug("Closed %d subscription(s)", len(subs))

    async def _close_orphan(self, table: str, handle: Any) -> None:
        try:
            await self._feed.unsubscribe(handle)
        except Exception:
            _logger.warning("Closing orphaned subscription for %s failed", table, exc_info=True)

    async def aclose(self) -> None:
        """Session end: close every channel and wait for running change handlers."""
        await self.teardown()
        tasks = list(self._handler_tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_feed_status(self, sub: Subscription, state: SubscriptionState) -> None:
        if self._subscriptions.get(sub.table) is not sub:
            return
        if state != sub.state:
            _logger.debug("Subscription %s: %s -> %s", sub.table, sub.state, state)
        sub.state = state

    def _on_feed_change(self, sub: Subscription, payload: dict[str, Any]) -> None:
        if self._subscriptions.get(sub.table) is not sub:
            return
        task = asyncio.get_running_loop().create_task(self.handle_change(sub.table, payload))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def handle_change(self, table: str, payload: dict[str, Any]) -> None:
        """Invalidate the table's cache kinds, then announce the change.

        The invalidation is synchronous and completes before any event is
        published, so every refresh triggered by the event refetches.
        """
        watched = self._routing.watched(table)
        if watched is None:
            _logger.debug("Ignoring change for unwatched table %s", table)
            return

        change = build_change_notification(payload, table=table)
        self._store.invalidate_many(watched.invalidates)
        _logger.debug(
            "Change %s on %s id=%s invalidated %s payload=%s",
            change.change_type,
            table,
            change.record_id,
            ",".join(watched.invalidates),
            redact_for_log(payload),
        )

        await self._bus.publish(DATA_UPDATED, DataUpdated(kind=watched.entity, change=change))
        await self._bus.publish(
            entity_changed_topic(watched.entity),
            EntityChanged(entity=watched.entity, change=change),
        )

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def resubscribe(self) -> bool:
        """Full teardown + resync + resubscribe. Returns False if one is already running."""
        ticket = self._controller.begin()
        if ticket is None:
            _logger.debug("Resubscribe skipped: recovery already in progress")
            return False
        try:
            await self._run_cycle()
        finally:
            self._controller.finish(ticket)
        return True

    async def force_reconnect(self) -> bool:
        """Public recovery entry point with a short pre-delay to absorb bursts."""
        ticket = self._controller.begin()
        if ticket is None:
            _logger.debug("Force reconnect skipped: recovery already in progress")
            return False
        _logger.warning("Forcing realtime reconnect")
        try:
            if self._force_reconnect_delay > 0:
                await self._sleep(self._force_reconnect_delay)
            await self._run_cycle()
        finally:
            self._controller.finish(ticket)
        return True

    async def _run_cycle(self) -> None:
        try:
            await self.teardown()
            # Invalidations missed while disconnected are unrecoverable.
            self._store.clear()
            if self._resubscribe_cooldown > 0:
                await self._sleep(self._resubscribe_cooldown)
            await self.setup_subscriptions()
        except Exception:
            _logger.warning("Reconnect cycle failed", exc_info=True)
            return
        self._reconnect_cycles += 1

    async def disable(self) -> None:
        self._controller.disable()
        await self.teardown()
        _logger.debug("Realtime disabled by operator")

    async def enable(self) -> None:
        self._controller.enable()
        await self.setup_subscriptions()
        _logger.debug("Realtime enabled by operator")

    async def emergency_cleanup(self) -> None:
        """Terminal recovery: disable realtime, drop the transport, clear the cache."""
        self._controller.release()
        self._controller.disable()
        await self.teardown()
        try:
            await self._feed.disconnect()
        except Exception:
            _logger.warning("Transport disconnect failed during emergency cleanup", exc_info=True)
        self._store.clear()
        _logger.warning("Emergency cleanup completed; realtime stays disabled")
        await self._bus.publish(SHOW_TOAST, ShowToast(message=EMERGENCY_MESSAGE, severity=Severity.ERROR))

    async def check_status(self) -> StatusReport:
        """Sample channel health (at most once per debounce window)."""
        if not self._controller.claim_status_check():
            return StatusReport(sampled=False)

        subs = list(self._subscriptions.values())
        errored_tables = tuple(sub.table for sub in subs if sub.state in _FAILED_STATES)
        connected = self._feed.is_connected()
        force = not self._controller.realtime_disabled and should_force_reconnect(
            total=len(subs),
            errored=len(errored_tables),
            transport_connected=connected,
        )
        if errored_tables and not force:
            # Partial failure is tolerated; the table stays stale until a full outage.
            _logger.warning(
                "%d of %d subscription(s) errored (%s); not forcing reconnect",
                len(errored_tables),
                len(subs),
                ", ".join(errored_tables),
            )
        if force:
            await self.force_reconnect()
        return StatusReport(
            sampled=True,
            total=len(subs),
            errored=len(errored_tables),
            transport_connected=connected,
            reconnect_forced=force,
            errored_tables=errored_tables,
        )
