"""Application context wiring the cache, realtime and refresh services."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from typing import Any

import aiohttp

from ledgersync._mqtt import MqttChangeFeed
from ledgersync._probe import ConnectivityProbe, HttpConnectivityProbe
from ledgersync.bus import EventBus
from ledgersync.config import SyncConfig
from ledgersync.exceptions import SyncConfigError, SyncError, ViewRefreshError
from ledgersync.gateway import RemoteGateway, RestGateway
from ledgersync.realtime.feed import ChangeFeed
from ledgersync.realtime.health import HealthMonitor, HealthReport
from ledgersync.realtime.reconnect import ReconnectionController
from ledgersync.realtime.subscriptions import StatusReport, SubscriptionManager
from ledgersync.refresh import RefreshableView, RefreshRegistry, invalidate_data_kinds
from ledgersync.routing import RoutingConfig, load_routing
from ledgersync.state.events import BusinessEvent, business_topic
from ledgersync.state.kinds import ID_INDEX, CacheKindSpec
from ledgersync.state.store import CacheStore

_logger = logging.getLogger(__name__)


class SyncClient:
    """Explicitly constructed home for one session's sync services.

    Usage::

        async with SyncClient(SyncConfig.from_env()) as client:
            transactions = await client.get("transactions")
            client.register("all-transactions", view)
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        gateway: RemoteGateway | None = None,
        feed: ChangeFeed | None = None,
        probe: ConnectivityProbe | None = None,
        routing: RoutingConfig | None = None,
        kinds: Mapping[str, CacheKindSpec] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._gateway = gateway
        self._feed = feed
        self._probe = probe
        self._routing = routing if routing is not None else load_routing(config.routing_path)
        self._kinds = kinds
        self._clock = clock
        self._sleep = sleep

        self.bus = EventBus()
        self.controller = ReconnectionController(
            clock=clock,
            status_check_min_interval=config.status_check_min_interval,
            realtime_disabled=not config.realtime_enabled,
        )
        self._store: CacheStore | None = None
        self._subscriptions: SubscriptionManager | None = None
        self._monitor: HealthMonitor | None = None
        self._registry = RefreshRegistry(self._routing)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncClient:
        self._build()
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _build(self) -> None:
        config = self._config
        if self._gateway is None or (self._probe is None and config.monitoring_enabled):
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
        if self._gateway is None:
            assert self._http_session is not None  # noqa: S101
            self._gateway = RestGateway(
                config.base_url,
                self._http_session,
                api_key=config.api_key,
            )
        if self._probe is None and self._http_session is not None:
            self._probe = HttpConnectivityProbe(
                config.effective_probe_url,
                self._http_session,
                timeout=config.probe_timeout,
            )
        if self._feed is None:
            if not config.feed.host:
                raise SyncConfigError("No change feed configured (set feed.host or pass feed=)")
            self._feed = MqttChangeFeed(config.feed)

        self._store = CacheStore(self._gateway, kinds=self._kinds)
        self._subscriptions = SubscriptionManager(
            feed=self._feed,
            store=self._store,
            bus=self.bus,
            routing=self._routing,
            controller=self.controller,
            resubscribe_cooldown=config.resubscribe_cooldown,
            force_reconnect_delay=config.force_reconnect_delay,
            sleep=self._sleep,
        )
        self._monitor = HealthMonitor(
            bus=self.bus,
            reconnector=self._subscriptions,
            gateway=self._gateway,
            probe=self._probe,
            clock=self._clock,
            interval=config.health_check_interval,
            stale_threshold=config.stale_data_threshold,
        )

    async def start(self) -> None:
        """Wire the registry to the bus, open channels and start monitoring."""
        self._registry.attach(self.bus)
        await self.subscriptions.setup_subscriptions()
        if self._config.monitoring_enabled:
            self.monitor.start_monitoring()

    async def close(self) -> None:
        if self._monitor is not None:
            await self._monitor.stop_monitoring()
        if self._subscriptions is not None:
            await self._subscriptions.aclose()
        if self._feed is not None:
            try:
                await self._feed.disconnect()
            except Exception:
                _logger.debug("Change feed disconnect failed", exc_info=True)
        self._registry.detach()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @property
    def routing(self) -> RoutingConfig:
        return self._routing

    @property
    def store(self) -> CacheStore:
        if self._store is None:
            raise SyncError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._store

    @property
    def subscriptions(self) -> SubscriptionManager:
        if self._subscriptions is None:
            raise SyncError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._subscriptions

    @property
    def monitor(self) -> HealthMonitor:
        if self._monitor is None:
            raise SyncError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._monitor

    @property
    def registry(self) -> RefreshRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def get(self, kind: str) -> tuple[Any, ...]:
        return await self.store.get(kind)

    async def get_map(self, kind: str, index: str = ID_INDEX) -> Mapping[Hashable, Any]:
        return await self.store.get_map(kind, index)

    async def get_by_id(self, kind: str, record_id: Any) -> Any | None:
        return await self.store.get_by_id(kind, record_id)

    async def select(self, kind: str, **criteria: Any) -> list[Any]:
        return await self.store.select(kind, **criteria)

    def invalidate(self, kind: str) -> None:
        self.store.invalidate(kind)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def register(self, view_id: str, view: RefreshableView) -> None:
        self._registry.register(view_id, view)

    def unregister(self, view_id: str) -> None:
        self._registry.unregister(view_id)

    async def refresh_by_data_kind(self, kind: str) -> list[ViewRefreshError]:
        return await self._registry.refresh_by_data_kind(kind)

    async def refresh_data_kinds(self, data_kinds: Iterable[str]) -> list[ViewRefreshError]:
        """Manual refresh: drop the caches behind *data_kinds* and refresh their views."""
        kinds = tuple(data_kinds)
        invalidate_data_kinds(self.store, self._routing, kinds)
        return await self._registry.refresh_by_data_kinds(kinds)

    async def trigger_global_refresh(self) -> list[ViewRefreshError]:
        return await self._registry.trigger_global_refresh()

    async def publish_business_event(self, name: str, **detail: Any) -> None:
        """Announce a UI-originated event such as ``transactionValidated``."""
        await self.bus.publish(business_topic(name), BusinessEvent(name=name, detail=detail))

    # ------------------------------------------------------------------
    # Health and recovery
    # ------------------------------------------------------------------

    def mark_data_update(self) -> None:
        self.monitor.mark_data_update()

    async def force_health_check(self) -> HealthReport:
        return await self.monitor.force_health_check()

    async def check_status(self) -> StatusReport:
        return await self.subscriptions.check_status()

    async def force_reconnect(self) -> bool:
        return await self.subscriptions.force_reconnect()

    async def disable_realtime(self) -> None:
        await self.subscriptions.disable()

    async def enable_realtime(self) -> None:
        await self.subscriptions.enable()

    async def emergency_cleanup(self) -> None:
        await self.subscriptions.emergency_cleanup()
