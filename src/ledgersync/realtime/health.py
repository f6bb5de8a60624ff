"""Connection health monitor.

Tracks the time since the last observed data update and probes
connectivity independently of per-channel error state, catching channels
that look open but have silently stopped delivering.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from ledgersync._constants import DEFAULT_ACTIVITY_TOPICS, HEALTH_CHECK_INTERVAL_S, STALE_DATA_THRESHOLD_S
from ledgersync._probe import ConnectivityProbe
from ledgersync.bus import EventBus
from ledgersync.gateway import RemoteGateway
from ledgersync.state.events import any_topic
from ledgersync.state.policy import is_stale

_logger = logging.getLogger(__name__)


class Reconnector(Protocol):
    @property
    def realtime_disabled(self) -> bool:
        ...

    async def force_reconnect(self) -> bool:
        ...

    async def check_status(self) -> Any:
        ...


@dataclass(frozen=True)
class HealthReport:
    seconds_since_update: float
    stale: bool
    network_reachable: bool | None
    backend_reachable: bool | None
    reconnect_requested: bool


class HealthMonitor:
    """Idle/Monitoring state machine driving periodic health checks."""

    def __init__(
        self,
        *,
        bus: EventBus,
        reconnector: Reconnector,
        gateway: RemoteGateway | None = None,
        probe: ConnectivityProbe | None = None,
        clock: Callable[[], float] = time.monotonic,
        interval: float = HEALTH_CHECK_INTERVAL_S,
        stale_threshold: float = STALE_DATA_THRESHOLD_S,
        activity_topics: Iterable[str] = DEFAULT_ACTIVITY_TOPICS,
    ) -> None:
        self._bus = bus
        self._reconnector = reconnector
        self._gateway = gateway
        self._probe = probe
        self._clock = clock
        self._interval = interval
        self._stale_threshold = stale_threshold
        self._activity_topics = tuple(activity_topics)
        self._last_data_update = clock()
        self._task: asyncio.Task[None] | None = None
        self._recovery: asyncio.Future[Any] | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None

    @property
    def last_data_update(self) -> float:
        return self._last_data_update

    def seconds_since_update(self) -> float:
        return self._clock() - self._last_data_update

    def start_monitoring(self) -> None:
        """Idle -> Monitoring. No-op when already monitoring."""
        if self._task is not None:
            return
        self._last_data_update = self._clock()
        for name in self._activity_topics:
            self._unsubscribers.append(self._bus.subscribe(any_topic(name), self._on_activity))
        self._task = asyncio.get_running_loop().create_task(self._run())
        _logger.debug("Health monitoring started (interval=%ss)", self._interval)

    async def stop_monitoring(self) -> None:
        """Monitoring -> Idle. No-op when idle."""
        task = self._task
        if task is None:
            return
        self._task = None
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        # A reconnect started by the timer runs to completion.
        recovery = self._recovery
        if recovery is not None and not recovery.done():
            _logger.debug("Waiting for in-flight reconnect before stopping")
            with contextlib.suppress(Exception):
                await recovery
        _logger.debug("Health monitoring stopped")

    def _on_activity(self, _event: Any) -> None:
        self._last_data_update = self._clock()

    def mark_data_update(self) -> None:
        """Reset the staleness timer (e.g. after a successful local write)."""
        self._last_data_update = self._clock()

    async def force_health_check(self) -> HealthReport:
        return await self.check_connection_health()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                report = await self.check_connection_health()
                if not report.reconnect_requested:
                    await self._reconnector.check_status()
            except Exception:
                _logger.warning("Periodic health check failed", exc_info=True)

    async def check_connection_health(self) -> HealthReport:
        elapsed = self.seconds_since_update()
        stale = is_stale(now=self._clock(), last_update=self._last_data_update, threshold=self._stale_threshold)
        reconnect_requested = False

        if stale and self._reconnector.realtime_disabled:
            _logger.debug("No data update for %.0fs; realtime disabled, not reconnecting", elapsed)
            self._last_data_update = self._clock()
        elif stale:
            _logger.warning("No data update for %.0fs; forcing reconnect", elapsed)
            await self._attempt_reconnection()
            reconnect_requested = True

        network_reachable = await self._probe_network()

        backend_reachable: bool | None = None
        if self._gateway is not None:
            try:
                await self._gateway.ping()
                backend_reachable = True
            except Exception:
                _logger.warning("Backend probe failed", exc_info=True)
                backend_reachable = False
                if not reconnect_requested and not self._reconnector.realtime_disabled:
                    await self._attempt_reconnection()
                    reconnect_requested = True

        return HealthReport(
            seconds_since_update=elapsed,
            stale=stale,
            network_reachable=network_reachable,
            backend_reachable=backend_reachable,
            reconnect_requested=reconnect_requested,
        )

    async def _probe_network(self) -> bool | None:
        if self._probe is None:
            return None
        try:
            reachable = await self._probe.check()
        except Exception:
            _logger.warning("Connectivity probe raised", exc_info=True)
            return False
        if not reachable:
            _logger.warning("Connectivity probe failed; network appears down")
        return reachable

    async def _attempt_reconnection(self) -> None:
        """Start (or join) a reconnect that outlives cancellation of the caller."""
        recovery = self._recovery
        if recovery is None or recovery.done():
            recovery = asyncio.ensure_future(self._reconnector.force_reconnect())
            recovery.add_done_callback(_log_recovery_failure)
            self._recovery = recovery
        try:
            await asyncio.shield(recovery)
        except Exception:
            _logger.warning("Reconnect attempt failed", exc_info=True)
        finally:
            self._last_data_update = self._clock()


def _log_recovery_failure(recovery: asyncio.Future[Any]) -> None:
    if recovery.cancelled():
        return
    exc = recovery.exception()
    if exc is not None:
        _logger.debug("Reconnect task ended with %r", exc)
