"""View refresh registry.

Views register a refresh callback under an id. Bus events are mapped to
refresh data kinds, and data kinds to view ids, through the routing tables,
so one backend change refreshes exactly the views that show it without any
view knowing about any other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from ledgersync.bus import EventBus
from ledgersync.exceptions import ViewRefreshError
from ledgersync.routing import RoutingConfig
from ledgersync.state.events import (
    GLOBAL_REFRESH_REQUESTED,
    SHOW_TOAST,
    GlobalRefreshRequested,
    Severity,
    ShowToast,
    any_topic,
)
from ledgersync.state.store import CacheStore

_logger = logging.getLogger(__name__)

REFRESH_ERROR_MESSAGE = "Error while updating data"


class RefreshableView(Protocol):
    """A view that can re-read its data. ``cleanup()`` is optional."""

    def refresh(self) -> Awaitable[None]:
        ...


class RefreshRegistry:
    def __init__(self, routing: RoutingConfig) -> None:
        self._routing = routing
        self._views: dict[str, RefreshableView] = {}
        self._bus: EventBus | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def view_ids(self) -> tuple[str, ...]:
        return tuple(self._views)

    def is_registered(self, view_id: str) -> bool:
        return view_id in self._views

    def register(self, view_id: str, view: RefreshableView) -> None:
        """Register *view*; an existing entry under the same id is replaced."""
        self._views[view_id] = view

    def unregister(self, view_id: str) -> None:
        """Remove the view, then run its cleanup.

        Removal comes first so a cleanup that unregisters itself finds
        nothing and returns.
        """
        view = self._views.pop(view_id, None)
        if view is None:
            return
        cleanup = getattr(view, "cleanup", None)
        if cleanup is None:
            return
        try:
            cleanup()
        except Exception:
            _logger.warning("Cleanup of view %s failed", view_id, exc_info=True)

    # ------------------------------------------------------------------
    # Refresh fan-out
    # ------------------------------------------------------------------

    async def refresh_view(self, view_id: str) -> ViewRefreshError | None:
        """Refresh one view. Failures are logged and returned, never raised."""
        view = self._views.get(view_id)
        if view is None:
            return None
        try:
            await view.refresh()
        except Exception as exc:
            _logger.warning("Refreshing view %s failed", view_id, exc_info=True)
            error = ViewRefreshError(f"View {view_id} failed to refresh: {exc}", view_id=view_id)
            error.__cause__ = exc
            return error
        return None

    async def refresh_by_data_kind(self, kind: str) -> list[ViewRefreshError]:
        return await self.refresh_by_data_kinds((kind,))

    async def refresh_by_data_kinds(self, kinds: Iterable[str]) -> list[ViewRefreshError]:
        view_ids: list[str] = []
        for kind in kinds:
            for view_id in self._routing.views_for(kind):
                if view_id not in view_ids:
                    view_ids.append(view_id)
        return await self._refresh_many(view_ids)

    async def refresh_all(self) -> list[ViewRefreshError]:
        return await self._refresh_many(list(self._views))

    async def _refresh_many(self, view_ids: list[str]) -> list[ViewRefreshError]:
        targets = [view_id for view_id in view_ids if view_id in self._views]
        if not targets:
            return []
        results = await asyncio.gather(*(self.refresh_view(view_id) for view_id in targets))
        return [error for error in results if error is not None]

    # ------------------------------------------------------------------
    # Bus wiring
    # ------------------------------------------------------------------

    def attach(self, bus: EventBus) -> None:
        """Listen for every routed event on *bus*."""
        if self._bus is not None:
            return
        self._bus = bus
        for event_name in self._routing.events:
            handler = self._make_event_handler(event_name)
            self._unsubscribers.append(bus.subscribe(any_topic(event_name), handler))

    def detach(self) -> None:
        """Stop listening and forget every registered view (session end)."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._bus = None
        self._views.clear()

    def _make_event_handler(self, event_name: str) -> Callable[[Any], Awaitable[None]]:
        async def _handler(_payload: Any) -> None:
            kinds = self._routing.kinds_for_event(event_name)
            _logger.debug("Event %s refreshes data kinds %s", event_name, kinds)
            await self.refresh_by_data_kinds(kinds)

        return _handler

    async def trigger_global_refresh(self) -> list[ViewRefreshError]:
        if self._bus is not None:
            await self._bus.publish(GLOBAL_REFRESH_REQUESTED, GlobalRefreshRequested())
        return await self.refresh_all()


@dataclass(eq=False)
class CallbackView:
    """Registered view built from plain callbacks.

    A failing refresh is reported with an error toast instead of raising.
    """

    view_id: str
    registry: RefreshRegistry
    refresh_data: Callable[[], Awaitable[None]]
    render: Callable[[], Awaitable[None]] | None = None
    bus: EventBus | None = None

    async def refresh(self) -> None:
        try:
            await self.refresh_data()
            if self.render is not None:
                await self.render()
        except Exception:
            _logger.warning("Error refreshing view %s", self.view_id, exc_info=True)
            if self.bus is not None:
                await self.bus.publish(SHOW_TOAST, ShowToast(message=REFRESH_ERROR_MESSAGE, severity=Severity.ERROR))

    def cleanup(self) -> None:
        self.registry.unregister(self.view_id)


def refreshable_view(
    registry: RefreshRegistry,
    view_id: str,
    refresh_data: Callable[[], Awaitable[None]],
    render: Callable[[], Awaitable[None]] | None = None,
    *,
    bus: EventBus | None = None,
) -> CallbackView:
    """Create and register a :class:`CallbackView`."""
    view = CallbackView(view_id=view_id, registry=registry, refresh_data=refresh_data, render=render, bus=bus)
    registry.register(view_id, view)
    return view


def invalidate_data_kinds(store: CacheStore, routing: RoutingConfig, data_kinds: Iterable[str]) -> None:
    """Invalidate the cache kinds behind refresh data kinds (manual refresh)."""
    for data_kind in data_kinds:
        caches = routing.caches_for(data_kind)
        if not caches:
            _logger.debug("No cache kinds behind data kind %s", data_kind)
            continue
        store.invalidate_many(caches)
