"""Live change feed interface consumed by the subscription manager."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol


class SubscriptionState(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    ERRORED = "errored"
    CLOSED = "closed"


#: Called on the event loop thread with the raw change payload.
OnChange = Callable[[dict[str, Any]], None]
#: Called on the event loop thread whenever a channel changes state.
OnStatus = Callable[[SubscriptionState], None]


class ChangeFeed(Protocol):
    """Push-subscription primitive, one channel per watched table.

    Treated as unreliable: a channel may silently stop delivering or move to
    an errored/closed state at any time.
    """

    async def subscribe(self, table: str, on_change: OnChange, on_status: OnStatus) -> Any:
        ...

    async def unsubscribe(self, handle: Any) -> None:
        ...

    def is_connected(self) -> bool:
        ...

    async def disconnect(self) -> None:
        ...
