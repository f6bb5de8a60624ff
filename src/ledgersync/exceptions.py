"""Custom exception hierarchy for ledgersync."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for all ledgersync errors."""


class SyncConfigError(SyncError):
    """Invalid or missing configuration."""


class UnknownCacheKindError(SyncError, KeyError):
    """A cache kind was requested that is not registered with the store."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Unknown cache kind: {kind!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class GatewayError(SyncError):
    """A remote gateway read failed (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        table: str = "",
    ) -> None:
        self.status_code = status_code
        self.table = table
        super().__init__(message)


class SubscriptionError(SyncError):
    """A change-feed channel could not be opened or closed."""

    def __init__(self, message: str, *, table: str = "") -> None:
        self.table = table
        super().__init__(message)


class ReconnectionError(SyncError):
    """Teardown or transport disconnect failed during recovery."""


class InvalidStateTransitionError(ReconnectionError):
    """The reconnection state machine was asked for an illegal transition."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition reconnection state from {current} to {target}")


class ViewRefreshError(SyncError):
    """A registered view failed to refresh.

    Never propagated to sibling views; used to report the failure on the bus.
    """

    def __init__(self, message: str, *, view_id: str = "") -> None:
        self.view_id = view_id
        super().__init__(message)
