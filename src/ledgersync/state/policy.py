"""Deterministic recovery policy.

This module contains *no* I/O. The subscription manager and health monitor
sample their inputs and ask these functions what to do.
"""

from __future__ import annotations


def should_force_reconnect(*, total: int, errored: int, transport_connected: bool) -> bool:
    """Decide whether a status sample warrants a full reconnect.

    Policy:
    - all open subscriptions errored/closed: reconnect.
    - no subscriptions at all while the transport reports disconnected: reconnect.
    - some but not all errored: tolerated, to avoid flapping on one noisy table.
    """
    if total == 0:
        return not transport_connected
    return errored >= total


def is_stale(*, now: float, last_update: float, threshold: float) -> bool:
    return (now - last_update) > threshold
