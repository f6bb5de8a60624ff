"""Realtime layer: change-feed subscriptions, recovery and health monitoring."""

from ledgersync.realtime.feed import ChangeFeed, SubscriptionState
from ledgersync.realtime.health import HealthMonitor, HealthReport
from ledgersync.realtime.reconnect import ReconnectionController, ReconnectionState, ReconnectPhase
from ledgersync.realtime.subscriptions import StatusReport, Subscription, SubscriptionManager

__all__ = [
    "ChangeFeed",
    "HealthMonitor",
    "HealthReport",
    "ReconnectPhase",
    "ReconnectionController",
    "ReconnectionState",
    "StatusReport",
    "Subscription",
    "SubscriptionManager",
    "SubscriptionState",
]
