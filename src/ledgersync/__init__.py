"""ledgersync - client-side cache coherency for the ledger operations platform."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ledgersync")
except PackageNotFoundError:
    __version__ = "0+local"
from ledgersync.bus import EventBus
from ledgersync.client import SyncClient
from ledgersync.config import FeedConfig, SyncConfig
from ledgersync.exceptions import (
    GatewayError,
    InvalidStateTransitionError,
    ReconnectionError,
    SubscriptionError,
    SyncConfigError,
    SyncError,
    UnknownCacheKindError,
    ViewRefreshError,
)
from ledgersync.realtime import (
    HealthMonitor,
    HealthReport,
    ReconnectionController,
    StatusReport,
    SubscriptionManager,
    SubscriptionState,
)
from ledgersync.refresh import CallbackView, RefreshRegistry, refreshable_view
from ledgersync.routing import RoutingConfig, WatchedTable, default_routing, load_routing
from ledgersync.state import CacheKindSpec, CacheStore, IndexSpec, default_kind_specs
from ledgersync.state.events import (
    DATA_UPDATED,
    GLOBAL_REFRESH_REQUESTED,
    SHOW_TOAST,
    BusinessEvent,
    ChangeNotification,
    ChangeType,
    DataUpdated,
    EntityChanged,
    GlobalRefreshRequested,
    Severity,
    ShowToast,
    Topic,
)

__all__ = [
    "__version__",
    "BusinessEvent",
    "CacheKindSpec",
    "CacheStore",
    "CallbackView",
    "ChangeNotification",
    "ChangeType",
    "DATA_UPDATED",
    "DataUpdated",
    "EntityChanged",
    "EventBus",
    "FeedConfig",
    "GLOBAL_REFRESH_REQUESTED",
    "GatewayError",
    "GlobalRefreshRequested",
    "HealthMonitor",
    "HealthReport",
    "IndexSpec",
    "InvalidStateTransitionError",
    "ReconnectionController",
    "ReconnectionError",
    "RefreshRegistry",
    "RoutingConfig",
    "SHOW_TOAST",
    "Severity",
    "ShowToast",
    "StatusReport",
    "SubscriptionError",
    "SubscriptionManager",
    "SubscriptionState",
    "SyncClient",
    "SyncConfig",
    "SyncConfigError",
    "SyncError",
    "Topic",
    "UnknownCacheKindError",
    "ViewRefreshError",
    "WatchedTable",
    "default_kind_specs",
    "default_routing",
    "load_routing",
    "refreshable_view",
]
