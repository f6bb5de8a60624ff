"""Cache state: kinds, store, events and recovery policy."""

from ledgersync.state.kinds import CacheKindSpec, IndexSpec, default_kind_specs
from ledgersync.state.store import CacheStore

__all__ = ["CacheKindSpec", "CacheStore", "IndexSpec", "default_kind_specs"]
