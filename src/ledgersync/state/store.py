"""Per-kind collection cache with derived indices.

This is the only component that stores backend collections. Views read
through :meth:`CacheStore.get`; the subscription handlers and recovery paths
invalidate through :meth:`CacheStore.invalidate`.

Each kind carries an epoch counter. A fetch remembers the epoch it started
under and only stores its result if no invalidation happened in between, so
a slow response can never repopulate data a change notification already
declared stale.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from ledgersync._redact import redact_for_log
from ledgersync.exceptions import UnknownCacheKindError
from ledgersync.gateway import RemoteGateway
from ledgersync.state.kinds import ID_INDEX, CacheKindSpec, default_kind_specs

_logger = logging.getLogger(__name__)


class CacheStore:
    """In-memory store of cached collections keyed by cache kind."""

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        kinds: Mapping[str, CacheKindSpec] | None = None,
    ) -> None:
        self._gateway = gateway
        self._kinds: dict[str, CacheKindSpec] = dict(kinds) if kinds is not None else default_kind_specs()
        self._collections: dict[str, tuple[Any, ...]] = {}
        self._indices: dict[str, dict[str, Mapping[Hashable, Any]]] = {}
        self._epochs: dict[str, int] = dict.fromkeys(self._kinds, 0)
        self._inflight: dict[str, tuple[int, asyncio.Future[tuple[Any, ...]]]] = {}
        self._dependents: dict[str, set[str]] = {}
        for spec in self._kinds.values():
            for dep in spec.depends_on:
                if dep not in self._kinds:
                    raise UnknownCacheKindError(dep)
                self._dependents.setdefault(dep, set()).add(spec.kind)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(self._kinds)

    def spec(self, kind: str) -> CacheKindSpec:
        try:
            return self._kinds[kind]
        except KeyError:
            raise UnknownCacheKindError(kind) from None

    def is_populated(self, kind: str) -> bool:
        self.spec(kind)
        return kind in self._collections

    def epoch(self, kind: str) -> int:
        self.spec(kind)
        return self._epochs[kind]

    def populated_kinds(self) -> tuple[str, ...]:
        return tuple(self._collections)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, kind: str) -> tuple[Any, ...]:
        """Return the collection for *kind*, fetching it on a miss.

        Concurrent misses share one in-flight fetch.
        """
        spec = self.spec(kind)
        cached = self._collections.get(kind)
        if cached is not None:
            return cached

        inflight = self._inflight.get(kind)
        if inflight is None:
            epoch = self._epochs[kind]
            future = asyncio.ensure_future(self._load(spec, epoch))
            inflight = (epoch, future)
            self._inflight[kind] = inflight
            _logger.debug("Cache miss for %s (epoch %d); fetching", kind, epoch)
        return await asyncio.shield(inflight[1])

    async def get_map(self, kind: str, index: str = ID_INDEX) -> Mapping[Hashable, Any]:
        """Return the derived *index* of *kind*, building it once per epoch."""
        index_spec = self.spec(kind).index(index)
        cached = self._indices.get(kind, {}).get(index)
        if cached is not None:
            return cached

        records = await self.get(kind)
        built = MappingProxyType(index_spec.build(records))
        # Only keep the index if its source is still the current collection.
        if self._collections.get(kind) is records:
            self._indices.setdefault(kind, {})[index] = built
        return built

    async def get_by_id(self, kind: str, record_id: Any) -> Any | None:
        lookup = await self.get_map(kind)
        return lookup.get(str(record_id))

    async def select(
        self,
        kind: str,
        *,
        where: Mapping[str, Any] | Callable[[Any], bool] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Any]:
        """Filtered and sorted view over a cached collection.

        ``where`` is either a predicate or a mapping of attribute equalities.
        Records missing the ``order_by`` attribute sort last.
        """
        records = list(await self.get(kind))
        if where is not None:
            predicate = where if callable(where) else _equals_all(where)
            records = [record for record in records if predicate(record)]
        if order_by is not None:
            present = [r for r in records if getattr(r, order_by, None) is not None]
            missing = [r for r in records if getattr(r, order_by, None) is None]
            present.sort(key=lambda r: getattr(r, order_by), reverse=descending)
            records = present + missing
        if limit is not None:
            records = records[: max(limit, 0)]
        return records

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, kind: str) -> None:
        """Drop *kind*, its indices and every kind hydrated from it."""
        self.spec(kind)
        self._invalidate(kind, set())

    def invalidate_many(self, kinds: Iterable[str]) -> None:
        seen: set[str] = set()
        for kind in kinds:
            self.spec(kind)
            self._invalidate(kind, seen)

    def clear(self) -> None:
        """Invalidate every kind (full resync)."""
        self.invalidate_many(self._kinds)
        _logger.debug("Cleared all cache kinds")

    def _invalidate(self, kind: str, seen: set[str]) -> None:
        if kind in seen:
            return
        seen.add(kind)
        self._epochs[kind] += 1
        self._collections.pop(kind, None)
        self._indices.pop(kind, None)
        self._inflight.pop(kind, None)
        for dependent in sorted(self._dependents.get(kind, ())):
            self._invalidate(dependent, seen)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self, spec: CacheKindSpec, epoch: int) -> tuple[Any, ...]:
        kind = spec.kind
        try:
            records = await self._fetch_records(spec)
            if spec.hydrate is not None:
                records = await self._hydrate(spec, records)
            collection = tuple(records)
            if self._epochs[kind] == epoch:
                self._collections[kind] = collection
                _logger.debug("Cached %d %s record(s) (epoch %d)", len(collection), kind, epoch)
            else:
                _logger.debug(
                    "Discarding %s fetch from epoch %d; kind was invalidated (now epoch %d)",
                    kind,
                    epoch,
                    self._epochs[kind],
                )
            return collection
        finally:
            current = self._inflight.get(kind)
            if current is not None and current[0] == epoch:
                self._inflight.pop(kind, None)

    async def _fetch_records(self, spec: CacheKindSpec) -> list[Any]:
        try:
            rows = await self._gateway.fetch_all(spec.table)
        except Exception:
            _logger.warning("Fetching %s failed; caching an empty collection", spec.kind, exc_info=True)
            return []

        records: list[Any] = []
        for row in rows:
            try:
                records.append(spec.model.model_validate(row))
            except ValidationError:
                _logger.debug(
                    "Skipping invalid %s row %s",
                    spec.kind,
                    redact_for_log(row),
                    exc_info=True,
                )
        return records

    async def _hydrate(self, spec: CacheKindSpec, records: list[Any]) -> list[Any]:
        assert spec.hydrate is not None  # noqa: S101
        deps = {dep: await self.get(dep) for dep in spec.depends_on}
        try:
            return spec.hydrate(records, deps)
        except Exception:
            _logger.warning("Hydrating %s failed; keeping plain records", spec.kind, exc_info=True)
            return records


def _equals_all(criteria: Mapping[str, Any]) -> Callable[[Any], bool]:
    def _predicate(record: Any) -> bool:
        return all(getattr(record, key, None) == value for key, value in criteria.items())

    return _predicate
