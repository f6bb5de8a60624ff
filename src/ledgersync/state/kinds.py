"""Cache kinds and the derived indices built from them."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ledgersync.models import (
    Agency,
    AgentRechargeRequest,
    AuditLog,
    Card,
    CardType,
    CommissionProfile,
    Contract,
    LedgerRecord,
    OperationType,
    Order,
    Partner,
    RechargePaymentMethod,
    Transaction,
    User,
)

ID_INDEX = "id"

Hydrator = Callable[[list[Any], Mapping[str, Sequence[Any]]], list[Any]]


@dataclass(frozen=True)
class IndexSpec:
    """A lookup map derived from one cache kind.

    Records for which ``where`` is false, or whose key is ``None``, are left
    out. On duplicate keys the last record wins.
    """

    name: str
    key: Callable[[Any], Hashable | None]
    where: Callable[[Any], bool] | None = None

    def build(self, records: Sequence[Any]) -> dict[Hashable, Any]:
        index: dict[Hashable, Any] = {}
        for record in records:
            if self.where is not None and not self.where(record):
                continue
            key = self.key(record)
            if key is None:
                continue
            index[key] = record
        return index


def _record_id(record: Any) -> Hashable | None:
    return getattr(record, "id", None)


@dataclass(frozen=True)
class CacheKindSpec:
    """How one cache kind is fetched, validated and indexed.

    Parameters
    ----------
    kind
        Cache key used by views (``store.get(kind)``).
    table
        Backend table read through the gateway.
    model
        Record model each raw row is validated into.
    indices
        Extra named indices; the ``id`` index always exists.
    depends_on
        Kinds read while hydrating this one. Invalidating any of them
        invalidates this kind as well.
    hydrate
        Joins dependency collections into freshly fetched records.
    """

    kind: str
    table: str
    model: type[LedgerRecord]
    indices: tuple[IndexSpec, ...] = ()
    depends_on: tuple[str, ...] = ()
    hydrate: Hydrator | None = None
    _index_map: dict[str, IndexSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index_map = {ID_INDEX: IndexSpec(ID_INDEX, _record_id)}
        for spec in self.indices:
            index_map[spec.name] = spec
        object.__setattr__(self, "_index_map", index_map)

    @property
    def index_names(self) -> tuple[str, ...]:
        return tuple(self._index_map)

    def index(self, name: str) -> IndexSpec:
        try:
            return self._index_map[name]
        except KeyError:
            raise KeyError(f"Cache kind {self.kind!r} has no index {name!r}") from None


def _hydrate_users(users: list[Any], deps: Mapping[str, Sequence[Any]]) -> list[Any]:
    agencies = {agency.id: agency for agency in deps.get("agencies", ())}
    hydrated: list[Any] = []
    for user in users:
        agency = agencies.get(user.agency_id) if user.agency_id else None
        hydrated.append(user.model_copy(update={"agency": agency}) if agency is not None else user)
    return hydrated


def _is_active(record: Any) -> bool:
    return getattr(record, "status", None) == "active"


def _simple(kind: str, model: type[LedgerRecord], *indices: IndexSpec) -> CacheKindSpec:
    return CacheKindSpec(kind=kind, table=kind, model=model, indices=indices)


def default_kind_specs() -> dict[str, CacheKindSpec]:
    """Cache kinds for the platform's backend tables."""
    specs = [
        CacheKindSpec(
            kind="users",
            table="users",
            model=User,
            depends_on=("agencies",),
            hydrate=_hydrate_users,
        ),
        _simple("partners", Partner),
        _simple("operation_types", OperationType),
        _simple("transactions", Transaction),
        _simple("agent_recharge_requests", AgentRechargeRequest),
        _simple("recharge_payment_methods", RechargePaymentMethod),
        _simple("cards", Card),
        _simple("orders", Order),
        _simple("card_types", CardType),
        _simple("commission_profiles", CommissionProfile),
        _simple(
            "contracts",
            Contract,
            IndexSpec("active_by_partner", key=lambda c: c.partner_id, where=_is_active),
        ),
        _simple(
            "agencies",
            Agency,
            IndexSpec("by_partner", key=lambda a: a.partner_id),
        ),
        _simple("audit_logs", AuditLog),
    ]
    return {spec.kind: spec for spec in specs}
