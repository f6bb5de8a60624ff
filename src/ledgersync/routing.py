"""Declarative routing tables.

Three tables tie one backend change to the right subset of views:

- ``tables``: watched table -> entity name and the cache kinds it invalidates
- ``events``: bus event name -> refresh data kinds
- ``views``: refresh data kind -> view ids

``data_kinds`` maps each refresh data kind back to the cache kinds behind it
(used by manual "refresh" actions). The built-in defaults can be replaced
section by section with a JSON file loaded at startup.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ledgersync.exceptions import SyncConfigError


class WatchedTable(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity: str = Field(..., description="Entity name used in dataUpdated and <entity>Changed")
    invalidates: tuple[str, ...] = Field(..., description="Cache kinds cleared on every change")

    @field_validator("entity")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        entity = value.strip()
        if not entity:
            raise ValueError("entity must be non-empty")
        return entity


class RoutingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    tables: dict[str, WatchedTable] = Field(default_factory=dict)
    events: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    views: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    data_kinds: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    def watched(self, table: str) -> WatchedTable | None:
        return self.tables.get(table)

    def kinds_for_event(self, event_name: str) -> tuple[str, ...]:
        return self.events.get(event_name, ())

    def views_for(self, data_kind: str) -> tuple[str, ...]:
        return self.views.get(data_kind, ())

    def caches_for(self, data_kind: str) -> tuple[str, ...]:
        return self.data_kinds.get(data_kind, ())

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base: RoutingConfig | None = None) -> RoutingConfig:
        """Build routing from *data*; sections it omits come from *base* (defaults)."""
        fallback = base if base is not None else default_routing()
        merged = fallback.model_dump()
        merged.update(dict(data))
        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            raise SyncConfigError(f"Invalid routing configuration: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path) -> RoutingConfig:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SyncConfigError(f"Cannot read routing file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SyncConfigError(f"Routing file {path} must contain a JSON object")
        return cls.from_mapping(data)


_DEFAULT_ROUTING: dict[str, Any] = {
    "tables": {
        "transactions": {"entity": "transaction", "invalidates": ["transactions", "users", "agencies"]},
        "agent_recharge_requests": {
            "entity": "agentRechargeRequest",
            "invalidates": ["agent_recharge_requests", "users", "agencies"],
        },
        "users": {"entity": "user", "invalidates": ["users"]},
        "agencies": {"entity": "agency", "invalidates": ["agencies"]},
        "partners": {"entity": "partner", "invalidates": ["partners"]},
        "operation_types": {"entity": "operationType", "invalidates": ["operation_types"]},
        "recharge_payment_methods": {"entity": "rechargePaymentMethod", "invalidates": ["recharge_payment_methods"]},
        "contracts": {"entity": "contract", "invalidates": ["contracts"]},
        "commission_profiles": {"entity": "commissionProfile", "invalidates": ["commission_profiles"]},
        "cards": {"entity": "card", "invalidates": ["cards"]},
        "card_types": {"entity": "cardType", "invalidates": ["card_types"]},
        "orders": {"entity": "order", "invalidates": ["orders"]},
    },
    "events": {
        # Change feed
        "transactionChanged": ["transactions", "users"],
        "agentRechargeRequestChanged": ["recharges", "users"],
        "userChanged": ["users"],
        "agencyChanged": ["users"],
        "partnerChanged": ["partners"],
        "operationTypeChanged": ["operations"],
        "rechargePaymentMethodChanged": ["recharges"],
        "contractChanged": ["contracts", "partners"],
        "commissionProfileChanged": ["contracts"],
        "cardChanged": ["cards"],
        "cardTypeChanged": ["cards"],
        "orderChanged": ["orders"],
        # UI business events
        "transactionValidated": ["transactions"],
        "transactionRejected": ["transactions"],
        "transactionCreated": ["transactions"],
        "transactionAssigned": ["transactions"],
        "rechargeApproved": ["recharges", "users"],
        "rechargeRejected": ["recharges"],
        "rechargeCreated": ["recharges"],
        "userUpdated": ["users"],
        "userCreated": ["users"],
        "userStatusChanged": ["users"],
        "partnerUpdated": ["partners"],
        "operationTypeUpdated": ["operations"],
        "operationTypeCreated": ["operations"],
        "operationTypeDeleted": ["operations"],
    },
    "views": {
        "transactions": [
            "admin-transaction-validation",
            "all-transactions",
            "agent-transaction-history",
            "admin-dashboard",
            "partner-dashboard",
        ],
        "users": ["admin-manage-users", "partner-manage-users", "admin-dashboard"],
        "recharges": ["admin-agent-recharges", "agent-recharge-history", "partner-user-recharges"],
        "operations": ["admin-manage-operation-types", "developer-manage-operation-types"],
        "partners": ["admin-manage-partners", "admin-dashboard"],
        "contracts": ["admin-commission-config"],
        "cards": ["admin-card-inventory", "partner-card-inventory"],
        "orders": ["admin-orders", "partner-orders"],
    },
    "data_kinds": {
        "transactions": ["transactions"],
        "users": ["users"],
        "recharges": ["agent_recharge_requests", "recharge_payment_methods"],
        "operations": ["operation_types"],
        "partners": ["partners"],
        "contracts": ["contracts", "commission_profiles"],
        "cards": ["cards", "card_types"],
        "orders": ["orders"],
    },
}


def default_routing() -> RoutingConfig:
    return RoutingConfig.model_validate(_DEFAULT_ROUTING)


def load_routing(path: str | Path | None) -> RoutingConfig:
    """Routing from *path* when given, else the built-in defaults."""
    if path is None:
        return default_routing()
    return RoutingConfig.from_file(path)
