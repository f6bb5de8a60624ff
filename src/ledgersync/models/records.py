"""Record models for the platform's backend tables."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from ledgersync.models._base import IsoTimestamp, LedgerRecord


class _IdCoercingRecord(LedgerRecord):
    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class Agency(_IdCoercingRecord):
    """Shared balance holder for the agents and partner of one agency."""

    name: str = ""
    partner_id: str | None = None
    solde_principal: float = 0.0
    solde_revenus: float = 0.0
    status: str = "active"
    created_at: IsoTimestamp = None
    updated_at: IsoTimestamp = None


class User(_IdCoercingRecord):
    name: str = ""
    email: str | None = None
    role: str = "agent"
    status: str = "active"
    partner_id: str | None = None
    agency_id: str | None = None
    #: Joined from the agencies collection when users are loaded.
    agency: Agency | None = None


class Partner(_IdCoercingRecord):
    name: str = ""
    partner_manager_id: str | None = None
    agency_name: str | None = None


class Contract(_IdCoercingRecord):
    name: str = ""
    partner_id: str | None = None
    status: str = "inactive"
    start_date: IsoTimestamp = None
    end_date: IsoTimestamp = None
    default_commission_config: dict[str, Any] = Field(default_factory=dict)
    exceptions: list[dict[str, Any]] = Field(default_factory=list)


class OperationType(_IdCoercingRecord):
    name: str = ""
    category: str = ""
    status: str = "active"
    impacts_balance: bool = False
    fee_application: str = "additive"
    form_fields: list[dict[str, Any]] = Field(default_factory=list, alias="fields")
    commission_config: dict[str, Any] = Field(default_factory=dict)


class Transaction(_IdCoercingRecord):
    date: IsoTimestamp = None
    agent_id: str | None = None
    op_type_id: str | None = None
    montant_principal: float = 0.0
    frais: float = 0.0
    montant_total: float = 0.0
    statut: str = ""
    validateur_id: str | None = None
    assigned_to: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class AgentRechargeRequest(_IdCoercingRecord):
    date: IsoTimestamp = None
    agent_id: str | None = None
    montant: float = 0.0
    method_id: str | None = None
    statut: str = ""
    processed_by: str | None = None
    processed_at: IsoTimestamp = None


class RechargePaymentMethod(_IdCoercingRecord):
    name: str = ""
    fee_type: str = "none"
    fee_value: float = 0.0
    status: str = "active"


class CardType(_IdCoercingRecord):
    name: str = ""
    status: str = "active"


class Card(_IdCoercingRecord):
    card_number: str = ""
    status: str = ""
    assigned_partner_id: str | None = None
    card_type_id: str | None = None
    activation_date: IsoTimestamp = None


class Order(_IdCoercingRecord):
    partner_id: str | None = None
    date: IsoTimestamp = None
    status: str = "pending"
    total_amount: float = 0.0
    total_cards: int = 0
    items: list[dict[str, Any]] = Field(default_factory=list)


class CommissionProfile(_IdCoercingRecord):
    name: str = ""
    commission_config: dict[str, Any] = Field(default_factory=dict)


class AuditLog(_IdCoercingRecord):
    action: str = ""
    user_id: str | None = None
    created_at: IsoTimestamp = None
