"""Typed record models for cached backend collections."""

from ledgersync.models._base import IsoTimestamp, LedgerRecord, parse_iso_timestamp
from ledgersync.models.records import (
    Agency,
    AgentRechargeRequest,
    AuditLog,
    Card,
    CardType,
    CommissionProfile,
    Contract,
    OperationType,
    Order,
    Partner,
    RechargePaymentMethod,
    Transaction,
    User,
)

__all__ = [
    "Agency",
    "AgentRechargeRequest",
    "AuditLog",
    "Card",
    "CardType",
    "CommissionProfile",
    "Contract",
    "IsoTimestamp",
    "LedgerRecord",
    "OperationType",
    "Order",
    "Partner",
    "RechargePaymentMethod",
    "Transaction",
    "User",
    "parse_iso_timestamp",
]
