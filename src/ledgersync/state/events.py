"""Domain events published on the bus.

Every change-feed notification is normalized into a
:class:`ChangeNotification` before it reaches the subscription handlers.
Bus payloads are frozen pydantic models addressed by a :class:`Topic`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"


class Severity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ChangeNotification(BaseModel):
    """A single row change delivered by the live change feed."""

    model_config = ConfigDict(frozen=True)

    table: str
    change_type: ChangeType = ChangeType.UNKNOWN
    record: dict[str, Any] = Field(default_factory=dict, description="Row after the change")
    old_record: dict[str, Any] = Field(default_factory=dict, description="Row before the change")
    commit_timestamp: datetime | None = None
    received_at: datetime = Field(default_factory=_utcnow)
    raw: dict[str, Any] = Field(default_factory=dict, description="Original payload (as received)")

    @field_validator("table")
    @classmethod
    def _normalize_table(cls, value: str) -> str:
        table = value.strip()
        if not table:
            raise ValueError("table must be non-empty")
        return table

    @property
    def record_id(self) -> str | None:
        for source in (self.record, self.old_record):
            value = source.get("id")
            if value is not None and value != "":
                return str(value)
        return None


class BusEvent(BaseModel):
    """Base for every payload carried on the event bus."""

    model_config = ConfigDict(frozen=True)


class DataUpdated(BusEvent):
    kind: str = Field(..., description="Entity name of the changed table, e.g. 'transaction'")
    change: ChangeNotification
    timestamp: datetime = Field(default_factory=_utcnow)


class EntityChanged(BusEvent):
    entity: str
    change: ChangeNotification


class ShowToast(BusEvent):
    message: str
    severity: Severity = Severity.INFO


class GlobalRefreshRequested(BusEvent):
    requested_at: datetime = Field(default_factory=_utcnow)


class BusinessEvent(BusEvent):
    """UI-originated business event such as ``transactionValidated``."""

    name: str
    detail: dict[str, Any] = Field(default_factory=dict)


E = TypeVar("E", bound=BusEvent)


@dataclass(frozen=True)
class Topic(Generic[E]):
    """A named bus channel carrying payloads of one type."""

    name: str
    payload_type: type[E]


DATA_UPDATED: Topic[DataUpdated] = Topic("dataUpdated", DataUpdated)
SHOW_TOAST: Topic[ShowToast] = Topic("showToast", ShowToast)
GLOBAL_REFRESH_REQUESTED: Topic[GlobalRefreshRequested] = Topic(
    "globalRefreshRequested", GlobalRefreshRequested
)


def entity_changed_topic(entity: str) -> Topic[EntityChanged]:
    """Topic for ``<entity>Changed`` events, e.g. ``transactionChanged``."""
    return Topic(f"{entity}Changed", EntityChanged)


def business_topic(name: str) -> Topic[BusinessEvent]:
    return Topic(name, BusinessEvent)


def any_topic(name: str) -> Topic[BusEvent]:
    """Subscriber-side topic accepting whatever payload is published under *name*."""
    return Topic(name, BusEvent)
