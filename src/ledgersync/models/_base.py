"""Base model for backend records.

Every record model inherits from :class:`LedgerRecord` which provides:

* ``alias_generator=to_camel`` so camelCase backend keys map to snake_case
  fields, while snake_case keys (the backend mixes both) still populate by
  name.
* ``extra="allow"`` so columns this library does not model survive a
  round-trip to the views.
* A ``model_validator(mode="before")`` that turns empty strings into
  ``None`` so optional fields fall back to their default.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def parse_iso_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware datetime."""
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


IsoTimestamp = Annotated[datetime | None, BeforeValidator(parse_iso_timestamp)]
"""Annotated type that coerces ISO strings to UTC-aware datetimes."""


class LedgerRecord(BaseModel):
    """Base for all cached backend records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    id: str

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return {key: (None if value == "" else value) for key, value in values.items()}
