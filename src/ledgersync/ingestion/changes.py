"""Normalization of raw change-feed payloads.

Two payload shapes are accepted:

- realtime channel messages: ``eventType``, ``new``, ``old``, ``commit_timestamp``
- database webhook messages: ``type``, ``record``, ``old_record``

Anything else the payload carries is preserved under ``raw``; the core never
interprets row contents beyond the record id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ledgersync.models import parse_iso_timestamp
from ledgersync.state.events import ChangeNotification, ChangeType


def _first_dict(payload: dict[str, Any], *keys: str) -> dict[str, Any]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _change_type(payload: dict[str, Any]) -> ChangeType:
    for key in ("eventType", "event_type", "type"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            try:
                return ChangeType(value.strip().upper())
            except ValueError:
                return ChangeType.UNKNOWN
    return ChangeType.UNKNOWN


def _commit_timestamp(payload: dict[str, Any]) -> datetime | None:
    value = payload.get("commit_timestamp") or payload.get("commitTimestamp")
    try:
        return parse_iso_timestamp(value)
    except (TypeError, ValueError):
        return None


def build_change_notification(payload: dict[str, Any], *, table: str) -> ChangeNotification:
    """Build a notification for *table* from a raw feed payload.

    The payload's own ``table`` field wins over the subscribed table name so a
    wildcard subscription still reports the table that actually changed.
    """
    payload_table = payload.get("table")
    effective_table = payload_table if isinstance(payload_table, str) and payload_table.strip() else table
    return ChangeNotification(
        table=effective_table,
        change_type=_change_type(payload),
        record=_first_dict(payload, "new", "record"),
        old_record=_first_dict(payload, "old", "old_record"),
        commit_timestamp=_commit_timestamp(payload),
        raw=payload,
    )
