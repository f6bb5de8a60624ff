"""Helpers for safe debug logging.

Change payloads and backend rows carry credentials and identity documents
(user passwords, card numbers, ID card scans). This module scrubs those
fields before they reach DEBUG logs.

Keys are compared case-insensitively with underscores ignored, so
``full_card_number`` and ``fullCardNumber`` are treated alike.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pin",
        "token",
        "apikey",
        "authorization",
        "cookie",
        "idcardnumber",
        "idcardimageurl",
        "preuveurl",
    }
)

#: Account identifiers: only the last four characters are logged so a card or
#: phone can still be told apart when reading traces.
_TAIL_KEYS: frozenset[str] = frozenset(
    {
        "cardnumber",
        "fullcardnumber",
        "phone",
        "phonenumber",
        "beneficiaryphone",
    }
)

_VISIBLE_TAIL = 4


def _normalize_key(key: Any) -> str:
    return str(key).replace("_", "").lower()


def mask_tail(value: Any) -> str:
    """``5399000011112222`` -> ``************2222``; short values are fully redacted."""
    text = "".join(str(value).split())
    if len(text) <= _VISIBLE_TAIL:
        return REDACTED
    return "*" * (len(text) - _VISIBLE_TAIL) + text[-_VISIBLE_TAIL:]


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a scrubbed copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {str(k): _redact_entry(k, v, max_string, _depth + 1) for k, v in value.items()}
    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return repr(value)


def _redact_entry(key: Any, value: Any, max_string: int, depth: int) -> Any:
    normalized = _normalize_key(key)
    if normalized in _SECRET_KEYS:
        return REDACTED
    if normalized in _TAIL_KEYS and value not in (None, ""):
        return mask_tail(value)
    return redact_for_log(value, max_string=max_string, _depth=depth)
