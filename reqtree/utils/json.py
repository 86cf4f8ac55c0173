"""JSON helpers for document bodies stored in the documents table."""

import json
from datetime import date, datetime
from typing import Any


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_document(data: dict[str, Any]) -> str:
    """Serialize a document body. Datetimes become ISO-8601 strings."""
    return json.dumps(data, default=_default)


def parse_document(raw: str | dict | None) -> dict[str, Any]:
    """Parse a stored document body, returning {} for empty or invalid JSON.

    Accepts dicts as-is without re-parsing.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def json_value(value: Any) -> Any:
    """Normalize a value to what it becomes after a JSON round-trip.

    Used when comparing an incoming value against a stored one.
    """
    return json.loads(json.dumps(value, default=_default))
