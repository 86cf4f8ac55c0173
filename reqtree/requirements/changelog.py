"""Changelog entries: the append-only audit trail kept on every requirement.

Entry timestamps are concrete client-side datetimes. The store can only
resolve SERVER_TIMESTAMP as a top-level document field, never inside the
change_log array.
"""

from datetime import UTC, datetime
from typing import Any

from reqtree.models import ChangeLogEntry
from reqtree.utils.json import json_value

# Bookkeeping fields never recorded as changes.
IGNORED_FIELDS = frozenset({"updated_at", "change_log"})


def diff_fields(current: dict[str, Any], updates: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return {field: {"old", "new"}} for every update that changes a value.

    Comparison is one level deep: values are compared with == after the
    new value is normalized the way the store would persist it.
    """
    changes: dict[str, dict[str, Any]] = {}
    for name, new_value in updates.items():
        if name in IGNORED_FIELDS:
            continue
        old_value = current.get(name)
        if json_value(new_value) == old_value:
            continue
        changes[name] = {"old": old_value, "new": new_value}
    return changes


def _entry(kind: str, user_id: str | None, changes: dict[str, Any]) -> dict[str, Any]:
    entry = ChangeLogEntry(
        type=kind,
        timestamp=datetime.now(UTC),
        user_id=user_id,
        changes=changes,
    )
    return entry.model_dump()


def created_entry(snapshot: dict[str, Any], user_id: str | None) -> dict[str, Any]:
    """First entry of a requirement: a full snapshot of the new document."""
    return _entry("created", user_id, {"action": "created", "new_value": snapshot})


def updated_entry(
    current: dict[str, Any], updates: dict[str, Any], user_id: str | None,
) -> dict[str, Any] | None:
    """Entry for a field update, or None when nothing actually changes."""
    changes = diff_fields(current, updates)
    if not changes:
        return None
    return _entry("updated", user_id, changes)


def moved_entry(changes: dict[str, dict[str, Any]], user_id: str | None) -> dict[str, Any]:
    """Entry for a move: old/new parent_id, level and order."""
    return _entry("moved", user_id, changes)
