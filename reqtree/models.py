"""Canonical data structures for reqtree.

Defined once here, referenced everywhere else. Documents are stored as
plain dicts with these field names; services validate them into these
models on the way out.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

PROJECTS = "projects"
REQUIREMENTS = "requirements"

DEFAULT_SECTION_PREFIX = "REQ"


def comments_collection(requirement_id: str) -> str:
    """Comments are owned by their requirement and live under it."""
    return f"{REQUIREMENTS}/{requirement_id}/comments"


# ---------------------------------------------------------------------------
# Canonical data structures
# ---------------------------------------------------------------------------


class StatusOption(BaseModel):
    id: str
    name: str
    color: str = "gray"


class ChangeLogEntry(BaseModel):
    """One immutable audit record. Appended, never edited or removed."""

    type: Literal["created", "updated", "moved"]
    timestamp: datetime
    user_id: str | None = None
    # {field: {"old": ..., "new": ...}}, or for "created"
    # {"action": "created", "new_value": <snapshot>}
    changes: dict[str, Any] = Field(default_factory=dict)


class Requirement(BaseModel):
    id: str
    title: str
    description: str = ""
    project_id: str
    parent_id: str | None = None
    level: int = 0
    order: int = 1
    hierarchical_path: str = ""
    status: str = "draft"
    tags: list[str] = Field(default_factory=list)
    section_prefix: str | None = None  # root-only override of the project prefix
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    change_log: list[ChangeLogEntry] = Field(default_factory=list)


class Comment(BaseModel):
    id: str
    requirement_id: str
    parent_comment_id: str | None = None
    body: str
    author_id: str | None = None
    resolved: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Project(BaseModel):
    id: str
    name: str
    description: str = ""
    section_prefix: str = DEFAULT_SECTION_PREFIX
    created_by: str | None = None
    members: list[str] = Field(default_factory=list)
    status_options: list[StatusOption] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MutationResult(BaseModel):
    """Outcome of a structural mutation.

    The primary write has always committed when a result is returned.
    ``regenerated`` is False when path regeneration was skipped (no-op) or
    failed; ``error`` then carries the failure and the caller may retry with
    ``RequirementService.regenerate_paths``.
    """

    requirement_id: str
    changed: bool = True
    regenerated: bool = False
    error: str | None = None
