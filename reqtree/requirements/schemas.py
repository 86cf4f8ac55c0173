"""Request schemas for requirement endpoints."""

from pydantic import BaseModel, Field, field_validator

from reqtree.models import MutationResult, Requirement
from reqtree.projects.schemas import SECTION_PREFIX_PATTERN


def dedupe_tags(tags: list[str] | None) -> list[str] | None:
    """Strip, drop empties, and keep the first occurrence of each tag."""
    if tags is None:
        return None
    return list(dict.fromkeys(t.strip() for t in tags if t.strip()))


class CreateRequirementRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    project_id: str
    parent_id: str | None = None
    status: str = "draft"
    tags: list[str] = Field(default_factory=list)
    section_prefix: str | None = Field(default=None, pattern=SECTION_PREFIX_PATTERN)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, v: list[str]) -> list[str]:
        return dedupe_tags(v) or []


class PatchRequirementRequest(BaseModel):
    """Editable requirement fields. Only fields present in the request body are changed."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: str | None = None
    tags: list[str] | None = None
    section_prefix: str | None = Field(default=None, pattern=SECTION_PREFIX_PATTERN)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        return dedupe_tags(v)


class MoveRequirementRequest(BaseModel):
    new_parent_id: str | None = None
    new_order: int = Field(ge=1)


class RegenerationResponse(BaseModel):
    project_id: str
    updated: int


class MutationResponse(BaseModel):
    """A mutation outcome plus the requirement as it reads afterwards (None once deleted)."""

    result: MutationResult
    requirement: Requirement | None = None
