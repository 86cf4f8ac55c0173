"""Request schemas for project endpoints."""

from pydantic import BaseModel, Field

from reqtree.models import StatusOption

# Prefixes must not contain the "_" or "." separators used in paths.
SECTION_PREFIX_PATTERN = r"^[A-Za-z][A-Za-z0-9-]*$"


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    section_prefix: str | None = Field(default=None, pattern=SECTION_PREFIX_PATTERN)
    status_options: list[StatusOption] | None = None


class PatchProjectRequest(BaseModel):
    """Fields to update on a project. Only fields present in the request body are changed."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    section_prefix: str | None = Field(default=None, pattern=SECTION_PREFIX_PATTERN)
    members: list[str] | None = None
    status_options: list[StatusOption] | None = None
