"""Project service: project documents, membership, and the section prefix."""

import logging
from pathlib import Path
from typing import Any

import yaml

from reqtree.errors import NotFoundError, RegenerationError, UnauthorizedError
from reqtree.models import DEFAULT_SECTION_PREFIX, PROJECTS, Project, StatusOption
from reqtree.projects.access import ensure_member, ensure_project_creator
from reqtree.projects.schemas import CreateProjectRequest, PatchProjectRequest
from reqtree.requirements.regeneration import regenerate_project_paths
from reqtree.store.gateway import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)

_TAXONOMY_PATH = Path(__file__).parent.parent / "status_taxonomy.yml"


def load_default_status_options(path: Path = _TAXONOMY_PATH) -> list[StatusOption]:
    """Read the default status taxonomy. Empty if the file is missing."""
    if not path.exists():
        return []
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return [StatusOption.model_validate(s) for s in data.get("statuses", [])]


class ProjectService:
    """Project CRUD. Requirements read the section prefix and membership from here."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_project(
        self, request: CreateProjectRequest, user_id: str | None,
    ) -> Project:
        """Create a project. The creator becomes its first member."""
        if user_id is None:
            raise UnauthorizedError(None, "create a project")

        status_options = request.status_options or load_default_status_options()
        batch = self._store.batch()
        project_id = batch.set(PROJECTS, {
            "name": request.name,
            "description": request.description,
            "section_prefix": request.section_prefix or DEFAULT_SECTION_PREFIX,
            "created_by": user_id,
            "members": [user_id],
            "status_options": [s.model_dump() for s in status_options],
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        await batch.commit()
        logger.info("Created project %s", project_id)
        return await self.get_project(project_id)

    async def find_project(self, project_id: str) -> dict[str, Any] | None:
        """Raw project document, or None."""
        return await self._store.get_by_id(PROJECTS, project_id)

    async def get_project(self, project_id: str) -> Project:
        doc = await self.find_project(project_id)
        if doc is None:
            raise NotFoundError("Project", project_id)
        return Project.model_validate(doc)

    async def get_user_projects(self, user_id: str | None) -> list[Project]:
        """Projects the user is a member of."""
        if user_id is None:
            raise UnauthorizedError(None, "list projects")
        docs = await self._store.query_array_contains(PROJECTS, "members", user_id)
        return [Project.model_validate(d) for d in docs]

    async def get_section_prefix(self, project_id: str) -> str:
        """The project's prefix for root paths, "REQ" if unset or missing."""
        doc = await self.find_project(project_id)
        if doc is None:
            logger.warning("Project %s not found, using default prefix", project_id)
            return DEFAULT_SECTION_PREFIX
        return doc.get("section_prefix") or DEFAULT_SECTION_PREFIX

    async def update_project(
        self, project_id: str, request: PatchProjectRequest, user_id: str | None,
    ) -> Project:
        """Update project fields. Members only.

        A section_prefix change regenerates the paths of every requirement in
        the project.
        """
        doc = await self.find_project(project_id)
        if doc is None:
            raise NotFoundError("Project", project_id)
        ensure_member(doc, user_id, f"edit project {project_id}")

        fields: dict[str, Any] = {}
        for field_name in request.model_fields_set:
            value = getattr(request, field_name)
            if value is None:
                continue
            if field_name == "status_options":
                value = [s.model_dump() for s in value]
            if field_name == "members" and doc.get("created_by") not in value:
                # The creator cannot be removed from their own project.
                value = [doc["created_by"], *value]
            fields[field_name] = value

        if fields:
            batch = self._store.batch()
            batch.update(PROJECTS, project_id, {**fields, "updated_at": SERVER_TIMESTAMP})
            await batch.commit()

        if "section_prefix" in fields and fields["section_prefix"] != doc.get("section_prefix"):
            # A failed regeneration leaves the prefix update in place.
            try:
                await regenerate_project_paths(self._store, project_id, fields["section_prefix"])
            except RegenerationError:
                logger.exception(
                    "Error regenerating hierarchical paths after prefix change of project %s",
                    project_id,
                )
        return await self.get_project(project_id)

    async def delete_project(self, project_id: str, user_id: str | None) -> None:
        """Delete a project document. Creator only."""
        doc = await self.find_project(project_id)
        if doc is None:
            raise NotFoundError("Project", project_id)
        ensure_project_creator(doc, user_id, f"delete project {project_id}")

        batch = self._store.batch()
        batch.delete(PROJECTS, project_id)
        await batch.commit()
        logger.info("Deleted project %s", project_id)
