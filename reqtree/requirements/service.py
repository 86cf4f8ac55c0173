"""Requirement service: the create/update/move/delete protocol for a project forest.

Structural mutations run in two phases:

1. Primary phase: validate, then write the direct change and its changelog
   entry in one atomic batch. Failures here propagate and nothing is written.
2. Regeneration phase: reload every requirement of the project, recompute
   order/level/hierarchical_path with generate_paths, and write the changed
   annotations back in a second batch.

A failed regeneration does not undo the primary write. It is logged and
reported through MutationResult (regenerated=False, error=...); the caller
still sees success and may retry with regenerate_paths.
"""

import logging
import math
from datetime import UTC, datetime
from typing import Any

from reqtree.errors import InvalidOperationError, NotFoundError, RegenerationError
from reqtree.models import (
    DEFAULT_SECTION_PREFIX,
    REQUIREMENTS,
    MutationResult,
    Requirement,
    comments_collection,
)
from reqtree.projects.access import ensure_can_delete_requirement, ensure_member
from reqtree.projects.service import ProjectService
from reqtree.requirements.changelog import created_entry, moved_entry, updated_entry
from reqtree.requirements.regeneration import regenerate_project_paths
from reqtree.requirements.schemas import CreateRequirementRequest, dedupe_tags
from reqtree.store.gateway import SERVER_TIMESTAMP, ArrayAppend, DocumentStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "description", "status", "tags", "section_prefix"})


class RequirementService:
    """Coordinates the document store, path generator and changelog for requirements."""

    def __init__(self, store: DocumentStore, projects: ProjectService) -> None:
        self._store = store
        self._projects = projects

    # -- Reads --

    async def get_requirement(self, requirement_id: str) -> Requirement:
        doc = await self._store.get_by_id(REQUIREMENTS, requirement_id)
        if doc is None:
            raise NotFoundError("Requirement", requirement_id)
        return Requirement.model_validate(doc)

    async def get_requirements(self, project_id: str) -> list[Requirement]:
        """All requirements of a project in hierarchical path order.

        Paths compare by their numeric positions, so REQ_10 sorts after REQ_9.
        """
        docs = await self._project_nodes(project_id)
        docs.sort(key=_path_sort_key)
        return [Requirement.model_validate(d) for d in docs]

    # -- Mutations --

    async def create_requirement(
        self, request: CreateRequirementRequest, user_id: str | None,
    ) -> MutationResult:
        """Create a requirement at the end of its sibling group."""
        project = await self._require_project(request.project_id)
        ensure_member(project, user_id, f"create requirements in project {request.project_id}")

        parent_path: str | None = None
        level = 0
        if request.parent_id is not None:
            parent = await self._store.get_by_id(REQUIREMENTS, request.parent_id)
            if parent is None:
                raise NotFoundError("Parent requirement", request.parent_id)
            if parent["project_id"] != request.project_id:
                raise InvalidOperationError(
                    f"Parent {request.parent_id} belongs to another project", request.parent_id,
                )
            parent_path = parent.get("hierarchical_path") or parent["id"]
            level = (parent.get("level") or 0) + 1

        siblings = await self._store.query_by_field(
            REQUIREMENTS, "parent_id", request.parent_id, project_id=request.project_id,
        )
        order = len(siblings) + 1
        prefix = project.get("section_prefix") or DEFAULT_SECTION_PREFIX
        provisional_path = f"{parent_path}.{order}" if parent_path else f"{prefix}_{order}"

        requirement_id = self._store.new_id()
        data: dict[str, Any] = {
            "id": requirement_id,
            "title": request.title,
            "description": request.description,
            "project_id": request.project_id,
            "parent_id": request.parent_id,
            "level": level,
            "order": order,
            "hierarchical_path": provisional_path,
            "status": request.status,
            "tags": request.tags,
            "section_prefix": request.section_prefix,
            "created_by": user_id,
        }
        now = datetime.now(UTC)
        snapshot = {**data, "created_at": now, "updated_at": now}

        batch = self._store.batch()
        batch.set(REQUIREMENTS, {
            **data,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            "change_log": [created_entry(snapshot, user_id)],
        }, requirement_id)
        await batch.commit()
        logger.info(
            "Created requirement %s in project %s (parent=%s, order=%d)",
            requirement_id, request.project_id, request.parent_id, order,
        )

        return await self._regenerate_after(requirement_id, request.project_id, "creation")

    async def update_requirement(
        self, requirement_id: str, updates: dict[str, Any], user_id: str | None,
    ) -> MutationResult:
        """Update descriptive fields. Appends one "updated" entry, or nothing if unchanged.

        Structural fields are owned by move and regeneration and are rejected.
        """
        rejected = sorted(set(updates) - EDITABLE_FIELDS)
        if rejected:
            raise InvalidOperationError(
                f"Fields cannot be updated directly: {', '.join(rejected)}", requirement_id,
            )

        requirement = await self._require_requirement(requirement_id)
        project = await self._require_project(requirement["project_id"])
        ensure_member(project, user_id, f"edit requirement {requirement_id}")

        if "tags" in updates:
            updates = {**updates, "tags": dedupe_tags(updates["tags"]) or []}

        entry = updated_entry(requirement, updates, user_id)
        if entry is None:
            return MutationResult(requirement_id=requirement_id, changed=False)

        changed = entry["changes"]
        batch = self._store.batch()
        batch.update(REQUIREMENTS, requirement_id, {
            **{name: updates[name] for name in changed},
            "updated_at": SERVER_TIMESTAMP,
            "change_log": ArrayAppend(entry),
        })
        await batch.commit()
        logger.info("Updated requirement %s: %s", requirement_id, ", ".join(sorted(changed)))

        if "section_prefix" in changed:
            return await self._regenerate_after(requirement_id, requirement["project_id"], "update")
        return MutationResult(requirement_id=requirement_id)

    async def move_requirement(
        self,
        requirement_id: str,
        new_parent_id: str | None,
        new_order: int,
        user_id: str | None,
    ) -> MutationResult:
        """Move a requirement under new_parent_id (None = root) at position new_order.

        The destination sibling group is renumbered in the same batch so the
        moved requirement lands at new_order; regeneration then closes the gap
        left in the old group.
        """
        requirement = await self._require_requirement(requirement_id)
        project_id = requirement["project_id"]
        project = await self._require_project(project_id)
        ensure_member(project, user_id, f"move requirement {requirement_id}")

        if new_order < 1:
            raise InvalidOperationError(f"Order must be at least 1, got {new_order}", requirement_id)

        new_parent: dict[str, Any] | None = None
        if new_parent_id is not None:
            new_parent = await self._store.get_by_id(REQUIREMENTS, new_parent_id)
            if new_parent is None:
                raise NotFoundError("Parent requirement", new_parent_id)
            if new_parent["project_id"] != project_id:
                raise InvalidOperationError(
                    f"Parent {new_parent_id} belongs to another project", new_parent_id,
                )
            if await self.is_descendant(requirement_id, new_parent_id):
                raise InvalidOperationError(
                    "Cannot move a requirement to one of its descendants", requirement_id,
                )

        siblings = await self._store.query_by_field(
            REQUIREMENTS, "parent_id", new_parent_id, project_id=project_id,
        )
        group = sorted(
            (s for s in siblings if s["id"] != requirement_id),
            key=lambda s: s.get("order") or 0,
        )
        # Orders past the end of the group mean "last".
        slot = min(new_order, len(group) + 1)

        old_parent_id = requirement.get("parent_id")
        old_order = requirement.get("order")
        if old_parent_id == new_parent_id and old_order == slot:
            logger.info("Move of %s changes neither parent nor order, skipping", requirement_id)
            return MutationResult(requirement_id=requirement_id, changed=False)

        new_level = (new_parent.get("level") or 0) + 1 if new_parent is not None else 0

        changes = {
            "parent_id": {"old": old_parent_id, "new": new_parent_id},
            "level": {"old": requirement.get("level"), "new": new_level},
            "order": {"old": old_order, "new": slot},
        }

        batch = self._store.batch()
        batch.update(REQUIREMENTS, requirement_id, {
            "parent_id": new_parent_id,
            "level": new_level,
            "order": slot,
            "updated_at": SERVER_TIMESTAMP,
            "change_log": ArrayAppend(moved_entry(changes, user_id)),
        })
        for position, sibling in enumerate(group, start=1):
            shifted = position if position < slot else position + 1
            if sibling.get("order") != shifted:
                batch.update(REQUIREMENTS, sibling["id"], {"order": shifted})
        await batch.commit()
        logger.info(
            "Moved requirement %s: parent %s -> %s, order %s -> %d",
            requirement_id, old_parent_id, new_parent_id, old_order, slot,
        )

        return await self._regenerate_after(requirement_id, project_id, "move")

    async def delete_requirement(
        self, requirement_id: str, user_id: str | None,
    ) -> MutationResult:
        """Delete a leaf requirement together with all of its comments."""
        requirement = await self._require_requirement(requirement_id)
        project_id = requirement["project_id"]
        project = await self._require_project(project_id)
        ensure_can_delete_requirement(project, requirement, user_id)

        children = await self._store.query_by_field(REQUIREMENTS, "parent_id", requirement_id)
        if children:
            raise InvalidOperationError(
                "Cannot delete a requirement with children. "
                "Please delete or move the children first.",
                requirement_id,
            )

        comments_path = comments_collection(requirement_id)
        comments = await self._store.query(comments_path)

        batch = self._store.batch()
        for comment in comments:
            batch.delete(comments_path, comment["id"])
        batch.delete(REQUIREMENTS, requirement_id)
        await batch.commit()
        logger.info(
            "Deleted requirement %s and %d comment(s) from project %s",
            requirement_id, len(comments), project_id,
        )

        return await self._regenerate_after(requirement_id, project_id, "deletion")

    # -- Regeneration --

    async def regenerate_paths(self, project_id: str) -> int:
        """Recompute and persist order/level/hierarchical_path for a whole project.

        Returns the number of requirements whose annotations changed. Raises
        RegenerationError on any failure.
        """
        try:
            prefix = await self._projects.get_section_prefix(project_id)
        except Exception as e:
            raise RegenerationError(project_id, e) from e
        return await regenerate_project_paths(self._store, project_id, prefix)

    async def _regenerate_after(
        self, requirement_id: str, project_id: str, action: str,
    ) -> MutationResult:
        try:
            await self.regenerate_paths(project_id)
        except RegenerationError as e:
            logger.exception(
                "Error regenerating hierarchical paths after %s of %s", action, requirement_id,
            )
            return MutationResult(requirement_id=requirement_id, regenerated=False, error=str(e))
        return MutationResult(requirement_id=requirement_id, regenerated=True)

    # -- Tree checks --

    async def is_descendant(self, source_id: str, target_id: str) -> bool:
        """True if target_id is source_id or lies below it.

        Walks target's parent chain upward. The walk is bounded by the number
        of requirements in the project; a repeated id or a chain longer than
        that means the stored graph is corrupted and raises
        InvalidOperationError instead of looping.
        """
        if source_id == target_id:
            return True

        target = await self._store.get_by_id(REQUIREMENTS, target_id)
        if target is None:
            return False
        parents = {
            n["id"]: n.get("parent_id")
            for n in await self._project_nodes(target["project_id"])
        }

        visited = {target_id}
        current = target_id
        for _ in range(len(parents)):
            parent_id = parents.get(current)
            if not parent_id:
                return False
            if parent_id == source_id:
                return True
            if parent_id in visited:
                raise InvalidOperationError(
                    f"Parent cycle detected above requirement {target_id}", target_id,
                )
            visited.add(parent_id)
            current = parent_id

        raise InvalidOperationError(
            f"Ancestor chain of requirement {target_id} exceeds project size", target_id,
        )

    # -- Helpers --

    async def _project_nodes(self, project_id: str) -> list[dict[str, Any]]:
        return await self._store.query_by_field(REQUIREMENTS, "project_id", project_id)

    async def _require_requirement(self, requirement_id: str) -> dict[str, Any]:
        doc = await self._store.get_by_id(REQUIREMENTS, requirement_id)
        if doc is None:
            raise NotFoundError("Requirement", requirement_id)
        return doc

    async def _require_project(self, project_id: str) -> dict[str, Any]:
        doc = await self._projects.find_project(project_id)
        if doc is None:
            raise NotFoundError("Project", project_id)
        return doc


def _path_sort_key(node: dict[str, Any]) -> tuple[float, ...]:
    path = node.get("hierarchical_path") or ""
    _, _, positions = path.rpartition("_")
    try:
        return tuple(int(p) for p in positions.split("."))
    except ValueError:
        return (math.inf,)
