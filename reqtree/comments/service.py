"""Comment service: threaded discussion attached to a requirement.

Comments live in the requirement's own collection and are keyed to the tree
only by requirement id. Threading is a flat parent_comment_id reference; it
is not validated, so replies may point at comments that do not exist.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from reqtree.comments.schemas import CommentThread, CreateCommentRequest
from reqtree.errors import NotFoundError
from reqtree.models import REQUIREMENTS, Comment, comments_collection
from reqtree.projects.access import ensure_member
from reqtree.projects.service import ProjectService
from reqtree.store.gateway import SERVER_TIMESTAMP, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

CommentsListener = Callable[[list[Comment]], Awaitable[None] | None]


class CommentService:
    """Add, reply to, resolve, list, and watch comments on a requirement."""

    def __init__(self, store: DocumentStore, projects: ProjectService) -> None:
        self._store = store
        self._projects = projects

    async def add_comment(
        self, requirement_id: str, request: CreateCommentRequest, user_id: str | None,
    ) -> Comment:
        """Add a top-level comment, or a reply when parent_comment_id is set."""
        await self._ensure_can_comment(requirement_id, user_id)

        batch = self._store.batch()
        comment_id = batch.set(comments_collection(requirement_id), {
            "requirement_id": requirement_id,
            "parent_comment_id": request.parent_comment_id,
            "body": request.body,
            "author_id": user_id,
            "resolved": False,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        await batch.commit()
        logger.info("Added comment %s to requirement %s", comment_id, requirement_id)

        doc = await self._store.get_by_id(comments_collection(requirement_id), comment_id)
        assert doc is not None
        return Comment.model_validate(doc)

    async def reply_to_comment(
        self,
        requirement_id: str,
        parent_comment_id: str,
        body: str,
        user_id: str | None,
    ) -> Comment:
        """add_comment with parent_comment_id set. The parent is not checked."""
        request = CreateCommentRequest(body=body, parent_comment_id=parent_comment_id)
        return await self.add_comment(requirement_id, request, user_id)

    async def resolve_comment(
        self,
        requirement_id: str,
        comment_id: str,
        resolved: bool,
        user_id: str | None,
    ) -> Comment:
        """Set the resolved flag, whatever its current value."""
        collection = comments_collection(requirement_id)
        doc = await self._store.get_by_id(collection, comment_id)
        if doc is None:
            raise NotFoundError("Comment", comment_id)
        await self._ensure_can_comment(requirement_id, user_id)

        batch = self._store.batch()
        batch.update(collection, comment_id, {
            "resolved": resolved,
            "updated_at": SERVER_TIMESTAMP,
        })
        await batch.commit()

        updated = await self._store.get_by_id(collection, comment_id)
        assert updated is not None
        return Comment.model_validate(updated)

    async def get_comments(self, requirement_id: str) -> list[Comment]:
        """All comments on a requirement, oldest first."""
        docs = await self._store.query(comments_collection(requirement_id), order_field="created_at")
        return [Comment.model_validate(d) for d in docs]

    async def subscribe_to_comments(
        self, requirement_id: str, on_change: CommentsListener,
    ) -> Unsubscribe:
        """Call on_change with the full ordered comment list now and after every change.

        Returns the unsubscribe callable.
        """

        async def deliver(docs: list[dict[str, Any]]) -> None:
            result = on_change([Comment.model_validate(d) for d in docs])
            if inspect.isawaitable(result):
                await result

        return await self._store.subscribe(
            comments_collection(requirement_id), deliver, order_field="created_at",
        )

    async def requirement_exists(self, requirement_id: str) -> bool:
        """Used by the live feed endpoint to refuse streams for unknown requirements."""
        return await self._find_requirement(requirement_id) is not None

    async def _find_requirement(self, requirement_id: str) -> dict[str, Any] | None:
        return await self._store.get_by_id(REQUIREMENTS, requirement_id)

    async def _ensure_can_comment(self, requirement_id: str, user_id: str | None) -> None:
        requirement = await self._find_requirement(requirement_id)
        if requirement is None:
            raise NotFoundError("Requirement", requirement_id)
        project = await self._projects.find_project(requirement["project_id"])
        if project is None:
            raise NotFoundError("Project", requirement["project_id"])
        ensure_member(project, user_id, f"comment on requirement {requirement_id}")


def build_threads(comments: list[Comment]) -> list[CommentThread]:
    """Nest replies under their parents, keeping the input order at each level.

    Replies whose parent is missing, or whose parent chain loops back on
    itself, are shown at the top level.
    """
    threads = {c.id: CommentThread(comment=c) for c in comments}
    parent_of = {c.id: c.parent_comment_id for c in comments}

    def loops(comment_id: str) -> bool:
        seen: set[str] = set()
        current = parent_of.get(comment_id)
        while current is not None and current in parent_of:
            if current == comment_id:
                return True
            if current in seen:
                return False  # a loop further up that this comment hangs off
            seen.add(current)
            current = parent_of[current]
        return False

    top_level: list[CommentThread] = []
    for comment in comments:
        parent_id = comment.parent_comment_id
        if parent_id in threads and parent_id != comment.id and not loops(comment.id):
            threads[parent_id].replies.append(threads[comment.id])
        else:
            top_level.append(threads[comment.id])
    return top_level
