"""FastAPI routes for requirement comments, including a live SSE feed."""

import asyncio
import json as json_module
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from reqtree.comments.schemas import (
    CommentThread,
    CreateCommentRequest,
    ReplyRequest,
    ResolveCommentRequest,
)
from reqtree.comments.service import CommentService, build_threads
from reqtree.errors import NotFoundError, UnauthorizedError
from reqtree.identity import current_user_id
from reqtree.models import Comment

router = APIRouter(prefix="/api/requirements/{requirement_id}/comments", tags=["comments"])


def get_comment_service() -> CommentService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("CommentService not initialized")


@router.get("")
async def list_comments(
    requirement_id: str,
    service: CommentService = Depends(get_comment_service),
) -> list[Comment]:
    return await service.get_comments(requirement_id)


@router.get("/threads")
async def list_threads(
    requirement_id: str,
    service: CommentService = Depends(get_comment_service),
) -> list[CommentThread]:
    return build_threads(await service.get_comments(requirement_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_comment(
    requirement_id: str,
    request: CreateCommentRequest,
    user_id: str | None = Depends(current_user_id),
    service: CommentService = Depends(get_comment_service),
) -> Comment:
    try:
        return await service.add_comment(requirement_id, request, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/{comment_id}/replies", status_code=status.HTTP_201_CREATED)
async def reply_to_comment(
    requirement_id: str,
    comment_id: str,
    request: ReplyRequest,
    user_id: str | None = Depends(current_user_id),
    service: CommentService = Depends(get_comment_service),
) -> Comment:
    try:
        return await service.reply_to_comment(requirement_id, comment_id, request.body, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.patch("/{comment_id}/resolve")
async def resolve_comment(
    requirement_id: str,
    comment_id: str,
    request: ResolveCommentRequest,
    user_id: str | None = Depends(current_user_id),
    service: CommentService = Depends(get_comment_service),
) -> Comment:
    try:
        return await service.resolve_comment(
            requirement_id, comment_id, request.resolved, user_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("/stream", response_model=None)
async def stream_comments(
    requirement_id: str,
    service: CommentService = Depends(get_comment_service),
) -> StreamingResponse:
    if not await service.requirement_exists(requirement_id):
        raise HTTPException(status_code=404, detail=f"Requirement not found: {requirement_id}")
    return StreamingResponse(
        comment_event_stream(service, requirement_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def comment_event_stream(
    service: CommentService, requirement_id: str,
) -> AsyncIterator[str]:
    """Async generator that yields one SSE frame per comment snapshot.

    The subscription is dropped when the client disconnects and the
    generator is closed.
    """
    queue: asyncio.Queue[list[Comment]] = asyncio.Queue()
    unsubscribe = await service.subscribe_to_comments(requirement_id, queue.put_nowait)
    try:
        while True:
            comments = await queue.get()
            data = [c.model_dump(mode="json") for c in comments]
            yield f"event: comments\ndata: {json_module.dumps(data)}\n\n"
    finally:
        unsubscribe()
