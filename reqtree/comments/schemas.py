"""Request and response schemas for comment endpoints."""

from pydantic import BaseModel, Field

from reqtree.models import Comment


class CreateCommentRequest(BaseModel):
    body: str = Field(min_length=1)
    parent_comment_id: str | None = None


class ReplyRequest(BaseModel):
    body: str = Field(min_length=1)


class ResolveCommentRequest(BaseModel):
    resolved: bool = True


class CommentThread(BaseModel):
    """A comment with its replies nested beneath it, for display."""

    comment: Comment
    replies: list["CommentThread"] = Field(default_factory=list)
