"""Request identity. Authentication happens upstream; the actor arrives as a header."""

from fastapi import Header


def current_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """The acting user's id, or None for anonymous requests."""
    return x_user_id or None
