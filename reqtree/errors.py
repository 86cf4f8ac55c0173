"""Error taxonomy shared by the requirement, comment, and project services."""


class ReqTreeError(Exception):
    """Base class for every error raised by reqtree services."""


class NotFoundError(ReqTreeError):
    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class UnauthorizedError(ReqTreeError):
    def __init__(self, user_id: str | None, action: str) -> None:
        self.user_id = user_id
        self.action = action
        who = user_id or "anonymous user"
        super().__init__(f"{who} is not allowed to {action}")


class InvalidOperationError(ReqTreeError):
    def __init__(self, message: str, item_id: str | None = None) -> None:
        self.item_id = item_id
        super().__init__(message)


class RegenerationError(ReqTreeError):
    """Path regeneration failed after the primary write committed."""

    def __init__(self, project_id: str, cause: Exception | None = None) -> None:
        self.project_id = project_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Path regeneration failed for project {project_id}{detail}")
