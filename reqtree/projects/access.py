"""Access policy for project-scoped mutations.

One rule set for every operation:
    - anonymous actors may not mutate anything;
    - mutating requirements or comments requires project membership
      (the project creator always counts as a member);
    - deleting a requirement requires being its creator or the project creator;
    - deleting a project requires being its creator.
Reads are not gated.
"""

from typing import Any

from reqtree.errors import UnauthorizedError


def is_member(project: dict[str, Any], user_id: str | None) -> bool:
    if user_id is None:
        return False
    return user_id == project.get("created_by") or user_id in (project.get("members") or [])


def ensure_member(project: dict[str, Any], user_id: str | None, action: str) -> None:
    if not is_member(project, user_id):
        raise UnauthorizedError(user_id, action)


def ensure_project_creator(project: dict[str, Any], user_id: str | None, action: str) -> None:
    if user_id is None or user_id != project.get("created_by"):
        raise UnauthorizedError(user_id, action)


def ensure_can_delete_requirement(
    project: dict[str, Any], requirement: dict[str, Any], user_id: str | None,
) -> None:
    ensure_member(project, user_id, f"delete requirement {requirement['id']}")
    if user_id not in (requirement.get("created_by"), project.get("created_by")):
        raise UnauthorizedError(user_id, f"delete requirement {requirement['id']}")
