"""Shared test helpers."""

from typing import Any

from httpx import AsyncClient

from reqtree.models import REQUIREMENTS, Project
from reqtree.projects.schemas import CreateProjectRequest, PatchProjectRequest
from reqtree.projects.service import ProjectService
from reqtree.requirements.schemas import CreateRequirementRequest
from reqtree.requirements.service import RequirementService
from reqtree.store.gateway import DocumentStore

OWNER = "alice"
MEMBER = "bob"
OUTSIDER = "mallory"


def make_node(
    node_id: str,
    parent_id: str | None = None,
    order: int = 1,
    **fields: Any,
) -> dict[str, Any]:
    """A bare requirement document for the path generator."""
    return {
        "id": node_id,
        "title": fields.pop("title", node_id),
        "project_id": fields.pop("project_id", "p1"),
        "parent_id": parent_id,
        "order": order,
        **fields,
    }


async def create_test_project(
    projects: ProjectService,
    user_id: str = OWNER,
    section_prefix: str | None = "REQ",
    members: list[str] | None = None,
) -> Project:
    """Create a project; extra members are added after creation."""
    project = await projects.create_project(
        CreateProjectRequest(name="Test Project", section_prefix=section_prefix),
        user_id,
    )
    if members:
        project = await projects.update_project(
            project.id, PatchProjectRequest(members=[user_id, *members]), user_id,
        )
    return project


async def create_test_requirement(
    requirements: RequirementService,
    project_id: str,
    title: str,
    parent_id: str | None = None,
    user_id: str = OWNER,
    **fields: Any,
) -> str:
    """Create a requirement and return its id."""
    result = await requirements.create_requirement(
        CreateRequirementRequest(
            title=title, project_id=project_id, parent_id=parent_id, **fields,
        ),
        user_id,
    )
    assert result.regenerated
    return result.requirement_id


async def paths_by_title(store: DocumentStore, project_id: str) -> dict[str, str]:
    """{title: hierarchical_path} for every requirement in the project."""
    docs = await store.query_by_field(REQUIREMENTS, "project_id", project_id)
    return {d["title"]: d["hierarchical_path"] for d in docs}


async def count_documents(store: DocumentStore) -> int:
    row = await store.db.fetchone("SELECT COUNT(*) AS n FROM documents")
    assert row is not None
    return row["n"]


async def create_api_project(client: AsyncClient, user_id: str = OWNER) -> dict:
    """Create a project via the API and return the response JSON."""
    resp = await client.post(
        "/api/projects",
        json={"name": "API Project", "section_prefix": "REQ"},
        headers={"X-User-Id": user_id},
    )
    assert resp.status_code == 201
    return resp.json()


async def create_api_requirement(
    client: AsyncClient,
    project_id: str,
    title: str,
    parent_id: str | None = None,
    user_id: str = OWNER,
) -> dict:
    """Create a requirement via the API and return the stored requirement."""
    body: dict = {"title": title, "project_id": project_id}
    if parent_id is not None:
        body["parent_id"] = parent_id
    resp = await client.post("/api/requirements", json=body, headers={"X-User-Id": user_id})
    assert resp.status_code == 201
    return resp.json()["requirement"]
