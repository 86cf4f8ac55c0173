"""FastAPI routes for projects."""

from fastapi import APIRouter, Depends, HTTPException, status

from reqtree.errors import NotFoundError, UnauthorizedError
from reqtree.identity import current_user_id
from reqtree.models import Project
from reqtree.projects.schemas import CreateProjectRequest, PatchProjectRequest
from reqtree.projects.service import ProjectService

router = APIRouter(prefix="/api/projects", tags=["projects"])


def get_project_service() -> ProjectService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("ProjectService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    request: CreateProjectRequest,
    user_id: str | None = Depends(current_user_id),
    service: ProjectService = Depends(get_project_service),
) -> Project:
    try:
        return await service.create_project(request, user_id)
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("")
async def list_projects(
    user_id: str | None = Depends(current_user_id),
    service: ProjectService = Depends(get_project_service),
) -> list[Project]:
    try:
        return await service.get_user_projects(user_id)
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    service: ProjectService = Depends(get_project_service),
) -> Project:
    try:
        return await service.get_project(project_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    request: PatchProjectRequest,
    user_id: str | None = Depends(current_user_id),
    service: ProjectService = Depends(get_project_service),
) -> Project:
    try:
        return await service.update_project(project_id, request, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    user_id: str | None = Depends(current_user_id),
    service: ProjectService = Depends(get_project_service),
) -> None:
    try:
        await service.delete_project(project_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
