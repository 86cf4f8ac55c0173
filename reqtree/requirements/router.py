"""FastAPI routes for requirements: CRUD, moves, and path regeneration.

Structural mutations answer with a MutationResponse. A response whose
result has regenerated=False and an error still means the mutation itself
was committed; only the derived paths may be stale until the next
regeneration.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from reqtree.errors import (
    InvalidOperationError,
    NotFoundError,
    RegenerationError,
    UnauthorizedError,
)
from reqtree.identity import current_user_id
from reqtree.models import MutationResult, Requirement
from reqtree.requirements.schemas import (
    CreateRequirementRequest,
    MoveRequirementRequest,
    MutationResponse,
    PatchRequirementRequest,
    RegenerationResponse,
)
from reqtree.requirements.service import RequirementService

router = APIRouter(prefix="/api", tags=["requirements"])


def get_requirement_service() -> RequirementService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("RequirementService not initialized")


async def _respond(service: RequirementService, result: MutationResult) -> MutationResponse:
    try:
        requirement = await service.get_requirement(result.requirement_id)
    except NotFoundError:
        requirement = None
    return MutationResponse(result=result, requirement=requirement)


@router.post("/requirements", status_code=status.HTTP_201_CREATED)
async def create_requirement(
    request: CreateRequirementRequest,
    user_id: str | None = Depends(current_user_id),
    service: RequirementService = Depends(get_requirement_service),
) -> MutationResponse:
    try:
        result = await service.create_requirement(request, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _respond(service, result)


@router.get("/projects/{project_id}/requirements")
async def list_requirements(
    project_id: str,
    service: RequirementService = Depends(get_requirement_service),
) -> list[Requirement]:
    return await service.get_requirements(project_id)


@router.post("/projects/{project_id}/requirements/regenerate")
async def regenerate_paths(
    project_id: str,
    service: RequirementService = Depends(get_requirement_service),
) -> RegenerationResponse:
    try:
        updated = await service.regenerate_paths(project_id)
    except RegenerationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return RegenerationResponse(project_id=project_id, updated=updated)


@router.get("/requirements/{requirement_id}")
async def get_requirement(
    requirement_id: str,
    service: RequirementService = Depends(get_requirement_service),
) -> Requirement:
    try:
        return await service.get_requirement(requirement_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Requirement not found: {requirement_id}")


@router.patch("/requirements/{requirement_id}")
async def update_requirement(
    requirement_id: str,
    request: PatchRequirementRequest,
    user_id: str | None = Depends(current_user_id),
    service: RequirementService = Depends(get_requirement_service),
) -> MutationResponse:
    updates = {
        name: getattr(request, name)
        for name in request.model_fields_set
        if getattr(request, name) is not None or name == "section_prefix"
    }
    try:
        result = await service.update_requirement(requirement_id, updates, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _respond(service, result)


@router.post("/requirements/{requirement_id}/move")
async def move_requirement(
    requirement_id: str,
    request: MoveRequirementRequest,
    user_id: str | None = Depends(current_user_id),
    service: RequirementService = Depends(get_requirement_service),
) -> MutationResponse:
    try:
        result = await service.move_requirement(
            requirement_id, request.new_parent_id, request.new_order, user_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await _respond(service, result)


@router.delete("/requirements/{requirement_id}")
async def delete_requirement(
    requirement_id: str,
    user_id: str | None = Depends(current_user_id),
    service: RequirementService = Depends(get_requirement_service),
) -> MutationResult:
    try:
        return await service.delete_requirement(requirement_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e))
