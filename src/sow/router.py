from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from src.briefs.context import CouncilDataLookup, DocumentStore, resolve_brief_context
from src.briefs.schemas import GenerationRequest
from src.compliance.schemas import ValidationSummary
from src.core.exceptions import ApprovalBlockedError, NotFoundError
from src.sow.dependencies import get_council_lookup, get_document_store, get_sow_service
from src.sow.schemas import GenerationResult, ScopeOfWork
from src.sow.service import SoWGenerationService

router = APIRouter(prefix="/sow", tags=["scope-of-work"])


@router.post("/generate", response_model=GenerationResult, status_code=status.HTTP_201_CREATED)
async def generate_scope_of_work(
    request: GenerationRequest,
    service: SoWGenerationService = Depends(get_sow_service),
    council_lookup: Optional[CouncilDataLookup] = Depends(get_council_lookup),
    document_store: Optional[DocumentStore] = Depends(get_document_store),
):
    """Generate, validate, cost and store a new Scope of Work version for a project."""
    request = await resolve_brief_context(request, council_lookup, document_store)
    result = await service.generate_scope_of_work(request)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "errors": result.errors, "warnings": result.warnings},
        )
    return result


# Declared before /{sow_id} so "project" is never read as an id
@router.get("/project/{project_id}", response_model=List[ScopeOfWork])
async def list_project_versions(
    project_id: str,
    service: SoWGenerationService = Depends(get_sow_service),
):
    """All Scope of Work versions for a project, oldest first."""
    return await service.list_versions(project_id)


@router.get("/{sow_id}", response_model=ScopeOfWork)
async def get_scope_of_work(
    sow_id: UUID,
    service: SoWGenerationService = Depends(get_sow_service),
):
    try:
        return await service.get_scope_of_work(sow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{sow_id}/approve", response_model=ScopeOfWork)
async def approve_scope_of_work(
    sow_id: UUID,
    service: SoWGenerationService = Depends(get_sow_service),
):
    try:
        return await service.approve_scope_of_work(sow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ApprovalBlockedError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "reasons": e.reasons})


@router.get("/{sow_id}/validation", response_model=ValidationSummary)
async def get_validation_summary(
    sow_id: UUID,
    service: SoWGenerationService = Depends(get_sow_service),
):
    try:
        return await service.get_validation_summary(sow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{sow_id}/revalidate", response_model=ScopeOfWork)
async def revalidate_scope_of_work(
    sow_id: UUID,
    service: SoWGenerationService = Depends(get_sow_service),
):
    """Re-run the compliance checkers and append their results to the stored version."""
    try:
        return await service.revalidate_scope_of_work(sow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
