"""
Calendar conflict endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from ..models import DataResponse, ConflictResolveRequest
from ..dependencies import get_conflict_service
from ..services.conflict_service import ConflictService

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.post("/detect", response_model=DataResponse, summary="Run conflict detection for a property")
async def detect_conflicts(
    property_id: str = Query(...),
    conflict_service: ConflictService = Depends(get_conflict_service),
):
    found = conflict_service.detect_conflicts(property_id)
    return DataResponse(
        success=True,
        message=f"{len(found)} conflict(s) detected",
        data=[conflict.to_row() for conflict in found],
    )


@router.get("", response_model=DataResponse)
async def list_conflicts(
    property_id: str = Query(...),
    status: Optional[str] = Query(None, pattern="^(detected|resolved|ignored)$"),
    conflict_service: ConflictService = Depends(get_conflict_service),
):
    return DataResponse(success=True, message="Conflicts", data=conflict_service.get_conflicts(property_id, status))


@router.get("/stats", response_model=DataResponse)
async def conflict_stats(
    property_id: str = Query(...),
    conflict_service: ConflictService = Depends(get_conflict_service),
):
    return DataResponse(success=True, message="Conflict stats", data=conflict_service.get_conflict_stats(property_id))


@router.post("/auto-resolve", response_model=DataResponse, summary="Resolve conflicts that need no staff decision")
async def auto_resolve(
    property_id: str = Query(...),
    conflict_service: ConflictService = Depends(get_conflict_service),
):
    resolved = conflict_service.auto_resolve_conflicts(property_id)
    return DataResponse(success=True, message=f"{resolved} conflict(s) resolved", data={"resolved": resolved})


@router.post("/{conflict_id}/resolve", response_model=DataResponse)
async def resolve_conflict(
    conflict_id: str,
    request: ConflictResolveRequest,
    conflict_service: ConflictService = Depends(get_conflict_service),
):
    conflict_service.resolve_conflict(
        conflict_id,
        {"action": request.action, "notes": request.notes},
        request.resolved_by,
    )
    return DataResponse(success=True, message="Conflict resolved", data={"id": conflict_id})
