"""
Room availability endpoint.
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from ..models import DataResponse
from ..dependencies import get_availability_service
from ..services.availability_service import AvailabilityService

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=DataResponse, summary="Free rooms of a type for a stay")
async def available_rooms(
    property_id: str = Query(...),
    room_type: str = Query(..., min_length=1),
    check_in: date = Query(...),
    check_out: date = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    if check_out <= check_in:
        raise HTTPException(
            status_code=422,
            detail={"message": "check_out must be after check_in", "error_code": "VALIDATION_ERROR", "details": {}},
        )
    rooms = service.get_available_rooms_by_type(property_id, room_type, check_in.isoformat(), check_out.isoformat())
    return DataResponse(success=True, message=f"{len(rooms)} room(s) available", data=rooms)
