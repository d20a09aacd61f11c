"""
Property endpoints and the public iCal feed.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from ..models import PropertyCreate, DataResponse
from ..dependencies import get_property_service
from ..services.property_service import PropertyService

router = APIRouter(tags=["properties"])


@router.post("/property")
async def create_property(
    property_data: PropertyCreate,
    property_service: PropertyService = Depends(get_property_service),
):
    """
    Save property info and generate its iCal feed URL.
    """
    result = property_service.create_property(
        name=property_data.name,
        address=property_data.address,
        status=property_data.status or "active",
    )
    if not result["success"]:
        raise HTTPException(
            status_code=500,
            detail={"message": result["error"], "error_code": "CREATION_FAILED", "details": {}}
        )
    return result


@router.get("/property")
async def get_properties(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    property_service: PropertyService = Depends(get_property_service),
):
    """Fetch all properties with pagination."""
    result = property_service.get_properties(page, limit)
    if not result["success"]:
        raise HTTPException(
            status_code=500,
            detail={"message": result["error"], "error_code": "INTERNAL_ERROR", "details": {}}
        )
    return result


@router.get("/property/{property_id}.ics")
async def generate_ical_feed(
    property_id: str,
    platform_id: Optional[str] = Query(None, description="Record the export against this OTA platform"),
    property_service: PropertyService = Depends(get_property_service),
):
    """
    iCal feed of a property's confirmed bookings, polled by OTAs.
    """
    prop = property_service.get_property_by_id(property_id)
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    ical_content = property_service.generate_ical_feed(prop, platform_id=platform_id)
    return Response(
        content=ical_content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'inline; filename="{property_id}.ics"'},
    )


@router.get("/property/{property_id}", response_model=DataResponse)
async def get_property(property_id: str, property_service: PropertyService = Depends(get_property_service)):
    prop = property_service.get_property_by_id(property_id)
    if not prop:
        raise HTTPException(
            status_code=404,
            detail={"message": "Property not found", "error_code": "NOT_FOUND", "details": {"property_id": property_id}}
        )
    return DataResponse(success=True, message="Property retrieved", data=prop)


@router.get("/property/{property_id}/rooms", response_model=DataResponse)
async def get_rooms(
    property_id: str,
    active_only: bool = Query(True),
    property_service: PropertyService = Depends(get_property_service),
):
    rooms = property_service.get_rooms(property_id, active_only=active_only)
    return DataResponse(success=True, message=f"{len(rooms)} rooms", data=rooms)


@router.delete("/property/{property_id}")
async def delete_property(property_id: str, property_service: PropertyService = Depends(get_property_service)):
    result = property_service.delete_property(property_id)
    if not result["success"]:
        raise HTTPException(
            status_code=404,
            detail={"message": result["error"], "error_code": "NOT_FOUND", "details": {}}
        )
    return result
