"""
OTA iCal import, validation and sync status endpoints.
"""
import requests
from fastapi import APIRouter, Depends, HTTPException, Query
from ..models import DataResponse, ICalImportRequest, ICalValidateRequest
from ..dependencies import get_ical_service
from ..services.ical_service import ICalService

router = APIRouter(prefix="/ical", tags=["iCal"])


@router.post("/import", response_model=DataResponse, summary="Import an OTA iCal feed")
async def import_calendar(request: ICalImportRequest, ical_service: ICalService = Depends(get_ical_service)):
    """
    Import events from raw feed text, or fetch it from ``ical_url`` first.
    """
    ical_data = request.ical_data
    if not ical_data:
        if not request.ical_url:
            raise HTTPException(
                status_code=422,
                detail={"message": "Provide ical_data or ical_url", "error_code": "VALIDATION_ERROR", "details": {}},
            )
        try:
            ical_data = ical_service.fetch_ical_from_url(request.ical_url)
        except (requests.RequestException, RuntimeError) as e:
            raise HTTPException(
                status_code=502,
                detail={"message": f"Failed to fetch iCal feed: {e}", "error_code": "FETCH_FAILED", "details": {}},
            )

    check = ical_service.validate_ical_data(ical_data)
    if not check["valid"]:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid iCal data", "error_code": "VALIDATION_ERROR", "details": check},
        )

    result = ical_service.parse_ota_calendar(ical_data, request.platform_id, request.property_id)
    return DataResponse(
        success=result.success,
        message=f"Processed {result.records_processed} events",
        data=result.to_dict(),
    )


@router.post("/validate", response_model=DataResponse, summary="Validate iCal text")
async def validate_calendar(request: ICalValidateRequest, ical_service: ICalService = Depends(get_ical_service)):
    check = ical_service.validate_ical_data(request.ical_data)
    return DataResponse(success=True, message="Valid" if check["valid"] else "Invalid", data=check)


@router.get("/status", response_model=DataResponse, summary="Latest sync log for a platform")
async def sync_status(
    platform_id: str = Query(...),
    property_id: str = Query(...),
    ical_service: ICalService = Depends(get_ical_service),
):
    return DataResponse(
        success=True,
        message="Sync status",
        data=ical_service.get_sync_status(platform_id, property_id),
    )
