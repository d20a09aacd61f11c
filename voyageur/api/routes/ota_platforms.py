"""
OTA platform configuration endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException
from ..models import DataResponse, OTAPlatformConfigRequest
from ..dependencies import get_ota_platform_service
from ..services.ota_platform_service import OTAPlatformService

router = APIRouter(prefix="/ota-platforms", tags=["ota-platforms"])


@router.get("/global", response_model=DataResponse)
async def global_platforms(service: OTAPlatformService = Depends(get_ota_platform_service)):
    return DataResponse(success=True, message="Global platforms", data=service.get_global_platforms())


@router.put("/global/{platform_id}", response_model=DataResponse)
async def save_global_platform(
    platform_id: str,
    request: OTAPlatformConfigRequest,
    service: OTAPlatformService = Depends(get_ota_platform_service),
):
    saved = service.save_global_platform_config(platform_id, request.model_dump(exclude_none=True))
    return DataResponse(success=True, message="Global platform saved", data=saved)


@router.get("/property/{property_id}", response_model=DataResponse)
async def property_platforms(property_id: str, service: OTAPlatformService = Depends(get_ota_platform_service)):
    """Effective platform settings: property overrides, else the global rows."""
    return DataResponse(success=True, message="Platforms", data=service.get_platforms_for_property(property_id))


@router.get("/property/{property_id}/manual", response_model=DataResponse)
async def manual_update_platforms(property_id: str, service: OTAPlatformService = Depends(get_ota_platform_service)):
    return DataResponse(
        success=True,
        message="Platforms needing manual updates",
        data=service.get_manual_update_platforms(property_id),
    )


@router.get("/property/{property_id}/{platform_name}", response_model=DataResponse)
async def property_platform(
    property_id: str,
    platform_name: str,
    service: OTAPlatformService = Depends(get_ota_platform_service),
):
    platform = service.get_platform_for_property(property_id, platform_name)
    if not platform:
        raise HTTPException(
            status_code=404,
            detail={"message": "Platform configuration not found", "error_code": "NOT_FOUND", "details": {}},
        )
    return DataResponse(success=True, message="Platform", data=platform)


@router.put("/property/{property_id}/{platform_name}", response_model=DataResponse)
async def save_property_platform(
    property_id: str,
    platform_name: str,
    request: OTAPlatformConfigRequest,
    service: OTAPlatformService = Depends(get_ota_platform_service),
):
    saved = service.save_property_platform_config(property_id, platform_name, request.model_dump(exclude_none=True))
    return DataResponse(success=True, message="Platform configuration saved", data=saved)


@router.delete("/property/{property_id}/{platform_name}", response_model=DataResponse)
async def delete_property_platform(
    property_id: str,
    platform_name: str,
    service: OTAPlatformService = Depends(get_ota_platform_service),
):
    service.delete_property_platform_config(property_id, platform_name)
    return DataResponse(success=True, message="Property override removed", data={"platform": platform_name})


@router.post("/property/{property_id}/{platform_name}/test", response_model=DataResponse)
async def test_connection(
    property_id: str,
    platform_name: str,
    service: OTAPlatformService = Depends(get_ota_platform_service),
):
    result = service.test_platform_connection(property_id, platform_name)
    return DataResponse(success=result["success"], message=result["message"], data=result)
