"""
Manual OTA update checklists and sync monitoring endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from ..models import DataResponse, ChecklistGenerateRequest, ChecklistItemUpdateRequest
from ..dependencies import get_manual_update_service, get_ota_monitoring_service
from ..services.manual_update_service import ManualUpdateService
from ..services.ota_monitoring_service import OTAMonitoringService

router = APIRouter(tags=["manual-updates"])

STATUS_PATTERN = "^(pending|in_progress|completed)$"


@router.post("/manual-updates/checklists", response_model=DataResponse, summary="Generate or extend a checklist")
async def generate_checklist(
    request: ChecklistGenerateRequest,
    service: ManualUpdateService = Depends(get_manual_update_service),
):
    checklist = service.generate_checklist(request.platform_id, request.property_id, request.start, request.end)
    return DataResponse(success=True, message="Checklist ready", data=checklist)


@router.get("/manual-updates/checklists", response_model=DataResponse)
async def list_checklists(
    property_id: str = Query(...),
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    service: ManualUpdateService = Depends(get_manual_update_service),
):
    return DataResponse(
        success=True,
        message="Checklists",
        data=service.get_checklists_for_property(property_id, status),
    )


@router.get("/manual-updates/pending", response_model=DataResponse)
async def pending_checklists(
    property_id: Optional[str] = Query(None),
    service: ManualUpdateService = Depends(get_manual_update_service),
):
    return DataResponse(success=True, message="Open checklists", data=service.get_pending_checklists(property_id))


@router.get("/manual-updates/checklists/{checklist_id}", response_model=DataResponse)
async def get_checklist(checklist_id: str, service: ManualUpdateService = Depends(get_manual_update_service)):
    return DataResponse(success=True, message="Checklist", data=service.get_checklist(checklist_id))


@router.patch("/manual-updates/checklists/{checklist_id}/items/{item_id}", response_model=DataResponse)
async def update_item(
    checklist_id: str,
    item_id: str,
    request: ChecklistItemUpdateRequest,
    service: ManualUpdateService = Depends(get_manual_update_service),
):
    checklist = service.update_checklist_item(checklist_id, item_id, request.status, request.notes)
    return DataResponse(success=True, message="Checklist item updated", data=checklist)


@router.delete("/manual-updates/checklists", response_model=DataResponse)
async def delete_checklists(
    property_id: Optional[str] = Query(None),
    platform_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    service: ManualUpdateService = Depends(get_manual_update_service),
):
    deleted = service.delete_checklists(property_id, platform_id, status)
    return DataResponse(success=True, message=f"{deleted} checklist(s) deleted", data={"deleted": deleted})


@router.get("/ota-monitoring/health", response_model=DataResponse)
async def sync_health(
    property_id: str = Query(...),
    days: int = Query(7, ge=1, le=90),
    monitoring: OTAMonitoringService = Depends(get_ota_monitoring_service),
):
    return DataResponse(
        success=True,
        message="Sync health",
        data=monitoring.get_sync_health_metrics(property_id, days),
    )


@router.get("/ota-monitoring/performance", response_model=DataResponse)
async def platform_performance(
    property_id: str = Query(...),
    days: int = Query(30, ge=1, le=365),
    monitoring: OTAMonitoringService = Depends(get_ota_monitoring_service),
):
    return DataResponse(
        success=True,
        message="Platform performance",
        data=monitoring.get_platform_performance(property_id, days),
    )


@router.get("/ota-monitoring/trends", response_model=DataResponse)
async def sync_trends(
    property_id: str = Query(...),
    days: int = Query(7, ge=1, le=90),
    monitoring: OTAMonitoringService = Depends(get_ota_monitoring_service),
):
    return DataResponse(success=True, message="Sync trends", data=monitoring.get_sync_trends(property_id, days))


@router.get("/ota-monitoring/alerts", response_model=DataResponse)
async def sync_alerts(
    property_id: str = Query(...),
    monitoring: OTAMonitoringService = Depends(get_ota_monitoring_service),
):
    alerts = monitoring.check_sync_alerts(property_id)
    return DataResponse(success=True, message=f"{len(alerts)} alert(s)", data=alerts)
