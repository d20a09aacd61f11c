"""
Guest profile endpoints.
"""
from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from ..models import DataResponse, GuestProfileRequest, MergeGuestsRequest, PrivacySettingsRequest
from ..dependencies import get_guest_profile_service
from ..services.guest_profile_service import GuestProfileService

router = APIRouter(prefix="/guests", tags=["guests"])


def profile_or_404(service: GuestProfileService, guest_id: str):
    profile = service.get_guest_profile(guest_id)
    if not profile:
        raise HTTPException(
            status_code=404,
            detail={"message": "Guest profile not found", "error_code": "NOT_FOUND", "details": {"guest_id": guest_id}},
        )
    return profile


@router.get("", response_model=DataResponse, summary="Search guest profiles")
async def search_guests(
    search: Optional[str] = Query(None, description="Name, email or phone"),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    min_stays: Optional[int] = Query(None, ge=0),
    min_spent: Optional[float] = Query(None, ge=0),
    last_stay_after: Optional[date] = Query(None),
    last_stay_before: Optional[date] = Query(None),
    has_email: Optional[bool] = Query(None),
    has_phone: Optional[bool] = Query(None),
    email_marketing_consent: Optional[bool] = Query(None),
    sms_marketing_consent: Optional[bool] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    service: GuestProfileService = Depends(get_guest_profile_service),
):
    filters = {
        "search": search,
        "city": city,
        "state": state,
        "country": country,
        "min_stays": min_stays,
        "min_spent": min_spent,
        "last_stay_after": last_stay_after.isoformat() if last_stay_after else None,
        "last_stay_before": last_stay_before.isoformat() if last_stay_before else None,
        "has_email": has_email,
        "has_phone": has_phone,
        "email_marketing_consent": email_marketing_consent,
        "sms_marketing_consent": sms_marketing_consent,
        "sort_by": sort_by,
        "sort_order": sort_order,
        "offset": offset,
        "limit": limit,
    }
    profiles = service.search_guest_profiles(filters)
    return DataResponse(success=True, message=f"{len(profiles)} guest(s)", data=profiles)


@router.post("", response_model=DataResponse)
async def create_guest(request: GuestProfileRequest, service: GuestProfileService = Depends(get_guest_profile_service)):
    profile = service.create_guest_profile(request.model_dump(mode="json", exclude_none=True))
    return DataResponse(success=True, message="Guest profile created", data=profile)


@router.get("/stats", response_model=DataResponse)
async def guest_stats(service: GuestProfileService = Depends(get_guest_profile_service)):
    return DataResponse(success=True, message="Guest statistics", data=service.get_guest_profile_stats())


@router.get("/duplicates", response_model=DataResponse, summary="Clusters of likely duplicate profiles")
async def duplicate_clusters(
    limit: int = Query(500, ge=1, le=2000),
    service: GuestProfileService = Depends(get_guest_profile_service),
):
    return DataResponse(success=True, message="Duplicate clusters", data=service.find_duplicate_clusters(limit))


@router.post("/merge", response_model=DataResponse)
async def merge_guests(request: MergeGuestsRequest, service: GuestProfileService = Depends(get_guest_profile_service)):
    result = service.merge_guest_profiles(request.primary_id, request.duplicate_ids)
    return DataResponse(success=True, message="Guest profiles merged", data=result)


@router.get("/{guest_id}", response_model=DataResponse)
async def get_guest(guest_id: str, service: GuestProfileService = Depends(get_guest_profile_service)):
    return DataResponse(success=True, message="Guest profile", data=profile_or_404(service, guest_id))


@router.patch("/{guest_id}", response_model=DataResponse)
async def update_guest(
    guest_id: str,
    request: GuestProfileRequest,
    service: GuestProfileService = Depends(get_guest_profile_service),
):
    profile = service.update_guest_profile(guest_id, request.model_dump(mode="json", exclude_unset=True))
    return DataResponse(success=True, message="Guest profile updated", data=profile)


@router.delete("/{guest_id}", response_model=DataResponse)
async def delete_guest(guest_id: str, service: GuestProfileService = Depends(get_guest_profile_service)):
    profile_or_404(service, guest_id)
    service.delete_guest_profile(guest_id)
    return DataResponse(success=True, message="Guest profile deleted", data={"id": guest_id})


@router.get("/{guest_id}/bookings", response_model=DataResponse)
async def guest_bookings(guest_id: str, service: GuestProfileService = Depends(get_guest_profile_service)):
    return DataResponse(success=True, message="Booking history", data=service.get_guest_booking_history(guest_id))


@router.get("/{guest_id}/communications", response_model=DataResponse)
async def guest_communications(
    guest_id: str,
    limit: int = Query(5, ge=1, le=50),
    service: GuestProfileService = Depends(get_guest_profile_service),
):
    profile = profile_or_404(service, guest_id)
    history = service.get_communication_history_by_email(profile.get("email") or "", limit)
    return DataResponse(success=True, message="Communication history", data=history)


@router.get("/{guest_id}/duplicates", response_model=DataResponse)
async def guest_duplicates(guest_id: str, service: GuestProfileService = Depends(get_guest_profile_service)):
    return DataResponse(success=True, message="Possible duplicates", data=service.find_duplicates_for_profile(guest_id))


@router.put("/{guest_id}/privacy", response_model=DataResponse)
async def update_privacy(
    guest_id: str,
    request: PrivacySettingsRequest,
    service: GuestProfileService = Depends(get_guest_profile_service),
):
    service.update_privacy_settings(guest_id, request.model_dump())
    return DataResponse(success=True, message="Privacy settings updated", data={"id": guest_id})
