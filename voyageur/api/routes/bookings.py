"""
Booking API endpoints.
"""
from typing import List, Optional, Union
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from ..models import (
    BookingStatsResponse, ErrorResponse, PaginatedBookingResponse, DataResponse,
    CreateBookingRequest, CreateBookingResponse, UpdateBookingRequest,
)
from ..dependencies import get_booking_service
from ..services.booking_service import BookingService


router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=Union[CreateBookingResponse, None],
    summary="Create a new booking",
    description="Create a booking and link its guest profile. Use stream=true for NDJSON progress updates.",
    responses={
        200: {"description": "Booking created successfully"},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def create_booking(
    request: CreateBookingRequest,
    stream: bool = Query(False, description="Stream progress updates via NDJSON"),
    booking_service: BookingService = Depends(get_booking_service)
):
    """
    Create a new booking.

    Args:
        request: Booking creation request
        stream: Whether to stream progress updates (default: False)
        booking_service: Injected booking service

    Returns:
        Created booking response or StreamingResponse
    """
    if stream:
        return StreamingResponse(
            booking_service.create_booking_process(request),
            media_type="application/x-ndjson"
        )

    response = booking_service.create_booking(request)
    if not response.success:
        raise HTTPException(
            status_code=500,
            detail={
                "message": response.message,
                "error_code": "CREATION_FAILED",
                "details": {}
            }
        )
    return response


@router.get(
    "",
    response_model=PaginatedBookingResponse,
    summary="Get paginated bookings",
    description="Retrieve bookings with optional property, date, guest, source and status filters",
    responses={
        200: {"description": "Bookings retrieved successfully"},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def get_bookings(
    property_id: Optional[str] = Query(None, description="Filter by property"),
    start: Optional[date] = Query(None, description="Check-in on or after this date"),
    end: Optional[date] = Query(None, description="Check-out on or before this date"),
    guest_name: Optional[str] = Query(None, description="Case-insensitive guest name match"),
    source: Optional[str] = Query(None, description="Booking source, e.g. direct or ota"),
    room_no: Optional[str] = Query(None, description="Room number"),
    status: Optional[List[str]] = Query(None, description="Booking statuses"),
    payment_status: Optional[List[str]] = Query(None, description="Payment statuses"),
    show_cancelled: bool = Query(False, description="Include cancelled bookings"),
    page: int = Query(1, ge=1, description="Page number for pagination"),
    limit: int = Query(10, ge=1, le=100, description="Number of bookings per page"),
    booking_service: BookingService = Depends(get_booking_service)
):
    """
    Get paginated booking records from the database.

    Raises:
        HTTPException: If the bookings cannot be loaded
    """
    filters = {
        "property_id": property_id,
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "guest_name": guest_name,
        "source": source,
        "room_no": room_no,
        "status": status,
        "payment_status": payment_status,
        "show_cancelled": show_cancelled,
    }
    try:
        bookings = booking_service.get_bookings_paginated(
            filters={k: v for k, v in filters.items() if v is not None},
            page=page,
            limit=limit
        )
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={
                "message": "Internal server error",
                "error_code": "INTERNAL_ERROR",
                "details": {"error": str(e)}
            }
        )
    return {
        "success": True,
        "message": f"Bookings retrieved for page {page}",
        "data": bookings
    }


@router.get(
    "/stats",
    response_model=BookingStatsResponse,
    summary="Get booking statistics",
    description="Active booking counts by source and status, cached for a few minutes",
    responses={
        200: {"description": "Statistics retrieved successfully"},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def get_booking_stats(
    booking_service: BookingService = Depends(get_booking_service)
) -> BookingStatsResponse:
    stats_response = booking_service.get_booking_statistics()

    if not stats_response.success:
        raise HTTPException(
            status_code=500,
            detail={
                "message": stats_response.message,
                "error_code": getattr(stats_response, 'error_code', 'UNKNOWN_ERROR'),
                "details": getattr(stats_response, 'details', None)
            }
        )
    return stats_response


@router.get("/{booking_id}", response_model=DataResponse, summary="Get a booking")
async def get_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    return DataResponse(success=True, message="Booking retrieved", data=booking_service.get_booking(booking_id))


@router.patch(
    "/{booking_id}",
    response_model=DataResponse,
    summary="Update a booking",
    responses={
        404: {"description": "Booking not found", "model": ErrorResponse},
        422: {"description": "Invalid dates", "model": ErrorResponse},
    },
)
async def update_booking(
    booking_id: str,
    payload: UpdateBookingRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        updated = booking_service.update_booking(booking_id, payload)
    except ValueError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "error_code": "VALIDATION_ERROR", "details": {}}
        )
    return DataResponse(success=True, message="Booking updated", data=updated)


@router.post("/{booking_id}/cancel", response_model=DataResponse, summary="Cancel a booking")
async def cancel_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    return DataResponse(success=True, message="Booking cancelled", data=booking_service.cancel_booking(booking_id))


@router.delete("/{booking_id}", response_model=DataResponse, summary="Delete a booking")
async def delete_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    if not booking_service.delete_booking(booking_id):
        raise HTTPException(
            status_code=500,
            detail={"message": f"Failed to delete booking {booking_id}", "error_code": "DELETE_FAILED", "details": {}}
        )
    return DataResponse(success=True, message="Booking deleted", data={"id": booking_id})
