"""
Booking service for handling booking-related business logic.
"""
from typing import Optional, Dict, Any, AsyncGenerator, List
from datetime import datetime
import time
import json

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.errors import NotFoundError
from ..models import (
    BookingSummary, BookingStatsResponse, ErrorResponse,
    CreateBookingRequest, CreateBookingResponse, UpdateBookingRequest,
)
from ..config import settings
from .guest_profile_service import GuestProfileService
from .conflict_service import ConflictService
from .manual_update_service import ManualUpdateService


class BookingService:
    """Service for handling booking operations."""

    def __init__(
        self,
        supabase_client: SupabaseClient,
        logger,
        guest_profiles: Optional[GuestProfileService] = None,
        conflicts: Optional[ConflictService] = None,
        manual_updates: Optional[ManualUpdateService] = None,
    ):
        self.supabase_client = supabase_client
        self.logger = logger
        self._cache = {}
        self._cache_ttl = settings.cache_ttl_seconds
        self.guest_profiles = guest_profiles or GuestProfileService(supabase_client)
        self.conflicts = conflicts or ConflictService(supabase_client)
        self.manual_updates = manual_updates

    async def create_booking_process(self, request: CreateBookingRequest) -> AsyncGenerator[str, None]:
        """
        Create a booking with step-by-step NDJSON status updates.

        Steps: database record, guest profile link, conflict check.
        """
        try:
            yield json.dumps({
                "step": "database",
                "status": "in_progress",
                "message": "Creating booking record..."
            }) + "\n"

            response = self.create_booking(request, link_guest=False)
            if not response.success:
                yield json.dumps({
                    "step": "database",
                    "status": "failed",
                    "message": response.message
                }) + "\n"
                return

            booking = dict(response.data)
            yield json.dumps({
                "step": "database",
                "status": "completed",
                "message": f"Booking record created ({booking.get('folio_number')})"
            }) + "\n"

            yield json.dumps({
                "step": "guest_profile",
                "status": "in_progress",
                "message": "Linking guest profile..."
            }) + "\n"
            try:
                guest_id = self.link_guest_profile(booking)
                yield json.dumps({
                    "step": "guest_profile",
                    "status": "completed" if guest_id else "skipped",
                    "message": "Guest profile linked" if guest_id else "No guest details to link"
                }) + "\n"
            except Exception as e:
                self.logger.error("Guest profile link failed", booking_id=booking.get("id"), error=str(e))
                yield json.dumps({
                    "step": "guest_profile",
                    "status": "warning",
                    "message": "Guest profile link skipped"
                }) + "\n"

            yield json.dumps({
                "step": "conflicts",
                "status": "in_progress",
                "message": "Checking calendar conflicts..."
            }) + "\n"
            try:
                found = self.conflicts.detect_conflicts(request.property_id)
                related = [c for c in found if booking.get("id") in (c.booking_id_1, c.booking_id_2)]
                yield json.dumps({
                    "step": "conflicts",
                    "status": "warning" if related else "completed",
                    "message": f"{len(related)} conflict(s) involve this booking" if related else "No conflicts"
                }) + "\n"
            except Exception as e:
                self.logger.error("Conflict check failed", booking_id=booking.get("id"), error=str(e))
                yield json.dumps({
                    "step": "conflicts",
                    "status": "warning",
                    "message": "Conflict check skipped"
                }) + "\n"

            yield json.dumps({
                "step": "complete",
                "status": "success",
                "message": "All booking steps completed successfully",
                "data": booking
            }, default=str) + "\n"

        except Exception as e:
            self.logger.error("Booking process failed", error=str(e), exc_info=True)
            yield json.dumps({
                "step": "process",
                "status": "error",
                "message": f"Critical error: {str(e)}"
            }) + "\n"

    def link_guest_profile(self, booking: Dict[str, Any]) -> Optional[str]:
        guest_id = self.guest_profiles.find_or_create_for_booking(
            booking.get("guest_name"), booking.get("contact_email"), booking.get("contact_phone")
        )
        if guest_id:
            self.guest_profiles.link_guest_to_booking(booking["id"], guest_id)
            booking["guest_profile_id"] = guest_id
        return guest_id

    def queue_manual_updates(self, change: str, booking: Dict[str, Any]) -> None:
        """Add block/release steps to the manual OTA checklists; failures only log."""
        if not self.manual_updates or not booking.get("property_id"):
            return
        try:
            self.manual_updates.create_delta_checklists_for_booking_change(booking["property_id"], change, booking)
        except Exception as e:
            self.logger.warning(
                "Manual update checklist failed", booking_id=booking.get("id"), change=change, error=str(e)
            )

    def create_booking(self, request: CreateBookingRequest, link_guest: bool = True) -> CreateBookingResponse:
        """
        Create a new booking; a folio number is assigned by the data layer.

        Args:
            request: Booking creation request
            link_guest: Find or create the guest's profile and link it

        Returns:
            CreateBookingResponse with created booking data
        """
        try:
            self.logger.info("Creating new booking", property_id=request.property_id, guest_name=request.guest_name)

            booking_dict = request.model_dump(mode="json")
            booking_dict["booking_date"] = booking_dict.get("booking_date") or datetime.utcnow().date().isoformat()

            created = self.supabase_client.create_booking(booking_dict)
            if not created:
                raise RuntimeError("Database insert returned no booking")

            if link_guest:
                try:
                    self.link_guest_profile(created)
                except Exception as e:
                    self.logger.warning("Guest profile link failed", booking_id=created.get("id"), error=str(e))

            self.queue_manual_updates("created", created)

            self._cache.clear()
            return CreateBookingResponse(
                success=True,
                message="Booking created successfully",
                data=created
            )

        except Exception as e:
            error_msg = f"Failed to create booking: {str(e)}"
            self.logger.error(error_msg, exc_info=True)
            return CreateBookingResponse(
                success=False,
                message=error_msg,
                data={}
            )

    def get_booking(self, booking_id: str) -> Dict[str, Any]:
        booking = self.supabase_client.get_booking_by_id(booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def update_booking(self, booking_id: str, request: UpdateBookingRequest) -> Dict[str, Any]:
        current = self.get_booking(booking_id)
        updates = request.model_dump(mode="json", exclude_none=True)
        check_in = updates.get("check_in", current.get("check_in"))
        check_out = updates.get("check_out", current.get("check_out"))
        if check_in and check_out and str(check_out) <= str(check_in):
            raise ValueError("check_out must be after check_in")

        updated = self.supabase_client.update_booking(booking_id, updates)
        if not updated:
            raise RuntimeError(f"Failed to update booking {booking_id}")
        self._cache.clear()
        self.logger.info("Booking updated", booking_id=booking_id, fields=sorted(updates))
        self.queue_manual_updates("updated", updated)
        return updated

    def cancel_booking(self, booking_id: str) -> Dict[str, Any]:
        self.get_booking(booking_id)
        cancelled = self.supabase_client.cancel_booking(booking_id)
        if not cancelled:
            raise RuntimeError(f"Failed to cancel booking {booking_id}")
        self._cache.clear()
        self.logger.info("Booking cancelled", booking_id=booking_id)
        self.queue_manual_updates("cancelled", cancelled)
        return cancelled

    def delete_booking(self, booking_id: str) -> bool:
        self.get_booking(booking_id)
        deleted = self.supabase_client.delete_booking(booking_id)
        self._cache.clear()
        return deleted

    def get_booking_statistics(self) -> BookingStatsResponse:
        """
        Get active booking counts by source and status, with caching.

        Returns:
            BookingStatsResponse with total bookings and breakdowns
        """
        try:
            cache_key = "booking_stats"
            current_time = time.time()

            if cache_key in self._cache:
                cached_data, timestamp = self._cache[cache_key]
                if current_time - timestamp < self._cache_ttl:
                    self.logger.info("Returning cached booking statistics")
                    return cached_data

            self.logger.info("Fetching booking statistics from Supabase")
            bookings = self.supabase_client.get_bookings()

            by_source: Dict[str, int] = {}
            by_status: Dict[str, int] = {}
            for booking in bookings:
                source = booking.get("source") or "unknown"
                status = booking.get("status") or "unknown"
                by_source[source] = by_source.get(source, 0) + 1
                by_status[status] = by_status.get(status, 0) + 1

            booking_summary = BookingSummary(
                total_bookings=len(bookings),
                by_source=by_source,
                by_status=by_status,
                last_updated=datetime.utcnow()
            )
            response = BookingStatsResponse(
                success=True,
                message="Booking statistics retrieved successfully",
                data=booking_summary
            )
            self._cache[cache_key] = (response, current_time)

            self.logger.info(
                "Booking statistics fetched successfully",
                total_bookings=booking_summary.total_bookings,
                sources_count=len(by_source)
            )
            return response

        except Exception as e:
            self.logger.error("Unexpected error fetching booking statistics", error=str(e), exc_info=True)
            return ErrorResponse(
                success=False,
                message="Internal server error",
                error_code="INTERNAL_ERROR",
                details={"error": str(e)}
            )

    def get_bookings_paginated(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """
        Get one page of bookings matching ``filters``.

        Args:
            filters: Filters understood by ``SupabaseClient.get_bookings``
            page: Page number (starts at 1)
            limit: Number of bookings per page

        Returns:
            Dictionary with paginated booking data
        """
        self.logger.info("Fetching paginated bookings", filters=filters, page=page, limit=limit)
        offset = (page - 1) * limit

        all_bookings: List[Dict[str, Any]] = self.supabase_client.get_bookings(filters or {})
        total_count = len(all_bookings)
        total_pages = (total_count + limit - 1) // limit if total_count > 0 else 0

        return {
            "bookings": all_bookings[offset:offset + limit],
            "total": total_count,
            "page": page,
            "limit": limit,
            "total_pages": total_pages
        }
