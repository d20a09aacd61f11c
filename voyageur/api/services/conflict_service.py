"""
Calendar conflict detection and resolution.

Four detectors run over a property's upcoming, non-cancelled bookings:
double bookings (same room, overlapping stays), OTA sync failures, bookings
without a room and bookings without a price. Stays are half-open ranges,
so a check-out on another booking's check-in day is not an overlap.
"""
from datetime import datetime, timezone
from itertools import combinations
from typing import Any, Dict, List, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.dates import days_between, iso, parse_date, today_iso
from ...utils.errors import NotFoundError
from ...utils.logger import get_logger
from ...utils.models import CalendarConflict
from config.settings import app_config

RESOLUTION_COSTS = {
    "manual_review": 0,
    "relocate_direct": 500,
    "relocate_ota": 1000,
    "honor_first": 1500,
    "retry_sync": 0,
    "assign_room": 0,
    "update_pricing": 0,
}
AUTO_RESOLVABLE_ACTIONS = ("update_pricing",)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def dates_overlap(start1, end1, start2, end2) -> bool:
    return parse_date(start1) < parse_date(end2) and parse_date(start2) < parse_date(end1)


def overlap_range(booking1: Dict[str, Any], booking2: Dict[str, Any]):
    start = max(parse_date(booking1["check_in"]), parse_date(booking2["check_in"]))
    end = min(parse_date(booking1["check_out"]), parse_date(booking2["check_out"]))
    return iso(start), iso(end)


def resolution(action: str, priority: str, steps: List[str]) -> Dict[str, Any]:
    return {
        "action": action,
        "priority": priority,
        "steps": steps,
        "estimated_cost": RESOLUTION_COSTS.get(action, 0),
        "auto_resolvable": action in AUTO_RESOLVABLE_ACTIONS,
    }


def suggest_double_booking_resolution(booking1: Dict[str, Any], booking2: Dict[str, Any]) -> Dict[str, Any]:
    """Direct bookings are moved before OTA ones; otherwise the earlier booking wins."""
    is_ota1 = bool(booking1.get("ota_platform_id"))
    is_ota2 = bool(booking2.get("ota_platform_id"))
    booked1 = parse_date(booking1.get("booking_date"))
    booked2 = parse_date(booking2.get("booking_date"))

    if is_ota1 and not is_ota2:
        return resolution("relocate_direct", "high", [
            "Try to relocate direct booking",
            "Offer room upgrade if available",
            "Contact direct guest first",
            "Update OTA calendar",
        ])
    if is_ota2 and not is_ota1:
        return resolution("relocate_ota", "high", [
            "Check OTA cancellation policy",
            "Try to relocate OTA booking",
            "Contact OTA support",
            "Update local calendar",
        ])
    if booked1 and booked2 and booked1 < booked2:
        return resolution("honor_first", "high", [
            "Honor first booking (earlier booking date)",
            "Relocate or cancel second booking",
            "Provide compensation",
            "Update all calendars",
        ])
    return resolution("manual_review", "high", [
        "Review both bookings carefully",
        "Contact guests to verify dates",
        "Check for alternative rooms",
        "Relocate one booking if possible",
        "Cancel and compensate if necessary",
    ])


def find_double_bookings(property_id: str, bookings: List[Dict[str, Any]]) -> List[CalendarConflict]:
    """Pairs of bookings in the same room whose stays overlap."""
    by_room: Dict[Any, List[Dict[str, Any]]] = {}
    for booking in bookings:
        by_room.setdefault(booking.get("room_no"), []).append(booking)

    conflicts = []
    for room_no, room_bookings in by_room.items():
        for b1, b2 in combinations(room_bookings, 2):
            if not dates_overlap(b1["check_in"], b1["check_out"], b2["check_in"], b2["check_out"]):
                continue
            start, end = overlap_range(b1, b2)
            conflicts.append(CalendarConflict(
                id=f"double-{b1['id']}-{b2['id']}",
                property_id=property_id,
                conflict_type="double_booking",
                severity="high",
                conflict_date=start,
                booking_id_1=b1["id"],
                booking_id_2=b2["id"],
                room_no=room_no,
                conflict_date_start=start,
                conflict_date_end=end,
                description=f"Double booking detected for Room {room_no}",
                details={
                    "booking1": _booking_summary(b1),
                    "booking2": _booking_summary(b2),
                },
                suggested_resolution=suggest_double_booking_resolution(b1, b2),
            ))
    return conflicts


def _booking_summary(booking: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": booking["id"],
        "guest": booking.get("guest_name"),
        "dates": f"{booking['check_in']} to {booking['check_out']}",
        "platform": booking.get("ota_platform_id") or "direct",
    }


def sync_conflict(property_id: str, booking: Dict[str, Any]) -> CalendarConflict:
    failed = booking.get("ota_sync_status") == "failed"
    return CalendarConflict(
        id=f"sync-{booking['id']}",
        property_id=property_id,
        conflict_type="sync_failed",
        severity="medium" if failed else "low",
        conflict_date=booking["check_in"],
        booking_id_1=booking["id"],
        room_no=booking.get("room_no"),
        conflict_date_start=booking["check_in"],
        conflict_date_end=booking["check_out"],
        description=f"OTA sync {booking.get('ota_sync_status')} for booking",
        details={
            "platform": booking.get("ota_platform_id"),
            "sync_status": booking.get("ota_sync_status"),
            "last_sync": booking.get("ota_last_sync"),
            "error_message": booking.get("ota_sync_error"),
        },
        suggested_resolution=resolution("retry_sync", "high" if failed else "medium", [
            "Check OTA platform connectivity",
            "Verify booking details",
            "Retry synchronization",
            "Update booking status",
        ]),
    )


def availability_conflict(property_id: str, booking: Dict[str, Any]) -> CalendarConflict:
    return CalendarConflict(
        id=f"availability-{booking['id']}",
        property_id=property_id,
        conflict_type="availability_mismatch",
        severity="medium",
        conflict_date=booking["check_in"],
        booking_id_1=booking["id"],
        room_no=booking.get("room_no") or "Unassigned",
        conflict_date_start=booking["check_in"],
        conflict_date_end=booking["check_out"],
        description="Booking without room assignment",
        details={
            "guest": booking.get("guest_name"),
            "pax": booking.get("no_of_pax"),
            "platform": booking.get("ota_platform_id") or "direct",
            "booking_date": booking.get("booking_date"),
        },
        suggested_resolution=resolution("assign_room", "high", [
            "Check room availability",
            "Assign appropriate room",
            "Update booking record",
            "Notify guest if needed",
        ]),
    )


def pricing_conflict(property_id: str, booking: Dict[str, Any], room_rate: Optional[float]) -> CalendarConflict:
    return CalendarConflict(
        id=f"pricing-{booking['id']}",
        property_id=property_id,
        conflict_type="pricing_mismatch",
        severity="low",
        conflict_date=booking["check_in"],
        booking_id_1=booking["id"],
        room_no=booking.get("room_no"),
        conflict_date_start=booking["check_in"],
        conflict_date_end=booking["check_out"],
        description="Missing or zero pricing information",
        details={
            "guest": booking.get("guest_name"),
            "current_amount": booking.get("total_amount"),
            "room_rate": room_rate,
            "platform": booking.get("ota_platform_id") or "direct",
        },
        suggested_resolution=resolution("update_pricing", "medium", [
            "Calculate correct pricing",
            "Update booking amount",
            "Verify payment status",
            "Send invoice if needed",
        ]),
    )


class ConflictService:
    """Service for detecting, storing and resolving calendar conflicts."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("conflict_service")

    def _table(self, name: Optional[str] = None):
        return self.supabase_client.ensure().table(name or app_config.calendar_conflicts_table)

    def _upcoming(self, property_id: str, date_column: str, today: str):
        return (
            self._table(app_config.bookings_table)
            .select("*")
            .eq("property_id", property_id)
            .eq("cancelled", False)
            .gte(date_column, today)
        )

    def _room_rates(self, property_id: str) -> Dict[str, float]:
        return {
            room.get("room_number"): room.get("price_per_night")
            for room in self.supabase_client.get_rooms(property_id, active_only=False)
        }

    def detect_conflicts(self, property_id: str, today: Optional[str] = None) -> List[CalendarConflict]:
        """Run every detector for a property and save what they find."""
        today = today or today_iso()
        conflicts: List[CalendarConflict] = []

        bookings = self._upcoming(property_id, "check_out", today).order("check_in").execute().data or []
        conflicts.extend(find_double_bookings(property_id, bookings))

        sync_issues = (
            self._upcoming(property_id, "check_out", today)
            .or_("ota_sync_status.eq.failed,ota_sync_status.eq.pending")
            .execute()
        ).data or []
        conflicts.extend(sync_conflict(property_id, b) for b in sync_issues)

        unassigned = (
            self._upcoming(property_id, "check_in", today)
            .or_("room_no.is.null,room_no.eq.TBD,room_no.eq.")
            .execute()
        ).data or []
        conflicts.extend(availability_conflict(property_id, b) for b in unassigned)

        unpriced = (
            self._upcoming(property_id, "check_in", today)
            .or_("total_amount.eq.0,total_amount.is.null")
            .execute()
        ).data or []
        if unpriced:
            rates = self._room_rates(property_id)
            conflicts.extend(pricing_conflict(property_id, b, rates.get(b.get("room_no"))) for b in unpriced)

        for conflict in conflicts:
            self.save_conflict(conflict)
        self.logger.info("Conflicts detected", property_id=property_id, count=len(conflicts))
        return conflicts

    def save_conflict(self, conflict: CalendarConflict) -> None:
        """Insert a new conflict or refresh the stored one with the same id."""
        try:
            row = conflict.to_row()
            existing = self._table().select("id").eq("id", conflict.id).limit(1).execute().data or []
            if existing:
                self._table().update({**row, "updated_at": _now()}).eq("id", conflict.id).execute()
            else:
                self._table().insert({**row, "created_at": _now(), "updated_at": _now()}).execute()
        except Exception as e:
            self.logger.error("Error saving conflict", conflict_id=conflict.id, error=str(e))

    def resolve_conflict(self, conflict_id: str, resolution_data: Dict[str, Any], resolved_by: str) -> None:
        now = _now()
        self._table().update({
            "status": "resolved",
            "resolution_action": resolution_data.get("action"),
            "resolution_notes": resolution_data.get("notes"),
            "resolved_by": resolved_by,
            "resolved_at": now,
            "updated_at": now,
        }).eq("id", conflict_id).execute()
        self.logger.info("Conflict resolved", conflict_id=conflict_id, action=resolution_data.get("action"))

    def get_conflicts(self, property_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._table().select("*").eq("property_id", property_id).order("created_at", desc=True)
        if status:
            query = query.eq("status", status)
        return query.execute().data or []

    def get_conflict_stats(self, property_id: str) -> Dict[str, Any]:
        rows = (
            self._table()
            .select("conflict_type, severity, status")
            .eq("property_id", property_id)
            .execute()
        ).data or []
        stats = {"total": len(rows), "by_type": {}, "by_severity": {}, "by_status": {}}
        for row in rows:
            for key, column in (("by_type", "conflict_type"), ("by_severity", "severity"), ("by_status", "status")):
                value = row.get(column)
                stats[key][value] = stats[key].get(value, 0) + 1
        return stats

    def auto_resolve_conflicts(self, property_id: str) -> int:
        """Resolve detected conflicts whose suggested action can run unattended."""
        resolved = 0
        for conflict in self.get_conflicts(property_id, "detected"):
            suggestion = conflict.get("suggested_resolution") or {}
            if not suggestion.get("auto_resolvable"):
                continue
            try:
                self.execute_auto_resolution(conflict)
                self.resolve_conflict(conflict["id"], suggestion, "system")
                resolved += 1
            except Exception as e:
                self.logger.error("Failed to auto-resolve conflict", conflict_id=conflict["id"], error=str(e))
        return resolved

    def execute_auto_resolution(self, conflict: Dict[str, Any]) -> None:
        action = (conflict.get("suggested_resolution") or {}).get("action")
        if action == "update_pricing":
            if conflict.get("booking_id_1"):
                self.auto_update_pricing(conflict["booking_id_1"])
            return
        raise ValueError(f"Auto-resolution not supported for action: {action}")

    def auto_update_pricing(self, booking_id: str) -> float:
        """Price a booking at its room's nightly rate times the nights stayed."""
        booking = self.supabase_client.get_booking_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found", {"booking_id": booking_id})
        rates = self._room_rates(booking.get("property_id"))
        rate = rates.get(booking.get("room_no")) or 0
        total = max(0, days_between(booking["check_in"], booking["check_out"])) * rate
        self.supabase_client.update_booking(booking_id, {"total_amount": total})
        return total
