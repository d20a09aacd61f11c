"""
Turns parsed OTA emails into booking creates, modifications and cancellations.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .guest_profile_service import GuestProfileService
from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.logger import get_logger
from ...utils.models import EventType, ImportResult, OTAPlatform, ParsedBookingEmail
from config.settings import app_config

AUTO_DECISION_CONFIDENCE = 0.8
PROPERTY_AREAS = ("old manali", "baror")

NOTIFICATION_TITLES = {
    EventType.NEW: "New OTA booking",
    EventType.MODIFIED: "Booking modified",
    EventType.CANCELLED: "Booking cancelled",
}
OUTCOMES = {
    EventType.NEW: "created",
    EventType.MODIFIED: "updated",
    EventType.CANCELLED: "cancelled",
}

# Parsed field -> bookings column, in the order changes are reported
DIFF_FIELDS = (
    ("guest_name", "guest_name"),
    ("room_no", "room_no"),
    ("check_in", "check_in"),
    ("check_out", "check_out"),
    ("no_of_pax", "no_of_pax"),
    ("adult_child", "adult_child"),
    ("total_amount", "total_amount"),
    ("payment_status", "payment_status"),
    ("contact_phone", "contact_phone"),
    ("contact_email", "contact_email"),
    ("special_requests", "special_requests"),
)


def normalize_amount(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return 0
    return value


def _room_no(parsed: ParsedBookingEmail) -> Optional[str]:
    room = str(parsed.room_no).strip() if parsed.room_no is not None else ""
    return room or None


def _same_name(booking: Dict[str, Any], name: Optional[str]) -> bool:
    if not name:
        return False
    return (booking.get("guest_name") or "").lower() == name.lower()


def diff_booking(candidate: Optional[Dict[str, Any]], parsed: ParsedBookingEmail) -> Dict[str, Any]:
    """
    Booking fields an email proposes and, against an existing booking,
    the fields that would change. Room numbers are only proposed when the
    email names one.
    """
    proposed: Dict[str, Any] = {}
    changes: List[Dict[str, Any]] = []
    values = parsed.to_dict()
    values["room_no"] = _room_no(parsed)
    values["total_amount"] = normalize_amount(parsed.total_amount)

    for field_name, column in DIFF_FIELDS:
        value = values.get(field_name)
        if value is None:
            continue
        proposed[column] = value
        if candidate is not None and candidate.get(column) != value:
            changes.append({"field": column, "from": candidate.get(column), "to": value})
    return {"proposed": proposed, "changes": changes}


class EmailImportService:
    """Service applying parsed OTA emails to bookings."""

    def __init__(
        self,
        supabase_client: Optional[SupabaseClient] = None,
        guest_profiles: Optional[GuestProfileService] = None,
    ):
        self.supabase_client = supabase_client or SupabaseClient()
        self.guest_profiles = guest_profiles or GuestProfileService(self.supabase_client)
        self.logger = get_logger("email_import_service")

    def _table(self, name: str):
        return self.supabase_client.ensure().table(name)

    def get_booking_from_thread(self, email_message_id: str) -> Optional[Dict[str, Any]]:
        """Booking linked to the latest import of any email in the same thread."""
        try:
            rows = (
                self._table(app_config.email_messages_table)
                .select("thread_id")
                .eq("id", email_message_id)
                .limit(1)
                .execute()
            ).data or []
            thread_id = rows[0].get("thread_id") if rows else None
            if not thread_id:
                return None

            messages = (
                self._table(app_config.email_messages_table)
                .select("id")
                .eq("thread_id", thread_id)
                .execute()
            ).data or []
            ids = [m["id"] for m in messages]
            if not ids:
                return None

            imports = (
                self._table(app_config.email_imports_table)
                .select("booking_id, processed_at")
                .in_("email_message_id", ids)
                .not_.is_("booking_id", "null")
                .order("processed_at", desc=True)
                .limit(1)
                .execute()
            ).data or []
            booking_id = imports[0].get("booking_id") if imports else None
            if not booking_id:
                return None
            return self.supabase_client.get_booking_by_id(booking_id)
        except Exception as e:
            self.logger.warning("Thread lookup failed", email_message_id=email_message_id, error=str(e))
            return None

    def resolve_property_id(self, parsed: ParsedBookingEmail) -> Optional[str]:
        """Property named by the email's hint, else the first property."""
        properties = self.supabase_client.get_properties()

        def matches(prop: Dict[str, Any], needle: str) -> bool:
            return needle in (prop.get("name") or "").lower() or needle in (prop.get("address") or "").lower()

        hint = (parsed.property_hint or "").lower()
        if hint:
            for prop in properties:
                if matches(prop, hint):
                    return prop["id"]
            for area in PROPERTY_AREAS:
                if area in hint:
                    for prop in properties:
                        if matches(prop, area):
                            return prop["id"]
        return properties[0]["id"] if properties else None

    def upsert_email_import(self, row: Dict[str, Any]) -> Dict[str, Any]:
        resp = (
            self._table(app_config.email_imports_table)
            .upsert(row, on_conflict="email_message_id")
            .execute()
        )
        rows = resp.data or []
        return rows[0] if rows else row

    def _import_row(
        self,
        email_message_id: str,
        parsed: ParsedBookingEmail,
        property_id: Optional[str],
        booking_id: Optional[str],
        import_errors: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return {
            "email_message_id": email_message_id,
            "extraction_id": None,
            "property_id": property_id,
            "event_type": parsed.event_type.value,
            "decision": "auto" if parsed.confidence >= AUTO_DECISION_CONFIDENCE else "manual-approved",
            "booking_id": booking_id,
            "import_errors": import_errors,
            "processed_at": datetime.now(timezone.utc).isoformat(),
            "processed_by": "system",
        }

    def _find_candidate(
        self,
        email_message_id: str,
        parsed: ParsedBookingEmail,
        property_id: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """Booking an update or cancellation applies to: thread, then reference and dates, then guest name."""
        candidate = self.get_booking_from_thread(email_message_id)
        if candidate:
            return candidate
        bookings = self.supabase_client.get_bookings({"property_id": property_id})
        if parsed.booking_reference and parsed.check_in and parsed.check_out:
            for booking in bookings:
                if (
                    (booking.get("source_details") or {}).get("ota_ref") == parsed.booking_reference
                    and booking.get("check_in") == parsed.check_in
                    and booking.get("check_out") == parsed.check_out
                ):
                    return booking
        for booking in bookings:
            if _same_name(booking, parsed.guest_name):
                return booking
        return None

    def _link_guest_profile(self, parsed: ParsedBookingEmail) -> Optional[str]:
        try:
            return self.guest_profiles.find_or_create_for_booking(
                parsed.guest_name, parsed.contact_email, parsed.contact_phone
            )
        except Exception as e:
            # A missing profile link never blocks the booking
            self.logger.error("Failed to link guest profile for email import", error=str(e))
            return None

    def booking_payload(
        self,
        parsed: ParsedBookingEmail,
        property_id: Optional[str],
        guest_profile_id: Optional[str],
    ) -> Dict[str, Any]:
        source_details = {"provider": parsed.ota_platform.value}
        if parsed.booking_reference:
            source_details["ota_ref"] = parsed.booking_reference
        payload = {
            "property_id": property_id,
            "guest_name": parsed.guest_name or "Guest",
            "room_no": _room_no(parsed) or "",
            "number_of_rooms": 1,
            "check_in": parsed.check_in,
            "check_out": parsed.check_out,
            "no_of_pax": parsed.no_of_pax,
            "adult_child": parsed.adult_child,
            "status": "confirmed",
            "cancelled": False,
            "total_amount": normalize_amount(parsed.total_amount),
            "payment_status": parsed.payment_status,
            "contact_phone": parsed.contact_phone,
            "contact_email": parsed.contact_email,
            "special_requests": parsed.special_requests,
            "source": "ota",
            "source_details": source_details,
        }
        if guest_profile_id:
            payload["guest_profile_id"] = guest_profile_id
        return payload

    def import_from_parsed(
        self,
        email_message_id: str,
        parsed: ParsedBookingEmail,
        property_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply one parsed email to the bookings table and record the import.

        Booking.com notification-only mail without stay dates is recorded
        and marked processed without touching bookings. The email is always
        marked processed afterwards.
        """
        property_id = property_id or self.resolve_property_id(parsed)

        if parsed.ota_platform == OTAPlatform.BOOKING_COM and not (parsed.check_in and parsed.check_out):
            result = self.upsert_email_import(self._import_row(
                email_message_id, parsed, property_id, None, {"reason": "booking_com_notification_only"}
            ))
            self.supabase_client.mark_email_processed(email_message_id)
            return result

        guest_profile_id = None
        if parsed.guest_name or parsed.contact_email or parsed.contact_phone:
            guest_profile_id = self._link_guest_profile(parsed)
        payload = self.booking_payload(parsed, property_id, guest_profile_id)

        booking_id, import_errors = self._apply(email_message_id, parsed, property_id, payload)

        result = self.upsert_email_import(self._import_row(
            email_message_id, parsed, property_id, booking_id, import_errors
        ))
        if property_id and parsed.is_booking:
            self.log_notification(parsed, property_id, booking_id, email_message_id)
        self.supabase_client.mark_email_processed(email_message_id)
        return result

    def _apply(
        self,
        email_message_id: str,
        parsed: ParsedBookingEmail,
        property_id: Optional[str],
        payload: Dict[str, Any],
    ) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        event = parsed.event_type
        if event == EventType.NEW:
            if payload["check_in"] and payload["check_out"]:
                created = self.supabase_client.create_booking(payload)
                return (created or {}).get("id"), None
            return None, {
                "reason": "missing_required_fields",
                "fields": {"check_in": bool(payload["check_in"]), "check_out": bool(payload["check_out"])},
            }

        if event == EventType.MODIFIED:
            candidate = self._find_candidate(email_message_id, parsed, property_id)
            if not candidate:
                return None, {"reason": "booking_not_found_for_modify"}
            updates = {
                "check_in": payload["check_in"] or candidate.get("check_in"),
                "check_out": payload["check_out"] or candidate.get("check_out"),
                "no_of_pax": payload["no_of_pax"],
                "adult_child": payload["adult_child"],
                "total_amount": payload["total_amount"],
                "payment_status": payload["payment_status"],
                "contact_phone": payload["contact_phone"],
                "contact_email": payload["contact_email"],
                "special_requests": payload["special_requests"],
                "source": payload["source"],
                "source_details": payload["source_details"],
            }
            if _room_no(parsed):
                updates["room_no"] = _room_no(parsed)
            if payload.get("guest_profile_id"):
                updates["guest_profile_id"] = payload["guest_profile_id"]
            updated = self.supabase_client.update_booking(candidate["id"], updates)
            return (updated or {}).get("id"), None

        if event == EventType.CANCELLED:
            candidate = self._find_candidate(email_message_id, parsed, property_id)
            if not candidate:
                return None, {"reason": "booking_not_found_for_cancel"}
            cancelled = self.supabase_client.cancel_booking(candidate["id"])
            return (candidate["id"] if cancelled else None), None

        return None, None

    def log_notification(
        self,
        parsed: ParsedBookingEmail,
        property_id: str,
        booking_id: Optional[str],
        email_message_id: str,
    ):
        """Staff notifications are written to the log only."""
        message = f"{parsed.guest_name or 'Guest'} • {parsed.check_in or ''} → {parsed.check_out or ''}"
        if parsed.booking_reference:
            message += f" • Ref {parsed.booking_reference}"
        self.logger.info(
            NOTIFICATION_TITLES.get(parsed.event_type, "Booking update"),
            notification_message=message,
            priority="high" if parsed.event_type == EventType.CANCELLED else "medium",
            property_id=property_id,
            platform=parsed.ota_platform.value,
            booking_id=booking_id,
            email_message_id=email_message_id,
        )

    def _candidate_by_reference(self, parsed: ParsedBookingEmail, property_id: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            rows = (
                self._table(app_config.bookings_table)
                .select("*")
                .eq("property_id", property_id or "")
                .eq("check_in", parsed.check_in)
                .eq("check_out", parsed.check_out)
                .contains("source_details", {"ota_ref": parsed.booking_reference})
                .execute()
            ).data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.warning("Reference lookup failed", booking_reference=parsed.booking_reference, error=str(e))
            return None

    def compute_preview(
        self,
        parsed: ParsedBookingEmail,
        property_id: Optional[str] = None,
        email_message_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """What importing this email would do, without writing anything."""
        property_id = property_id or self.resolve_property_id(parsed)

        candidate = None
        if parsed.booking_reference and parsed.check_in and parsed.check_out:
            candidate = self._candidate_by_reference(parsed, property_id)
        if not candidate and email_message_id:
            candidate = self.get_booking_from_thread(email_message_id)
        if not candidate:
            candidate = next(
                (b for b in self.supabase_client.get_bookings({"property_id": property_id})
                 if _same_name(b, parsed.guest_name)),
                None,
            )
            if not candidate and parsed.guest_name:
                candidate = next(
                    (b for b in self.supabase_client.get_bookings({}) if _same_name(b, parsed.guest_name)),
                    None,
                )

        meta = {
            "ota_platform": parsed.ota_platform.value,
            "room_type": parsed.room_type,
            "property_hint": parsed.property_hint,
            "resolved_property_id": property_id,
        }
        event = parsed.event_type

        if event == EventType.NEW:
            missing = [f for f in ("check_in", "check_out") if not getattr(parsed, f)]
            return {
                "action": "create",
                "candidate_booking": None,
                "proposed": diff_booking(None, parsed)["proposed"],
                "changes": [],
                "missing_fields": missing or None,
                **meta,
            }
        if event == EventType.MODIFIED:
            if not candidate:
                return {
                    "action": "update",
                    "candidate_booking": None,
                    "proposed": {},
                    "changes": [],
                    "reason": "No matching booking found",
                    **meta,
                }
            return {"action": "update", "candidate_booking": candidate, **diff_booking(candidate, parsed), **meta}
        if event == EventType.CANCELLED:
            if not candidate:
                return {"action": "cancel", "candidate_booking": None, "reason": "No matching booking found", **meta}
            return {"action": "cancel", "candidate_booking": candidate, **meta}
        return {"action": "ignore", "candidate_booking": None, "reason": "Not booking-related", **meta}

    def import_message(self, message: Dict[str, Any], parser) -> ImportResult:
        """Parse a stored ``email_messages`` row and import it."""
        parsed = parser.parse_message(message)
        row = self.import_from_parsed(message["id"], parsed)
        booking_id = row.get("booking_id")
        errors = row.get("import_errors") or {}
        outcome = OUTCOMES.get(parsed.event_type) if booking_id else None
        return ImportResult(
            outcome=outcome or "skipped",
            booking_id=booking_id,
            reason=errors.get("reason") or (None if parsed.is_booking else "not_booking"),
            details={"event_type": parsed.event_type.value, "confidence": parsed.confidence},
        )
