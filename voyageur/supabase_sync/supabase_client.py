"""
Supabase client helper for hotel booking data.
"""
from datetime import datetime, date
from typing import Optional, Dict, Any, List

from supabase import create_client

from ..utils.logger import get_logger
from config.settings import supabase_config, app_config

DEFAULT_INVOICE_COUNTER = 391

BOOKING_FIELDS = (
    "property_id", "guest_name", "guest_profile_id", "room_no", "number_of_rooms",
    "check_in", "check_out", "no_of_pax", "adult_child", "status", "cancelled",
    "total_amount", "payment_status", "payment_amount", "payment_mode",
    "contact_phone", "contact_email", "special_requests", "booking_date",
    "folio_number", "source", "source_details", "ota_platform_id",
    "ota_booking_id", "ota_sync_status", "ota_last_sync",
)


class SupabaseClient:
    """Supabase client for booking data and shared lookups."""

    def __init__(self):
        self.logger = get_logger("supabase_client")
        self.client = None
        self.initialized = False

    def initialize(self) -> bool:
        """Initialize Supabase client from environment configuration."""
        try:
            if self.initialized:
                return True

            auth_key = supabase_config.get_auth_key()
            if not supabase_config.url or not auth_key:
                self.logger.error("Supabase configuration missing", url=bool(supabase_config.url))
                return False

            self.client = create_client(supabase_config.url, auth_key)
            self.initialized = True
            self.logger.info("Supabase client initialized successfully", url=supabase_config.url)
            return True
        except Exception as e:
            self.logger.error("Failed to initialize Supabase client", error=str(e))
            self.initialized = False
            return False

    def ensure(self):
        """Return the raw client, raising when Supabase cannot be initialized."""
        if not self.initialized and not self.initialize():
            raise RuntimeError("Supabase initialization failed")
        return self.client

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively convert dates and datetimes to ISO strings."""

        def serialize_value(value):
            if isinstance(value, (datetime, date)):
                return value.isoformat()
            if isinstance(value, dict):
                return {k: serialize_value(v) for k, v in value.items()}
            if isinstance(value, list):
                return [serialize_value(v) for v in value]
            return value

        return {k: serialize_value(v) for k, v in payload.items()}

    # Bookings
    def get_bookings(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        List bookings, newest first.

        Supported filters: property_id, start/end (check-in on or after start,
        check-out on or before end), guest_name and room_no (substring),
        source, status and payment_status (lists), show_cancelled (default False).
        """
        if not self.initialized and not self.initialize():
            return []
        filters = filters or {}
        try:
            query = (
                self.client.table(app_config.bookings_table)
                .select("*")
                .order("created_at", desc=True)
            )
            if filters.get("property_id"):
                query = query.eq("property_id", filters["property_id"])
            if filters.get("start") and filters.get("end"):
                query = query.gte("check_in", filters["start"]).lte("check_out", filters["end"])
            if filters.get("guest_name"):
                query = query.ilike("guest_name", f"%{filters['guest_name']}%")
            if filters.get("source"):
                query = query.eq("source", filters["source"])
            if filters.get("room_no"):
                query = query.ilike("room_no", f"%{filters['room_no']}%")
            if filters.get("status"):
                query = query.in_("status", list(filters["status"]))
            if filters.get("payment_status"):
                query = query.in_("payment_status", list(filters["payment_status"]))
            if not filters.get("show_cancelled", False):
                query = query.eq("cancelled", False)

            resp = query.execute()
            return resp.data or []
        except Exception as e:
            self.logger.error("Error fetching bookings", error=str(e))
            return []

    def get_booking_by_id(self, booking_id: str) -> Optional[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return None
        try:
            resp = (
                self.client.table(app_config.bookings_table)
                .select("*")
                .eq("id", booking_id)
                .limit(1)
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.error("Error fetching booking", booking_id=booking_id, error=str(e))
            return None

    def get_invoice_counter(self) -> int:
        """Current folio counter; seeds the counter row when it is missing."""
        if not self.initialized and not self.initialize():
            return DEFAULT_INVOICE_COUNTER
        try:
            resp = (
                self.client.table(app_config.invoice_counter_table)
                .select("value")
                .eq("id", 1)
                .limit(1)
                .execute()
            )
            rows = resp.data or []
            if not rows:
                self.client.table(app_config.invoice_counter_table).insert(
                    {"id": 1, "value": DEFAULT_INVOICE_COUNTER}
                ).execute()
                return DEFAULT_INVOICE_COUNTER
            return int(rows[0].get("value") or DEFAULT_INVOICE_COUNTER)
        except Exception as e:
            self.logger.error("Error fetching invoice counter", error=str(e))
            return DEFAULT_INVOICE_COUNTER

    def set_invoice_counter(self, value: int) -> bool:
        if not self.initialized and not self.initialize():
            return False
        try:
            self.client.table(app_config.invoice_counter_table).upsert(
                {"id": 1, "value": value}
            ).execute()
            return True
        except Exception as e:
            self.logger.error("Error updating invoice counter", value=value, error=str(e))
            return False

    def create_booking(self, booking: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert a booking, assigning the next folio number when none is given."""
        if not self.initialized and not self.initialize():
            return None
        try:
            payload = {k: v for k, v in booking.items() if k in BOOKING_FIELDS}
            payload.setdefault("number_of_rooms", 1)
            payload.setdefault("cancelled", False)
            if not payload.get("folio_number"):
                counter = self.get_invoice_counter()
                payload["folio_number"] = f"{app_config.folio_prefix}/{counter}"
                self.set_invoice_counter(counter + 1)

            resp = (
                self.client.table(app_config.bookings_table)
                .insert(self._serialize_payload(payload))
                .execute()
            )
            rows = resp.data or []
            created = rows[0] if rows else None
            if created:
                self.logger.info(
                    "Booking created",
                    booking_id=created.get("id"),
                    folio_number=created.get("folio_number"),
                )
            return created
        except Exception as e:
            self.logger.error("Error creating booking", guest_name=booking.get("guest_name"), error=str(e))
            return None

    def update_booking(self, booking_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return None
        try:
            payload = {k: v for k, v in updates.items() if k in BOOKING_FIELDS}
            payload["updated_at"] = datetime.utcnow()
            resp = (
                self.client.table(app_config.bookings_table)
                .update(self._serialize_payload(payload))
                .eq("id", booking_id)
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.error("Error updating booking", booking_id=booking_id, error=str(e))
            return None

    def cancel_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return self.update_booking(booking_id, {"cancelled": True})

    def delete_booking(self, booking_id: str) -> bool:
        if not self.initialized and not self.initialize():
            return False
        try:
            self.client.table(app_config.bookings_table).delete().eq("id", booking_id).execute()
            self.logger.info("Booking deleted", booking_id=booking_id)
            return True
        except Exception as e:
            self.logger.error("Error deleting booking", booking_id=booking_id, error=str(e))
            return False

    # Properties and rooms
    def get_properties(self) -> List[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return []
        try:
            resp = (
                self.client.table(app_config.properties_table)
                .select("id,name,address")
                .order("name")
                .execute()
            )
            return resp.data or []
        except Exception as e:
            self.logger.error("Error fetching properties", error=str(e))
            return []

    def get_rooms(self, property_id: Optional[str] = None, active_only: bool = True) -> List[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return []
        try:
            query = self.client.table(app_config.rooms_table).select("*")
            if property_id:
                query = query.eq("property_id", property_id)
            if active_only:
                query = query.eq("is_active", True)
            resp = query.execute()
            return resp.data or []
        except Exception as e:
            self.logger.error("Error fetching rooms", property_id=property_id, error=str(e))
            return []

    # Storage
    def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> Optional[str]:
        """Upload bytes to a storage bucket and return the stored path."""
        if not self.initialized and not self.initialize():
            return None
        try:
            self.client.storage.from_(bucket).upload(
                path,
                content,
                {"content-type": content_type, "cache-control": "3600", "upsert": "false"},
            )
            self.logger.info("File uploaded", bucket=bucket, path=path, size=len(content))
            return path
        except Exception as e:
            self.logger.error("Error uploading file", bucket=bucket, path=path, error=str(e))
            return None

    # Email messages
    def get_email_message(self, gmail_message_id: str) -> Optional[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return None
        try:
            resp = (
                self.client.table(app_config.email_messages_table)
                .select("*")
                .eq("gmail_message_id", gmail_message_id)
                .limit(1)
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.error("Error fetching email message", gmail_message_id=gmail_message_id, error=str(e))
            return None

    def get_email_message_by_id(self, email_message_id: str) -> Optional[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return None
        try:
            rows = (
                self.client.table(app_config.email_messages_table)
                .select("*")
                .eq("id", email_message_id)
                .limit(1)
                .execute()
            ).data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.error("Error fetching email message", email_message_id=email_message_id, error=str(e))
            return None

    def save_email_message(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert an ``email_messages`` row unless the Gmail id is already stored."""
        if not self.initialized and not self.initialize():
            return None
        existing = self.get_email_message(row.get("gmail_message_id", ""))
        if existing is not None:
            self.logger.info("Email already stored", gmail_message_id=row.get("gmail_message_id"))
            return None
        try:
            resp = (
                self.client.table(app_config.email_messages_table)
                .insert(self._serialize_payload(row))
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.error("Error saving email message", gmail_message_id=row.get("gmail_message_id"), error=str(e))
            return None

    def get_unprocessed_email_messages(self, limit: int = 50) -> List[Dict[str, Any]]:
        if not self.initialized and not self.initialize():
            return []
        try:
            resp = (
                self.client.table(app_config.email_messages_table)
                .select("*")
                .eq("processed", False)
                .order("received_at", desc=True)
                .limit(limit)
                .execute()
            )
            return resp.data or []
        except Exception as e:
            self.logger.error("Error fetching unprocessed emails", error=str(e))
            return []

    def mark_email_processed(self, email_message_id: str) -> bool:
        if not self.initialized and not self.initialize():
            return False
        try:
            self.client.table(app_config.email_messages_table).update(
                {"processed": True}
            ).eq("id", email_message_id).execute()
            return True
        except Exception as e:
            self.logger.error("Error marking email processed", email_message_id=email_message_id, error=str(e))
            return False
