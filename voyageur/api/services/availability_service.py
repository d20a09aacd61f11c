"""
Room availability lookups.
"""
import re
from typing import List, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.logger import get_logger
from config.settings import app_config


def normalize_room_type(room_type: str) -> str:
    """Lowercase, without the word "room" and with single spaces."""
    text = re.sub(r"\broom\b", "", room_type.lower())
    return re.sub(r"\s+", " ", text).strip()


class AvailabilityService:
    """Service for finding free rooms of a given type."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("availability_service")

    def _room_numbers(self, property_id: str, pattern: str) -> List[str]:
        try:
            rows = (
                self.supabase_client.ensure().table(app_config.rooms_table)
                .select("room_number")
                .eq("property_id", property_id)
                .eq("is_active", True)
                .ilike("room_type", pattern)
                .execute()
            ).data or []
        except Exception as e:
            self.logger.error("Error fetching rooms for availability", property_id=property_id, error=str(e))
            return []
        return [row["room_number"] for row in rows]

    def get_available_rooms_by_type(
        self,
        property_id: str,
        room_type: str,
        check_in: str,
        check_out: str,
    ) -> List[str]:
        """
        Active rooms matching ``room_type`` with no overlapping booking.

        The type is matched as given first, then normalized (so "Deluxe Room"
        also finds "deluxe"). A failed overlap query treats every room as free.
        """
        rooms = self._room_numbers(property_id, f"%{room_type}%")
        if not rooms:
            normalized = normalize_room_type(room_type)
            if normalized:
                rooms = self._room_numbers(property_id, f"%{normalized}%")
        if not rooms:
            return []

        occupied = set()
        try:
            bookings = (
                self.supabase_client.ensure().table(app_config.bookings_table)
                .select("room_no")
                .eq("property_id", property_id)
                .eq("cancelled", False)
                .in_("room_no", rooms)
                .lt("check_in", check_out)
                .gt("check_out", check_in)
                .execute()
            ).data or []
            occupied = {b["room_no"] for b in bookings}
        except Exception as e:
            self.logger.error("Error computing booking overlaps", property_id=property_id, error=str(e))

        return [room for room in rooms if room not in occupied]
