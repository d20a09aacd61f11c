from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.logger import get_logger
from .ical_service import ICalService
from config.settings import app_config, api_config


class PropertyService:
    """Service for managing property operations."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None, ical_service: Optional[ICalService] = None):
        """Initialize property service with Supabase client."""
        self.supabase_client = supabase_client or SupabaseClient()
        self.ical_service = ical_service or ICalService(self.supabase_client)
        self.logger = get_logger("property_service")

    def _table(self, name: Optional[str] = None):
        return self.supabase_client.ensure().table(name or app_config.properties_table)

    def feed_url(self, property_id: str) -> str:
        base_url = (api_config.base_url or "http://127.0.0.1:8001").rstrip("/")
        return f"{base_url}/api/v1/property/{property_id}.ics"

    def create_property(
        self,
        name: str,
        address: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Save a new property and store its public iCal feed URL.
        """
        try:
            now = datetime.now(timezone.utc).isoformat()
            property_data = {
                "name": name,
                "address": address,
                "status": status or "active",
                "created_at": now,
                "updated_at": now,
            }

            result = self._table().insert(property_data).execute()
            if not result.data:
                raise RuntimeError("Failed to insert property record")

            inserted_property = result.data[0]
            # The feed URL needs the DB-generated id
            inserted_property["ical_feed_url"] = self.feed_url(inserted_property["id"])
            self._table().update(
                {"ical_feed_url": inserted_property["ical_feed_url"]}
            ).eq("id", inserted_property["id"]).execute()

            self.logger.info("Property created", property_id=inserted_property["id"], name=name)
            return {"success": True, "data": inserted_property}

        except Exception as e:
            self.logger.error("Error creating property", name=name, error=str(e))
            return {"success": False, "error": str(e)}

    def delete_property(self, property_id: str) -> Dict[str, Any]:
        """Delete a property by its ID."""
        try:
            result = self._table().delete().eq("id", property_id).execute()

            if result.data:
                return {
                    "success": True,
                    "message": f"Property with ID {property_id} deleted successfully",
                    "deleted_count": len(result.data)
                }
            return {
                "success": False,
                "error": f"No property found with ID {property_id}"
            }

        except Exception as e:
            self.logger.error("Error deleting property", property_id=property_id, error=str(e))
            return {"success": False, "error": str(e)}

    def get_properties(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """Get paginated list of properties."""
        try:
            offset = (page - 1) * limit

            result = (
                self._table()
                .select("*")
                .order("name")
                .range(offset, offset + limit - 1)
                .execute()
            )
            total_result = self._table().select("id").execute()

            return {
                "success": True,
                "data": {
                    "data": result.data or [],
                    "total": len(total_result.data or []),
                    "page": page,
                    "limit": limit
                }
            }

        except Exception as e:
            self.logger.error("Error fetching properties", error=str(e))
            return {"success": False, "error": str(e)}

    def get_property_by_id(self, property_id: str) -> Optional[Dict[str, Any]]:
        """Fetch property by ID from Supabase"""
        result = self._table().select("*").eq("id", property_id).execute()
        if result.data:
            return result.data[0]
        return None

    def get_rooms(self, property_id: str, active_only: bool = True) -> List[Dict[str, Any]]:
        return self.supabase_client.get_rooms(property_id, active_only=active_only)

    def generate_ical_feed(self, prop: Dict[str, Any], platform_id: Optional[str] = None) -> str:
        """Calendar of the property's confirmed bookings for OTA import."""
        return self.ical_service.generate_property_calendar(prop["id"], platform_id=platform_id)
