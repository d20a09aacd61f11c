"""
OTA platform configuration. A property-specific row in ``ota_platforms``
overrides the global row of the same name; the ``property_ota_platforms``
view resolves that fallback.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.errors import NotFoundError
from ...utils.logger import get_logger
from config.settings import app_config, ical_config

ICAL_PLATFORMS = ("airbnb", "vrbo")
API_PLATFORMS = ("gommt", "makemytrip")


def _first(value, *fallbacks):
    for candidate in (value, *fallbacks):
        if candidate is not None:
            return candidate
    return None


def platform_payload(config: Dict[str, Any]) -> Dict[str, Any]:
    """Columns for an ``ota_platforms`` row; accepts the legacy key aliases."""
    return {
        "display_name": config.get("display_name"),
        "type": config.get("type"),
        "configuration": config.get("configuration") or config.get("config"),
        "ical_import_url": config.get("ical_import_url"),
        "ical_export_url": config.get("ical_export_url"),
        "sync_enabled": config.get("sync_enabled"),
        "is_active": _first(config.get("active"), config.get("is_active")),
        "manual_update_required": config.get("manual_update_required"),
        "sync_interval": config.get("sync_frequency_hours") or config.get("sync_interval"),
        "credentials": config.get("credentials"),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


class OTAPlatformService:
    """Service for per-property and global OTA platform settings."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None, session: Optional[requests.Session] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.session = session or requests.Session()
        self.logger = get_logger("ota_platform_service")

    def _table(self, name: Optional[str] = None):
        return self.supabase_client.ensure().table(name or app_config.ota_platforms_table)

    def _view(self):
        return self._table(app_config.property_ota_platforms_view)

    def get_platforms_for_property(self, property_id: str) -> List[Dict[str, Any]]:
        return (
            self._view().select("*")
            .eq("property_id", property_id)
            .eq("is_active", True)
            .order("platform_name")
            .execute()
        ).data or []

    def get_platform_for_property(self, property_id: str, platform_name: str) -> Optional[Dict[str, Any]]:
        rows = (
            self._view().select("*")
            .eq("property_id", property_id)
            .eq("platform_name", platform_name)
            .limit(1)
            .execute()
        ).data or []
        return rows[0] if rows else None

    def get_global_platforms(self) -> List[Dict[str, Any]]:
        return (
            self._table().select("*")
            .is_("property_id", "null")
            .eq("is_active", True)
            .order("name")
            .execute()
        ).data or []

    def save_property_platform_config(
        self,
        property_id: str,
        platform_name: str,
        config: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create or update a property's override of a platform."""
        existing = (
            self._table().select("*")
            .eq("property_id", property_id)
            .eq("name", platform_name)
            .limit(1)
            .execute()
        ).data or []

        payload = platform_payload(config)
        payload.update({
            "name": platform_name,
            "property_id": property_id,
            "sync_enabled": _first(payload["sync_enabled"], True),
            "is_active": _first(payload["is_active"], True),
            "manual_update_required": _first(payload["manual_update_required"], False),
            "sync_interval": payload["sync_interval"] or 24,
        })

        if existing:
            rows = self._table().update(payload).eq("id", existing[0]["id"]).execute().data or []
        else:
            payload["created_at"] = payload["updated_at"]
            rows = self._table().insert(payload).execute().data or []
        self.logger.info("Property platform config saved", property_id=property_id, platform=platform_name)
        return rows[0] if rows else payload

    def save_global_platform_config(self, platform_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        rows = (
            self._table().update(platform_payload(config))
            .eq("id", platform_id)
            .is_("property_id", "null")
            .execute()
        ).data or []
        if not rows:
            raise NotFoundError("Global platform not found", {"platform_id": platform_id})
        return rows[0]

    def delete_property_platform_config(self, property_id: str, platform_name: str) -> None:
        """Drop a property's override so the global config applies again."""
        self._table().delete().eq("property_id", property_id).eq("name", platform_name).execute()
        self.logger.info("Property platform config deleted", property_id=property_id, platform=platform_name)

    def test_platform_connection(self, property_id: str, platform_name: str) -> Dict[str, Any]:
        try:
            platform = self.get_platform_for_property(property_id, platform_name)
            if not platform:
                return {"success": False, "message": "Platform configuration not found"}

            name = (platform.get("platform_name") or "").lower()
            if name in ICAL_PLATFORMS:
                return self.test_ical_connection(platform.get("ical_import_url"))
            if name == "booking.com":
                return {
                    "success": True,
                    "message": "Booking.com uses manual updates via Extranet - no connection test available",
                }
            if name in API_PLATFORMS:
                return {"success": True, "message": "API connection test not yet implemented - configuration saved"}
            return {"success": True, "message": "Platform configuration saved - connection test not implemented"}
        except Exception as e:
            return {"success": False, "message": str(e) or "Connection test failed"}

    def test_ical_connection(self, ical_url: Optional[str]) -> Dict[str, Any]:
        if not ical_url:
            return {"success": False, "message": "iCal URL not configured"}
        try:
            response = self.session.head(
                ical_url,
                headers={"User-Agent": ical_config.user_agent},
                timeout=ical_config.fetch_timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            return {"success": False, "message": f"Failed to connect to iCal URL: {e}"}
        if response.ok:
            return {"success": True, "message": "iCal URL is accessible"}
        return {"success": False, "message": f"iCal URL returned {response.status_code}: {response.reason}"}

    def get_manual_update_platforms(self, property_id: str) -> List[Dict[str, Any]]:
        return (
            self._view().select("*")
            .eq("property_id", property_id)
            .eq("manual_update_required", True)
            .eq("is_active", True)
            .order("platform_name")
            .execute()
        ).data or []

    def get_sync_enabled_platforms(self, property_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active platforms with sync turned on; all properties when none is given."""
        query = self._view().select("*").eq("sync_enabled", True).eq("is_active", True)
        if property_id:
            query = query.eq("property_id", property_id)
        return query.order("platform_name").execute().data or []
