"""
Manual update checklists for OTAs without a calendar feed (Booking.com
extranet, GoMMT Connect app).

Each platform/property pair has at most one open ``modification`` checklist
(status pending or in_progress). New work is merged into it by item id so
progress already ticked off survives regeneration; availability items for the
same dates and action are grouped into one multi-room item.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.dates import DateLike, add_days, days_between, iso, parse_date, today_iso
from ...utils.errors import NotFoundError, ValidationError
from ...utils.logger import get_logger
from config.settings import app_config

CHECKLIST_STATUSES = ("pending", "in_progress", "completed")
OPEN_STATUSES = ("pending", "in_progress")
CHECKLIST_TYPE = "modification"
BOOKING_CHANGES = ("created", "updated", "cancelled")
DEFAULT_RANGE_DAYS = 7

PLATFORM_INSTRUCTIONS = {
    "booking": [
        "Use the Extranet calendar grid for bulk updates",
        "Always verify changes are saved before moving to next room",
        'Use "Not Available" status for blocked dates',
        "Add descriptive notes for tracking",
    ],
    "gommt": [
        "Use the mobile app for real-time inventory updates",
        "Update inventory counts rather than blocking dates",
        "Process each night individually",
        "Sync changes immediately",
    ],
    "generic": [
        "Follow platform-specific procedures",
        "Verify all changes before saving",
        "Document any issues encountered",
        "Contact platform support if needed",
    ],
}

_ROOMS = re.compile(r"\bRooms?:\s*([^|]+)", re.I)
_DATES = re.compile(r"Dates:\s*(\d{4}-\d{2}-\d{2})\s*(?:→|-|to)\s*(\d{4}-\d{2}-\d{2})", re.I)
_SET = re.compile(r"Set:\s*([^|]+)", re.I)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def platform_family(name: Optional[str]) -> str:
    """'booking', 'gommt' or 'generic' for a platform name or display name."""
    lowered = (name or "").lower()
    if "booking" in lowered:
        return "booking"
    if "gommt" in lowered or "makemytrip" in lowered:
        return "gommt"
    return "generic"


def ota_platform_labels(name: Optional[str]) -> List[str]:
    family = platform_family(name)
    if family == "booking":
        return ["booking.com"]
    if family == "gommt":
        return ["gommt"]
    return []


def checklist_item(
    item_id: str,
    title: str,
    description: str,
    category: str,
    minutes: int,
    verification: str,
    instructions: Optional[List[str]] = None,
    booking_reference: Optional[str] = None,
) -> Dict[str, Any]:
    item = {
        "id": item_id,
        "title": title,
        "description": description,
        "category": category,
        "required": True,
        "estimated_minutes": minutes,
        "verification_criteria": verification,
        "status": "pending",
        "completed": False,
    }
    if instructions:
        item["instructions"] = instructions
    if booking_reference:
        item["booking_reference"] = booking_reference
    return item


def availability_item(item_id: str, room_no, start, end, release: bool, minutes: int,
                      booking_reference: Optional[str] = None) -> Dict[str, Any]:
    setting = "Available" if release else "Not available"
    return checklist_item(
        item_id,
        f"Availability: {'Release' if release else 'Block'} {room_no}",
        f"Room: {room_no} | Dates: {start} → {end} | Set: {setting}",
        "availability",
        minutes,
        f"Room {room_no} is {setting} on all selected dates",
        instructions=["Open Calendar grid", f"Select {start} → {end}", f"Set availability = {setting}", "Save"],
        booking_reference=booking_reference,
    )


def booking_com_items(bookings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = [
        checklist_item(
            "booking-login", "Login to Booking.com Extranet",
            "Access your property management dashboard", "setup", 2,
            "Property dashboard is visible",
            ["Go to admin.booking.com", "Login with your credentials", "Navigate to your property dashboard"],
        ),
        checklist_item(
            "booking-calendar", "Open Calendar Management",
            "Navigate to the calendar grid view", "navigation", 1,
            "Calendar grid is displayed",
            ['Click on "Calendar" in the main menu', 'Select "Calendar Grid" view',
             "Ensure correct property is selected"],
        ),
    ]
    for booking in bookings:
        cancelled = bool(booking.get("cancelled"))
        items.append(availability_item(
            f"booking-{'unblock' if cancelled else 'block'}-{booking['id']}",
            booking.get("room_no"), booking.get("check_in"), booking.get("check_out"),
            release=cancelled, minutes=2 if cancelled else 3, booking_reference=booking["id"],
        ))
    return items


def gommt_items(bookings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = [
        checklist_item(
            "gommt-app", "Open GoMMT Connect Mobile App",
            "Launch the GoMMT Connect app on your phone", "setup", 1,
            "App dashboard is visible",
            ["Open the GoMMT Connect app", "Login if prompted", "Select the property"],
        ),
        checklist_item(
            "gommt-inventory", "Navigate to Inventory Management",
            "Open the room inventory screen", "navigation", 1,
            "Inventory calendar is displayed",
            ['Tap "Inventory"', "Choose the room type to update"],
        ),
    ]
    for booking in bookings:
        cancelled = bool(booking.get("cancelled"))
        items.append(availability_item(
            f"gommt-{'restore' if cancelled else 'reduce'}-{booking['id']}",
            booking.get("room_no"), booking.get("check_in"), booking.get("check_out"),
            release=cancelled, minutes=2 if cancelled else 3, booking_reference=booking["id"],
        ))
    return items


def generic_items(bookings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = [
        checklist_item(
            "generic-login", "Login to OTA Platform",
            "Access the platform's property dashboard", "setup", 2,
            "Dashboard is visible",
        ),
    ]
    for booking in bookings:
        setting = "Available" if booking.get("cancelled") else "Not available"
        items.append(checklist_item(
            f"generic-update-{booking['id']}",
            f"Update availability for {booking.get('room_no')}",
            f"Room: {booking.get('room_no')} | Dates: {booking.get('check_in')} → {booking.get('check_out')}"
            f" | Set: {setting}",
            "availability", 5,
            f"Room {booking.get('room_no')} is {setting} on all selected dates",
            booking_reference=booking["id"],
        ))
    return items


def verification_items() -> List[Dict[str, Any]]:
    return [
        checklist_item(
            "verify-updates", "Verify All Updates",
            "Double-check that all changes were applied correctly", "verification", 5,
            "All updates verified and documented",
            ["Review all updated dates in the calendar",
             "Verify room availability matches your local system",
             "Check for any error messages or warnings",
             "Take screenshots for record keeping"],
        ),
        checklist_item(
            "logout-secure", "Logout Securely",
            "Properly logout from the OTA platform", "cleanup", 1,
            "Successfully logged out",
            ["Save any pending changes", "Logout from the platform", "Clear browser cache if using shared computer"],
        ),
    ]


def build_checklist_items(platform_name: Optional[str], bookings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    builders = {"booking": booking_com_items, "gommt": gommt_items, "generic": generic_items}
    return builders[platform_family(platform_name)](bookings) + verification_items()


def estimated_duration(items: List[Dict[str, Any]]) -> int:
    return sum(item.get("estimated_minutes") or 0 for item in items)


def checklist_priority(bookings: List[Dict[str, Any]], today: Optional[DateLike] = None) -> str:
    """'high' when a check-in is at most two days away, 'medium' for more than five bookings."""
    today = today or today_iso()
    if any(b.get("check_in") and days_between(today, b["check_in"]) <= 2 for b in bookings):
        return "high"
    if len(bookings) > 5:
        return "medium"
    return "low"


def platform_instructions(platform_name: Optional[str]) -> List[str]:
    return list(PLATFORM_INSTRUCTIONS[platform_family(platform_name)])


def is_completed(item: Dict[str, Any]) -> bool:
    return item.get("completed") is True or item.get("status") == "completed"


def checklist_progress(items: List[Dict[str, Any]]) -> Tuple[int, str]:
    """Completed item count and the checklist status it implies."""
    completed = sum(1 for item in items if is_completed(item))
    if items and completed == len(items):
        return completed, "completed"
    if completed:
        return completed, "in_progress"
    return completed, "pending"


def parse_availability(description: Optional[str]) -> Optional[Dict[str, Any]]:
    """Rooms, dates and setting from a 'Room: 101 | Dates: a → b | Set: X' description."""
    if not description:
        return None
    dates = _DATES.search(description)
    setting = _SET.search(description)
    if not dates or not setting:
        return None
    rooms = _ROOMS.search(description)
    return {
        "rooms": [r.strip() for r in rooms.group(1).split(",") if r.strip()] if rooms else [],
        "start": dates.group(1),
        "end": dates.group(2),
        "set": setting.group(1).strip(),
    }


def _coverage(items: List[Dict[str, Any]]) -> set:
    keys = set()
    for item in items:
        if item.get("category") != "availability":
            continue
        parsed = parse_availability(item.get("description"))
        if parsed:
            keys.update((parsed["start"], parsed["end"], parsed["set"], room) for room in parsed["rooms"])
    return keys


def merge_items(existing: List[Dict[str, Any]], new: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Keep existing items with their progress and append new ones by id.

    A new availability item whose rooms, dates and setting an existing item
    already covers is dropped, so a grouped item is not reopened.
    """
    seen = {item.get("id") for item in existing}
    covered = _coverage(existing)
    merged = list(existing)
    for item in new:
        if item.get("id") in seen:
            continue
        parsed = parse_availability(item.get("description")) if item.get("category") == "availability" else None
        if parsed and parsed["rooms"] and all(
            (parsed["start"], parsed["end"], parsed["set"], room) in covered for room in parsed["rooms"]
        ):
            continue
        merged.append({**item, "status": "pending", "completed": False})
        seen.add(item.get("id"))
    return merged


def consolidate_availability_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Group availability items with the same dates and setting into one item
    listing every room. Single-item groups are left untouched; other items
    come first, then the groups.
    """
    others: List[Dict[str, Any]] = []
    groups: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
    for item in items:
        parsed = parse_availability(item.get("description")) if item.get("category") == "availability" else None
        if not parsed:
            others.append(item)
            continue
        group = groups.setdefault((parsed["start"], parsed["end"], parsed["set"]), {"rooms": [], "items": []})
        group["rooms"].extend(r for r in parsed["rooms"] if r not in group["rooms"])
        group["items"].append(item)

    grouped = []
    for (start, end, setting), group in groups.items():
        if len(group["items"]) == 1:
            grouped.append(group["items"][0])
            continue
        done = all(is_completed(item) for item in group["items"])
        rooms = group["rooms"]
        grouped.append({
            "id": f"group-avail-{start}-{end}-{'-'.join(rooms)}",
            "title": "Availability update",
            "description": f"Rooms: {', '.join(rooms)} | Dates: {start} → {end} | Set: {setting}",
            "category": "availability",
            "required": True,
            "estimated_minutes": estimated_duration(group["items"]) or 2 + len(rooms),
            "status": "completed" if done else "pending",
            "completed": done,
        })
    return others + grouped


def booking_range(booking: Dict[str, Any]):
    """Stay dates of a booking; today and one night when they are missing."""
    start = parse_date(booking.get("check_in")) or parse_date(today_iso())
    end = parse_date(booking.get("check_out")) or add_days(start, 1)
    return start, end


def delta_items(change: str, booking: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Block (or, for a cancellation, release) the booking's room, then verify on the OTA."""
    room_no = booking.get("room_no") or booking.get("roomNo")
    start, end = booking_range(booking)
    release = change == "cancelled"
    compact = (start.strftime("%Y%m%d"), end.strftime("%Y%m%d"))
    availability = availability_item(
        f"delta-{change}-availability-{room_no}-{compact[0]}-{compact[1]}",
        room_no, iso(start), iso(end), release=release, minutes=3,
    )
    availability.pop("instructions", None)
    verify = checklist_item(
        f"delta-verify-{booking.get('id')}-{compact[0]}",
        "Verify on OTA",
        f"Room: {room_no} | Dates: {iso(start)} → {iso(end)} | Check: state reflects above",
        "verification", 2, "Spot checks pass",
    )
    return [availability, verify]


def checklist_view(row: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a ``manual_update_checklists`` row and its ``checklist_data`` JSON."""
    data = row.get("checklist_data") or {}
    items = data.get("checklist_items") or []
    view = {key: value for key, value in row.items() if key != "checklist_data"}
    view.update(data)
    view["checklist_items"] = items
    view.setdefault("total_items", len(items))
    view.setdefault("completed_items", checklist_progress(items)[0])
    return view


class ManualUpdateService:
    """Builds and tracks manual OTA update checklists."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("manual_update_service")

    def _table(self, name: Optional[str] = None):
        return self.supabase_client.ensure().table(name or app_config.manual_update_checklists_table)

    def _platform(self, platform_id: str) -> Dict[str, Any]:
        rows = (
            self._table(app_config.ota_platforms_table).select("*")
            .eq("id", platform_id).limit(1).execute()
        ).data or []
        if not rows:
            raise NotFoundError("Platform not found", {"platform_id": platform_id})
        return rows[0]

    def _open_checklist(self, platform_id: str, property_id: str) -> Optional[Dict[str, Any]]:
        rows = (
            self._table().select("*")
            .eq("platform_id", platform_id)
            .eq("property_id", property_id)
            .eq("checklist_type", CHECKLIST_TYPE)
            .in_("status", list(OPEN_STATUSES))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        ).data or []
        return rows[0] if rows else None

    def bookings_for_manual_update(self, property_id: str, start: DateLike, end: DateLike) -> List[Dict[str, Any]]:
        """
        Bookings the OTA calendars must reflect: created in the last day,
        checking in within the range, or cancelled in the last day.
        """
        since = iso(add_days(today_iso(), -1))
        recent = (
            self._table(app_config.bookings_table).select("*").eq("property_id", property_id)
            .gte("created_at", since).eq("cancelled", False).execute()
        ).data or []
        upcoming = (
            self._table(app_config.bookings_table).select("*").eq("property_id", property_id)
            .gte("check_in", iso(start)).lte("check_in", iso(end)).eq("cancelled", False).execute()
        ).data or []
        cancelled = (
            self._table(app_config.bookings_table).select("*").eq("property_id", property_id)
            .eq("cancelled", True).gte("updated_at", since).execute()
        ).data or []

        unique: Dict[str, Dict[str, Any]] = {}
        for booking in recent + upcoming + cancelled:
            unique.setdefault(booking["id"], booking)
        return list(unique.values())

    def _save(
        self,
        platform: Dict[str, Any],
        property_id: str,
        items: List[Dict[str, Any]],
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Merge ``items`` into the open checklist, or start a new one."""
        platform_name = platform.get("name") or platform.get("display_name")
        labels = ota_platform_labels(platform_name)
        existing = self._open_checklist(platform["id"], property_id)
        data = {key: value for key, value in data.items() if value is not None}

        if existing:
            old = existing.get("checklist_data") or {}
            items = consolidate_availability_items(merge_items(old.get("checklist_items") or [], items))
            data = {**old, **data, "ota_platforms": labels or old.get("ota_platforms") or []}
        else:
            items = [
                {**item, "status": item.get("status", "pending"), "completed": is_completed(item)} for item in items
            ]
            data["ota_platforms"] = labels

        completed, status = checklist_progress(items)
        data.update({
            "checklist_items": items,
            "total_items": len(items),
            "completed_items": completed,
            "estimated_duration": estimated_duration(items),
        })
        data.setdefault("priority", "medium")
        data.setdefault("instructions", platform_instructions(platform_name))

        if existing:
            payload = {"checklist_data": data, "status": status, "updated_at": _now()}
            rows = self._table().update(payload).eq("id", existing["id"]).execute().data or []
            row = rows[0] if rows else {**existing, **payload}
        else:
            payload = {
                "platform_id": platform["id"],
                "property_id": property_id,
                "checklist_type": CHECKLIST_TYPE,
                "status": status,
                "checklist_data": data,
                "created_at": _now(),
                "updated_at": _now(),
            }
            rows = self._table().insert(payload).execute().data or []
            row = rows[0] if rows else payload

        self.logger.info(
            "Manual update checklist saved",
            platform_id=platform["id"],
            property_id=property_id,
            merged=bool(existing),
            total_items=len(items),
        )
        return checklist_view(row)

    def generate_checklist(
        self,
        platform_id: str,
        property_id: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
    ) -> Dict[str, Any]:
        """
        Build the checklist of extranet steps for a platform.

        Args:
            platform_id: ``ota_platforms`` row id
            property_id: Property whose bookings are pushed
            start: First check-in date covered (default today)
            end: Last check-in date covered (default a week from start)

        Returns:
            The open checklist after merging, flattened
        """
        start = parse_date(start) or parse_date(today_iso())
        end = parse_date(end) or add_days(start, DEFAULT_RANGE_DAYS)
        if end < start:
            raise ValidationError("Invalid date range", ["end must not be before start"])

        platform = self._platform(platform_id)
        bookings = self.bookings_for_manual_update(property_id, start, end)
        platform_name = platform.get("name") or platform.get("display_name")
        data = {
            "priority": checklist_priority(bookings),
            "instructions": platform_instructions(platform_name),
            "checklist_date": today_iso(),
            "date_range_start": iso(start),
            "date_range_end": iso(end),
        }
        return self._save(platform, property_id, build_checklist_items(platform_name, bookings), data)

    def append_checklist_items(
        self,
        platform_id: str,
        property_id: str,
        items: List[Dict[str, Any]],
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
    ) -> Dict[str, Any]:
        platform = self._platform(platform_id)
        data = {
            "checklist_date": today_iso(),
            "date_range_start": iso(start) if start else None,
            "date_range_end": iso(end) if end else None,
        }
        return self._save(platform, property_id, items, data)

    def create_delta_checklists_for_booking_change(
        self,
        property_id: str,
        change: str,
        booking: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Queue block/release steps on every manual OTA after a booking is created, changed or cancelled."""
        if change not in BOOKING_CHANGES:
            raise ValidationError("Invalid booking change", [f"change must be one of {', '.join(BOOKING_CHANGES)}"])
        items = delta_items(change, booking)
        start, end = booking_range(booking)

        columns = "id, name, display_name, is_active, manual_update_required, property_id"
        scoped = (
            self._table(app_config.ota_platforms_table).select(columns)
            .eq("is_active", True).eq("manual_update_required", True)
            .eq("property_id", property_id).execute()
        ).data or []
        shared = (
            self._table(app_config.ota_platforms_table).select(columns)
            .eq("is_active", True).eq("manual_update_required", True)
            .is_("property_id", "null").execute()
        ).data or []

        checklists = []
        for platform in scoped + shared:
            if platform_family(platform.get("display_name") or platform.get("name")) == "generic":
                continue
            checklists.append(self.append_checklist_items(platform["id"], property_id, items, start, end))
        self.logger.info(
            "Delta checklist items queued",
            property_id=property_id,
            booking_id=booking.get("id"),
            change=change,
            platforms=len(checklists),
        )
        return checklists

    def update_checklist_item(
        self,
        checklist_id: str,
        item_id: str,
        status: str,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        if status not in CHECKLIST_STATUSES:
            raise ValidationError("Invalid status", [f"status must be one of {', '.join(CHECKLIST_STATUSES)}"])
        row = self._get_row(checklist_id)
        data = row.get("checklist_data") or {}
        items = data.get("checklist_items") or []
        if not any(item.get("id") == item_id for item in items):
            raise NotFoundError("Checklist item not found", {"checklist_id": checklist_id, "item_id": item_id})

        done = status == "completed"
        updated_items = []
        for item in items:
            if item.get("id") == item_id:
                item = {
                    **item,
                    "status": status,
                    "completed": done,
                    "completed_at": _now() if done else None,
                    "notes": notes or item.get("notes"),
                }
            updated_items.append(item)

        completed, checklist_status = checklist_progress(updated_items)
        payload = {
            "checklist_data": {**data, "checklist_items": updated_items, "completed_items": completed},
            "status": checklist_status,
            "completed_at": _now() if checklist_status == "completed" else None,
            "updated_at": _now(),
        }
        rows = self._table().update(payload).eq("id", checklist_id).execute().data or []
        self.logger.info("Checklist item updated", checklist_id=checklist_id, item_id=item_id, status=status)
        return checklist_view(rows[0] if rows else {**row, **payload})

    def _get_row(self, checklist_id: str) -> Dict[str, Any]:
        rows = self._table().select("*").eq("id", checklist_id).limit(1).execute().data or []
        if not rows:
            raise NotFoundError("Checklist not found", {"checklist_id": checklist_id})
        return rows[0]

    def get_checklist(self, checklist_id: str) -> Dict[str, Any]:
        return checklist_view(self._get_row(checklist_id))

    def get_checklists_for_property(self, property_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._table().select("*").eq("property_id", property_id)
        if status:
            query = query.eq("status", status)
        rows = query.order("created_at", desc=True).execute().data or []
        return [checklist_view(row) for row in rows]

    def get_pending_checklists(self, property_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._table().select("*").in_("status", list(OPEN_STATUSES))
        if property_id:
            query = query.eq("property_id", property_id)
        rows = query.order("created_at", desc=True).execute().data or []
        return [checklist_view(row) for row in rows]

    def delete_checklists(
        self,
        property_id: Optional[str] = None,
        platform_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        """Delete the matching checklists and return how many there were; at least one filter is required."""
        filters = {"property_id": property_id, "platform_id": platform_id, "status": status}
        filters = {key: value for key, value in filters.items() if value}
        if not filters:
            raise ValidationError("A property, platform or status filter is required")

        count_query = self._table().select("id", count="exact")
        delete_query = self._table().delete()
        for column, value in filters.items():
            count_query = count_query.eq(column, value)
            delete_query = delete_query.eq(column, value)
        count = count_query.execute().count or 0
        delete_query.execute()
        self.logger.info("Checklists deleted", count=count, **filters)
        return count
