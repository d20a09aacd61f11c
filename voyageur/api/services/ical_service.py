"""
iCal export of property bookings and import of OTA calendar feeds.

Feeds are written by hand as RFC 5545 text:
- Lines end with CRLF and are folded at 75 octets; a continuation line
  starts with a single space, so content lines must never start with one.
- Room bookings are all-day events (``DTSTART;VALUE=DATE``) whose DTEND is
  the check-out day, which the calendar treats as exclusive.
"""
import re
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import requests

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.dates import add_days, iso, parse_date, today_iso
from ...utils.logger import get_logger
from ...utils.models import SyncResult
from config.settings import app_config, ical_config

STAMP_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_FORMAT = "%Y%m%d"
MAX_LINE_OCTETS = 75
BLOCKED_WORDS = ("blocked", "unavailable")


def escape_text(value: Any) -> str:
    text = str(value if value is not None else "")
    text = text.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,")
    return text.replace("\r\n", "\\n").replace("\n", "\\n")


def unescape_text(value: str) -> str:
    return re.sub(r"\\([\\;,nN])", lambda m: "\n" if m.group(1) in "nN" else m.group(1), value)


def fold_line(line: str) -> str:
    """Fold a content line into CRLF-joined chunks of at most 75 octets."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line
    chunks: List[str] = []
    current, size = "", 0
    # The first chunk may use all 75 octets; continuations lose one to the space
    limit = MAX_LINE_OCTETS
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > limit:
            chunks.append(current)
            current, size = "", 0
            limit = MAX_LINE_OCTETS - 1
        current += char
        size += width
    chunks.append(current)
    return "\r\n ".join(chunks)


def unfold_lines(text: str) -> List[str]:
    """Split feed text into logical content lines, joining folded continuations."""
    lines: List[str] = []
    for raw in re.split(r"\r\n|\n|\r", text):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


def split_property(line: str):
    """``NAME;PARAM=X:VALUE`` into (NAME, {PARAM: X}, VALUE)."""
    head, _, value = line.partition(":")
    name, *raw_params = head.split(";")
    params = {}
    for param in raw_params:
        key, _, param_value = param.partition("=")
        params[key.upper()] = param_value.strip('"')
    return name.upper(), params, value


def parse_ical_date(value: str) -> date:
    """Date part of a DATE or DATE-TIME value."""
    return datetime.strptime(value.strip()[:8], DATE_FORMAT).date()


def parse_ical_events(ical_data: str) -> List[Dict[str, Any]]:
    """
    Read the VEVENTs of a feed.

    Each event is a dict with uid, summary, description, start, end and
    status. A missing DTEND means a single-day event.
    """
    events: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None
    for line in unfold_lines(ical_data):
        name, _params, value = split_property(line)
        if name == "BEGIN" and value.upper() == "VEVENT":
            current = {"uid": None, "summary": "", "description": "", "start": None, "end": None, "status": "CONFIRMED"}
        elif name == "END" and value.upper() == "VEVENT" and current is not None:
            if current["start"] is None:
                raise ValueError(f"Event {current['uid'] or len(events) + 1} has no DTSTART")
            if current["end"] is None:
                current["end"] = add_days(current["start"], 1)
            events.append(current)
            current = None
        elif current is not None:
            if name == "UID":
                current["uid"] = value.strip()
            elif name == "SUMMARY":
                current["summary"] = unescape_text(value)
            elif name == "DESCRIPTION":
                current["description"] = unescape_text(value)
            elif name == "DTSTART":
                current["start"] = parse_ical_date(value)
            elif name == "DTEND":
                current["end"] = parse_ical_date(value)
            elif name == "STATUS":
                current["status"] = value.strip().upper()
    return events


def timezone_lines(tzid: str) -> List[str]:
    """A VTIMEZONE with a single STANDARD block at the zone's current offset."""
    now = datetime.now(ZoneInfo(tzid))
    offset = now.strftime("%z")
    return [
        "BEGIN:VTIMEZONE",
        f"TZID:{tzid}",
        "BEGIN:STANDARD",
        "DTSTART:19700101T000000",
        f"TZOFFSETFROM:{offset}",
        f"TZOFFSETTO:{offset}",
        f"TZNAME:{now.tzname()}",
        "END:STANDARD",
        "END:VTIMEZONE",
    ]


def extract_guest_name(summary: str, description: str = "") -> Optional[str]:
    for text in (summary, description):
        match = re.search(r"Guest:\s*([^,\n]+)", text or "", re.IGNORECASE)
        if match:
            return match.group(1).strip()
    lowered = (summary or "").lower()
    if summary and not any(word in lowered for word in BLOCKED_WORDS):
        return summary.strip()
    return None


def extract_room_number(summary: str, description: str = "") -> Optional[str]:
    match = re.search(r"Room\s*([A-Za-z0-9]+)", summary or "", re.IGNORECASE)
    if match:
        return match.group(1)
    match = re.search(r"Room:\s*([A-Za-z0-9]+)", description or "", re.IGNORECASE)
    return match.group(1) if match else None


def extract_booking_from_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Booking fields for an imported OTA event; amounts and pax are left for staff."""
    cancelled = event.get("status") == "CANCELLED"
    return {
        "guest_name": extract_guest_name(event["summary"], event["description"]) or "OTA Guest",
        "room_no": extract_room_number(event["summary"], event["description"]) or "TBD",
        "check_in": iso(event["start"]),
        "check_out": iso(event["end"]),
        "no_of_pax": 1,
        "adult_child": "1/0",
        "status": "pending" if cancelled else "confirmed",
        "cancelled": cancelled,
        "total_amount": 0,
        "payment_status": "unpaid",
        "booking_date": today_iso(),
    }


class ICalService:
    """Service for property calendar feeds and OTA calendar imports."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None, session: Optional[requests.Session] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.session = session or requests.Session()
        self.logger = get_logger("ical_service")

    def _table(self, name: str):
        return self.supabase_client.ensure().table(name)

    def get_export_bookings(self, property_id: str, start: str, end: str) -> List[Dict[str, Any]]:
        resp = (
            self._table(app_config.bookings_table)
            .select("*")
            .eq("property_id", property_id)
            .eq("cancelled", False)
            .gte("check_in", start)
            .lte("check_out", end)
            .execute()
        )
        return resp.data or []

    def booking_event_lines(self, booking: Dict[str, Any], stamp: str) -> List[str]:
        room = booking.get("room_no")
        description = (
            f"Guest: {booking.get('guest_name')}\nRoom: {room}\n"
            f"Pax: {booking.get('no_of_pax')}\nStatus: {booking.get('status')}"
        )
        lines = [
            "BEGIN:VEVENT",
            f"UID:booking-{booking['id']}@{ical_config.uid_domain}",
            f"DTSTART;VALUE=DATE:{parse_date(booking['check_in']).strftime(DATE_FORMAT)}",
            f"DTEND;VALUE=DATE:{parse_date(booking['check_out']).strftime(DATE_FORMAT)}",
            f"SUMMARY:{escape_text(f'Booked - Room {room}')}",
            f"DESCRIPTION:{escape_text(description)}",
            "STATUS:CONFIRMED",
            "TRANSP:OPAQUE",
            f"CREATED:{stamp}",
            f"DTSTAMP:{stamp}",
        ]
        if booking.get("updated_at"):
            lines.append(f"LAST-MODIFIED:{parse_date(booking['updated_at']).strftime(DATE_FORMAT)}T000000Z")
        lines.append("END:VEVENT")
        return lines

    def generate_property_calendar(
        self,
        property_id: str,
        platform_id: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> str:
        """
        Export a property's active bookings as an iCal feed.

        Defaults to bookings from today through ``ICAL_EXPORT_DAYS`` ahead.
        The export is recorded in the sync log when it is made for a platform.
        """
        start = start or today_iso()
        end = end or iso(add_days(start, ical_config.export_days))
        try:
            bookings = self.get_export_bookings(property_id, start, end)
            stamp = datetime.now(timezone.utc).strftime(STAMP_FORMAT)

            lines = [
                "BEGIN:VCALENDAR",
                "VERSION:2.0",
                f"PRODID:{ical_config.prod_id}",
                "CALSCALE:GREGORIAN",
                "METHOD:PUBLISH",
            ]
            lines.extend(timezone_lines(ical_config.timezone))
            for booking in bookings:
                lines.extend(self.booking_event_lines(booking, stamp))
            lines.append("END:VCALENDAR")

            if platform_id:
                self.log_sync_operation(platform_id, property_id, "export", "success", {
                    "records_processed": len(bookings),
                    "date_range": {"start": start, "end": end},
                })
            self.logger.info("iCal feed generated", property_id=property_id, events=len(bookings))
            return "\r\n".join(fold_line(line) for line in lines) + "\r\n"
        except Exception as e:
            self.logger.error("Error generating iCal feed", property_id=property_id, error=str(e))
            if platform_id:
                self.log_sync_operation(platform_id, property_id, "export", "failed", {"error_message": str(e)})
            raise

    def parse_ota_calendar(self, ical_data: str, platform_id: str, property_id: str) -> SyncResult:
        """Import every event of an OTA feed; one bad event does not stop the rest."""
        result = SyncResult(platform=platform_id, property_id=property_id)
        started = time.monotonic()
        try:
            events = parse_ical_events(ical_data)
            result.records_processed = len(events)
            for event in events:
                try:
                    self.process_ota_event(event, platform_id, property_id)
                except Exception as e:
                    result.records_failed += 1
                    result.errors.append(str(e))
                    self.logger.warning("Failed to import OTA event", uid=event.get("uid"), error=str(e))

            result.conflicts_detected = self.count_detected_conflicts(property_id)
            result.success = result.records_failed == 0
            result.sync_duration = int((time.monotonic() - started) * 1000)
            self.log_sync_operation(platform_id, property_id, "import", "success" if result.success else "partial", {
                "records_processed": result.records_processed,
                "records_failed": result.records_failed,
                "conflicts_detected": result.conflicts_detected,
                "sync_duration": result.sync_duration,
            })
        except Exception as e:
            result.errors.append(str(e))
            result.sync_duration = int((time.monotonic() - started) * 1000)
            self.logger.error("Error parsing OTA calendar", platform_id=platform_id, error=str(e))
            self.log_sync_operation(platform_id, property_id, "import", "failed", {
                "error_message": str(e),
                "sync_duration": result.sync_duration,
            })
        return result

    def process_ota_event(self, event: Dict[str, Any], platform_id: str, property_id: str) -> str:
        """Update the booking imported from this event before, or create it. Returns the action taken."""
        if not event.get("uid"):
            raise ValueError("Event has no UID")
        booking = {**extract_booking_from_event(event), "property_id": property_id}
        now = datetime.now(timezone.utc).isoformat()
        existing = (
            self._table(app_config.bookings_table)
            .select("id")
            .eq("ota_booking_id", event["uid"])
            .eq("ota_platform_id", platform_id)
            .limit(1)
            .execute()
        ).data or []

        if existing:
            self._table(app_config.bookings_table).update({
                **booking,
                "ota_sync_status": "synced",
                "ota_last_sync": now,
                "updated_at": now,
            }).eq("id", existing[0]["id"]).execute()
            return "updated"

        self._table(app_config.bookings_table).insert({
            **booking,
            "ota_platform_id": platform_id,
            "ota_booking_id": event["uid"],
            "ota_sync_status": "synced",
            "ota_last_sync": now,
            "source": "ical_import",
        }).execute()
        return "created"

    def count_detected_conflicts(self, property_id: str) -> int:
        resp = (
            self._table(app_config.calendar_conflicts_table)
            .select("id")
            .eq("property_id", property_id)
            .eq("status", "detected")
            .execute()
        )
        return len(resp.data or [])

    def log_sync_operation(
        self,
        platform_id: str,
        property_id: str,
        sync_type: str,
        status: str,
        data: Dict[str, Any],
    ) -> None:
        try:
            self._table(app_config.ota_sync_logs_table).insert({
                "platform_id": platform_id,
                "property_id": property_id,
                "sync_type": sync_type,
                "status": status,
                "records_processed": data.get("records_processed") or 0,
                "records_failed": data.get("records_failed") or 0,
                "error_message": data.get("error_message"),
                "sync_data": data,
                "completed_at": datetime.now(timezone.utc).isoformat() if status != "pending" else None,
            }).execute()
        except Exception as e:
            self.logger.error("Error logging sync operation", platform_id=platform_id, error=str(e))

    def fetch_ical_from_url(self, url: str) -> str:
        response = self.session.get(
            url,
            headers={"User-Agent": ical_config.user_agent, "Accept": "text/calendar, text/plain, */*"},
            timeout=ical_config.fetch_timeout,
        )
        if not response.ok:
            raise RuntimeError(f"HTTP {response.status_code}: {response.reason}")
        content_type = response.headers.get("content-type", "")
        if content_type and "calendar" not in content_type and "text" not in content_type:
            self.logger.warning("Unexpected iCal content type", url=url, content_type=content_type)
        return response.text

    @staticmethod
    def validate_ical_data(ical_data: str) -> Dict[str, Any]:
        errors: List[str] = []
        if "BEGIN:VCALENDAR" not in ical_data:
            errors.append("Missing VCALENDAR component")
        if "END:VCALENDAR" not in ical_data:
            errors.append("Incomplete VCALENDAR component")

        names = set()
        depth = 0
        for line in unfold_lines(ical_data):
            name, _params, value = split_property(line)
            if name == "BEGIN":
                depth += 1
            elif name == "END":
                depth -= 1
            elif depth == 1:
                names.add(name)
        if "VERSION" not in names:
            errors.append("Missing VERSION property")
        if "PRODID" not in names:
            errors.append("Missing PRODID property")

        try:
            parse_ical_events(ical_data)
        except ValueError as e:
            errors.append(str(e))
        return {"valid": not errors, "errors": errors}

    def get_sync_status(self, platform_id: str, property_id: str) -> Optional[Dict[str, Any]]:
        """Latest sync log for a platform and property."""
        resp = (
            self._table(app_config.ota_sync_logs_table)
            .select("*")
            .eq("platform_id", platform_id)
            .eq("property_id", property_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = resp.data or []
        return rows[0] if rows else None

    def sync_platform(self, platform: Dict[str, Any]) -> SyncResult:
        """Fetch, validate and import one platform's iCal feed."""
        platform_id = platform.get("platform_id") or platform.get("id")
        property_id = platform.get("property_id")
        url = platform.get("ical_import_url")
        if not url:
            result = SyncResult(platform=platform_id, property_id=property_id)
            result.errors.append("iCal URL not configured")
            return result

        try:
            ical_data = self.fetch_ical_from_url(url)
        except (requests.RequestException, RuntimeError) as e:
            self.logger.error("Error fetching iCal feed", url=url, error=str(e))
            self.log_sync_operation(platform_id, property_id, "import", "failed", {"error_message": str(e)})
            result = SyncResult(platform=platform_id, property_id=property_id)
            result.errors.append(str(e))
            return result

        validation = self.validate_ical_data(ical_data)
        if not validation["valid"]:
            self.log_sync_operation(platform_id, property_id, "import", "failed", {
                "error_message": "; ".join(validation["errors"]),
            })
            return SyncResult(platform=platform_id, property_id=property_id, errors=validation["errors"])

        return self.parse_ota_calendar(ical_data, platform_id, property_id)
