"""
AI-assisted OTA email parser with heuristic fallback.
"""
import json
import re
from email.utils import parseaddr
from typing import Optional, Dict, Any

from .parser import BookingEmailParser
from ..llm import LLMManager, get_llm_manager, parse_json_response
from ..utils.errors import AIProviderError
from ..utils.models import ParsedBookingEmail, EventType, OTAPlatform
from ..utils.logger import get_logger
from config.settings import ai_config, gmail_config

PARSE_MODES = ("regex", "gemini", "auto")
AUTO_ACCEPT_CONFIDENCE = 0.8

SYSTEM_PROMPT = "\n".join([
    "You extract OTA booking emails into strict JSON. Output only JSON. No prose.",
    'Normalize room_type to one of: "Standard Room", "Deluxe Room".',
    "Normalize ota_platform to one of: booking_com, gommt, other.",
    "Infer event_type: new, modified, cancelled, or not_booking.",
    "Dates must be ISO YYYY-MM-DD. no_of_pax must equal adults + children.",
    'adult_child as "A/C" (e.g., "2/0"). Put 0 when missing.',
])

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "event_type": {"type": "string"},
        "ota_platform": {"type": "string"},
        "booking_reference": {"type": ["string", "null"]},
        "guest_name": {"type": ["string", "null"]},
        "room_type": {"type": ["string", "null"]},
        "room_no": {"type": ["string", "null"]},
        "check_in": {"type": ["string", "null"]},
        "check_out": {"type": ["string", "null"]},
        "no_of_pax": {"type": ["number", "null"]},
        "adult_child": {"type": ["string", "null"]},
        "total_amount": {"type": ["number", "null"]},
        "currency": {"type": ["string", "null"]},
        "payment_status": {"type": ["string", "null"]},
        "special_requests": {"type": ["string", "null"]},
        "property_hint": {"type": ["string", "null"]},
        "confidence": {"type": "number"},
        "reasoning": {"type": ["string", "null"]},
    },
    "required": ["event_type", "ota_platform", "confidence"],
    "additionalProperties": True,
}

_EVENT_VALUES = {e.value for e in EventType}
_PLATFORM_VALUES = {p.value for p in OTAPlatform}


def _pick(data: Dict[str, Any], *keys):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _pax_from_adult_child(adult_child: Optional[str]) -> Optional[int]:
    m = re.search(r"(\d+)/(\d+)", str(adult_child or ""))
    return int(m.group(1)) + int(m.group(2)) if m else None


def normalize(data: Optional[Dict[str, Any]]) -> ParsedBookingEmail:
    """Coerce model output, snake_case or camelCase, into a ParsedBookingEmail."""
    data = data or {}

    lower_room = str(_pick(data, "room_type", "roomType") or "").lower()
    room_type = None
    if "deluxe" in lower_room:
        room_type = "Deluxe Room"
    elif "standard" in lower_room:
        room_type = "Standard Room"

    no_of_pax = data.get("no_of_pax")
    if not _is_number(no_of_pax):
        no_of_pax = data.get("noOfPax") if _is_number(data.get("noOfPax")) else None

    adult_child = _pick(data, "adult_child", "adultChild")
    if adult_child and re.search(r"[Aa].*[Cc]", str(adult_child)):
        nums = re.findall(r"\d+", str(adult_child))
        if len(nums) >= 2:
            adult_child = f"{nums[0]}/{nums[1]}"

    guest_name = _pick(data, "guest_name", "guestName")
    guests = data.get("guests")
    if isinstance(guests, list):
        if not adult_child or not no_of_pax:
            adults = children = 0
            for guest in guests:
                guest = guest if isinstance(guest, dict) else {}
                role = str(guest.get("adult_child") or guest.get("role") or guest.get("type") or "").lower()
                if role.startswith("c") or "child" in role:
                    children += 1
                else:
                    adults += 1
            if not adult_child:
                adult_child = f"{adults}/{children}"
            if not no_of_pax:
                no_of_pax = adults + children
        if not guest_name:
            named = [
                g for g in guests
                if isinstance(g, dict) and g.get("name") and "unnamed" not in str(g["name"]).lower()
            ]
            first = guests[0] if guests and isinstance(guests[0], dict) else {}
            guest_name = (named[0]["name"] if named else first.get("name")) or None

    if (not no_of_pax or no_of_pax <= 0) and adult_child:
        no_of_pax = _pax_from_adult_child(adult_child) or no_of_pax

    event_type = _pick(data, "event_type", "eventType") or "not_booking"
    if event_type not in _EVENT_VALUES:
        event_type = "not_booking"
    ota_platform = _pick(data, "ota_platform", "otaPlatform") or "other"
    if ota_platform not in _PLATFORM_VALUES:
        ota_platform = "other"

    total_amount = data.get("total_amount")
    if not _is_number(total_amount):
        total_amount = data.get("totalAmount") if _is_number(data.get("totalAmount")) else None

    confidence = data.get("confidence")
    return ParsedBookingEmail(
        event_type=event_type,
        ota_platform=ota_platform,
        booking_reference=_pick(data, "booking_reference", "bookingReference", "booking_ref", "bookingRef"),
        guest_name=guest_name,
        contact_email=_pick(data, "contact_email", "contactEmail"),
        contact_phone=_pick(data, "contact_phone", "contactPhone"),
        room_type=room_type,
        room_no=_pick(data, "room_no", "roomNo"),
        check_in=_pick(data, "check_in", "checkIn", "check_in_date", "checkInDate"),
        check_out=_pick(data, "check_out", "checkOut", "check_out_date", "checkOutDate"),
        no_of_pax=int(no_of_pax) if no_of_pax is not None else None,
        adult_child=adult_child,
        total_amount=float(total_amount) if total_amount is not None else None,
        currency=data.get("currency") or None,
        payment_status=_pick(data, "payment_status", "paymentStatus"),
        special_requests=_pick(data, "special_requests", "specialRequests"),
        property_hint=_pick(data, "property_hint", "propertyHint"),
        confidence=float(confidence) if _is_number(confidence) else 0.7,
        reasoning=data.get("reasoning") or "",
    )


def sender_platform(sender: str) -> OTAPlatform:
    """
    OTA platform of an allow-listed sender, by the domain of its address.
    Senders outside the allow-list or with an unmapped domain are ``OTHER``.
    """
    address = parseaddr(sender or "")[1].lower()
    if not address or not any(allowed in address for allowed in gmail_config.allowed_senders):
        return OTAPlatform.OTHER
    domain = address.rpartition("@")[2]
    for sender_domain, platform in gmail_config.sender_platforms.items():
        if domain == sender_domain or domain.endswith("." + sender_domain):
            return OTAPlatform(platform)
    return OTAPlatform.OTHER


class AIEmailParser:
    """Routes OTA emails to Gemini or the heuristic parser depending on the mode."""

    def __init__(
        self,
        llm: Optional[LLMManager] = None,
        heuristic: Optional[BookingEmailParser] = None,
        extraction_store=None,
        mode: Optional[str] = None,
    ):
        self.logger = get_logger("ai_email_parser")
        self.llm = llm or get_llm_manager()
        self.heuristic = heuristic or BookingEmailParser()
        self.extraction_store = extraction_store
        self.mode = (mode or ai_config.email_mode or "auto").lower()
        if self.mode not in PARSE_MODES:
            self.logger.warning("Unknown email AI mode, using auto", mode=self.mode)
            self.mode = "auto"

    def parse(
        self,
        subject: str = "",
        body: str = "",
        headers: Optional[Dict[str, str]] = None,
        email_message_id: Optional[str] = None,
    ) -> ParsedBookingEmail:
        """
        Parse one OTA email.

        Only allow-listed OTA senders are parsed. Booking.com sends
        notification-only mail, so only the event and reference are read.
        """
        headers = {k.lower(): v for k, v in (headers or {}).items()}
        platform = sender_platform(headers.get("from") or "")

        if platform == OTAPlatform.OTHER:
            return ParsedBookingEmail(
                event_type=EventType.NOT_BOOKING,
                ota_platform=OTAPlatform.OTHER,
                confidence=0.4,
                reasoning="sender_not_allowed",
            )

        if platform == OTAPlatform.BOOKING_COM:
            return self._parse_booking_com(subject, body)

        if self.mode == "regex":
            return self.heuristic.parse(subject, body)
        return self._parse_gemini_with_fallback(
            subject, body, email_message_id, allow_fallback=self.mode == "auto"
        )

    def parse_message(self, message: Dict[str, Any]) -> ParsedBookingEmail:
        """Parse an ``email_messages`` row."""
        mime = message.get("mime_summary") or {}
        body = mime.get("text") if isinstance(mime, dict) else None
        return self.parse(
            subject=message.get("subject") or "",
            body=body or message.get("snippet") or "",
            headers={"from": message.get("sender") or ""},
            email_message_id=message.get("id"),
        )

    def _parse_booking_com(self, subject: str, body: str) -> ParsedBookingEmail:
        lower = f"{subject or ''} {body or ''}".lower()
        event_type = "not_booking"
        if re.search(r"cancel", lower):
            event_type = "cancelled"
        elif re.search(r"modif|amend|change", lower):
            event_type = "modified"
        elif re.search(r"confirm|new reservation|new booking", lower):
            event_type = "new"
        ref = re.search(r"(?:Reference|Ref)\s*[:#]?\s*([A-Z0-9\-]+)", subject or "", re.IGNORECASE)
        return normalize({
            "event_type": event_type,
            "ota_platform": "booking_com",
            "booking_reference": ref.group(1) if ref else None,
            "confidence": 0.6,
            "reasoning": "booking.com notification-only",
        })

    def _parse_gemini_with_fallback(
        self,
        subject: str,
        body: str,
        email_message_id: Optional[str],
        allow_fallback: bool,
    ) -> ParsedBookingEmail:
        try:
            parsed = self.parse_gemini(subject, body, email_message_id)
        except AIProviderError as e:
            if not allow_fallback:
                raise
            self.logger.warning("Gemini parse failed; using heuristic", error=str(e))
            return self.heuristic.parse(subject, body)

        if not allow_fallback or parsed.confidence >= AUTO_ACCEPT_CONFIDENCE:
            return parsed

        heuristic = self.heuristic.parse(subject, body)
        self.logger.info(
            "Low Gemini confidence, compared with heuristic",
            gemini_confidence=parsed.confidence,
            heuristic_confidence=heuristic.confidence,
        )
        return heuristic if heuristic.confidence > parsed.confidence else parsed

    def parse_gemini(
        self,
        subject: str,
        body: str,
        email_message_id: Optional[str] = None,
    ) -> ParsedBookingEmail:
        """Extract booking fields with Gemini JSON output and store the extraction."""
        prompt = (
            f"EMAIL SUBJECT:\n{subject or ''}\n\nEMAIL SNIPPET:\n{body or ''}\n\n"
            f"Return valid JSON only (no code fences). Schema: {json.dumps(RESPONSE_SCHEMA)}"
        )
        response = self.llm.generate(prompt, system_hint=SYSTEM_PROMPT, json_mode=True)
        data = parse_json_response(response.get("text", ""))

        parsed = normalize(data)
        if not parsed.reasoning:
            parsed.reasoning = "gemini"

        if self.extraction_store is not None and email_message_id:
            self.extraction_store.save_extraction(
                email_message_id=email_message_id,
                model=response.get("model") or self.llm.model_name,
                output=parsed.to_dict(),
                confidence=parsed.confidence,
                reasoning=parsed.reasoning,
            )
        return parsed
