"""
Heuristic parser for OTA booking notification emails.
"""
import re
from typing import Optional, Dict, Any, Tuple
from bs4 import BeautifulSoup

from ..utils.models import ParsedBookingEmail, EventType, OTAPlatform
from ..utils.logger import get_logger

DATE_TOKEN = r"\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4}"
NAME_TAIL = r"([A-Za-z][A-Za-z\s\.'-]{1,60})(?=[,\.\n]|$)"


def to_iso_date(value: str) -> Optional[str]:
    """Accept YYYY-MM-DD or DD/MM/YYYY and return YYYY-MM-DD."""
    text = (value or "").strip()
    m = re.match(r"^(\d{4})-(\d{2})-(\d{2})$", text)
    if m:
        return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"
    m = re.match(r"^(\d{2})/(\d{2})/(\d{4})$", text)
    if m:
        return f"{m.group(3)}-{m.group(2)}-{m.group(1)}"
    return None


def html_to_text(html: str) -> str:
    """Flatten an HTML email body to newline separated text."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


class BookingEmailParser:
    """Regex parser for OTA booking emails, used on its own or as the AI fallback."""

    def __init__(self):
        self.logger = get_logger("booking_parser")

        self.patterns = {
            'date_range': re.compile(
                rf"({DATE_TOKEN})\s*(?:to|\-|–)\s*({DATE_TOKEN})", re.IGNORECASE
            ),
            'pax': re.compile(r"(\d+)\s*pax", re.IGNORECASE),
            'adults': [
                re.compile(r"adults?\s*[:\-]?\s*(\d{1,2})", re.IGNORECASE),
                re.compile(r"(\d{1,2})\s*adults?", re.IGNORECASE),
            ],
            'children': [
                re.compile(r"child(?:ren)?\s*[:\-]?\s*(\d{1,2})", re.IGNORECASE),
                re.compile(r"(\d{1,2})\s*child(?:ren)?", re.IGNORECASE),
            ],
            'compact_ac': re.compile(
                r"(\d{1,2})\s*(?:a|adult\w*)\s*[+/\-]\s*(\d{1,2})\s*(?:c|child\w*)", re.IGNORECASE
            ),
            'compact_slash': re.compile(r"\b(\d{1,2})\s*[+/\-]\s*(\d{1,2})\b"),
            'guest_name': [
                re.compile(r"Guest\s*[:\-]?\s*" + NAME_TAIL, re.IGNORECASE),
                re.compile(r"Guest Name\s*[:\-]\s*" + NAME_TAIL, re.IGNORECASE),
                re.compile(r"Mr\.?\s+" + NAME_TAIL, re.IGNORECASE),
                re.compile(r"Ms\.?\s+" + NAME_TAIL, re.IGNORECASE),
            ],
            'room_type': [
                re.compile(r"\b(Deluxe|Standard)\s+Room\b", re.IGNORECASE),
                re.compile(r"\b(Deluxe|Standard)\b", re.IGNORECASE),
            ],
            'property_hint': re.compile(r"Old Manali|Baror", re.IGNORECASE),
            'booking_reference': [
                re.compile(r"Reference\s*[:#]?\s*([A-Z0-9\-]+)", re.IGNORECASE),
                re.compile(r"\bRef\b\.?\s*[:#]?\s*([A-Z0-9\-]+)", re.IGNORECASE),
            ],
        }

    @staticmethod
    def _first(patterns, text: str):
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                return match
        return None

    def _detect_platform(self, lower: str) -> OTAPlatform:
        if re.search(r"booking\.com", lower):
            return OTAPlatform.BOOKING_COM
        if re.search(r"(mmt|makemytrip|go-mmt)", lower):
            return OTAPlatform.GOMMT
        return OTAPlatform.OTHER

    def _extract_occupancy(self, text: str) -> Tuple[Optional[int], Optional[int], Optional[int]]:
        """Return (pax, adults, children) from labelled or compact guest counts."""
        pax = None
        adults = None
        children = None

        pax_match = self.patterns['pax'].search(text)
        if pax_match:
            pax = int(pax_match.group(1))

        adults_match = self._first(self.patterns['adults'], text)
        children_match = self._first(self.patterns['children'], text)
        if adults_match:
            adults = int(adults_match.group(1))
        if children_match:
            children = int(children_match.group(1))

        compact_ac = self.patterns['compact_ac'].search(text)
        compact_slash = self.patterns['compact_slash'].search(text)
        if compact_ac:
            adults = adults if adults is not None else int(compact_ac.group(1))
            children = children if children is not None else int(compact_ac.group(2))
        elif not adults and not children and compact_slash:
            # Small counts only; larger pairs are usually day/month fragments
            a, c = int(compact_slash.group(1)), int(compact_slash.group(2))
            if a <= 10 and c <= 10:
                adults, children = a, c

        if adults is not None or children is not None:
            total = (adults or 0) + (children or 0)
            if not pax or pax != total:
                pax = total

        if pax is not None and adults is None and children is None:
            adults, children = pax, 0

        return pax, adults, children

    def _detect_event(self, text: str) -> EventType:
        if re.search(r"cancel|cancellation", text, re.IGNORECASE):
            return EventType.CANCELLED
        if re.search(r"modify|amend|change", text, re.IGNORECASE):
            return EventType.MODIFIED
        return EventType.NEW

    def parse(self, subject: str = "", body: str = "", body_html: str = "") -> ParsedBookingEmail:
        """
        Extract booking fields from an email subject and body.

        Args:
            subject: Email subject line
            body: Plain text body or snippet
            body_html: Optional HTML body, flattened when no plain text is given

        Returns:
            ParsedBookingEmail with a confidence between 0.4 and 0.85
        """
        if not body and body_html:
            body = html_to_text(body_html)
        text = f"{subject or ''}\n{body or ''}"
        lower = text.lower()

        platform = self._detect_platform(lower)
        is_booking = bool(re.search(r"(booking|reservation|ref)", text, re.IGNORECASE))

        check_in = check_out = None
        date_range = self.patterns['date_range'].search(text)
        if date_range:
            check_in = to_iso_date(date_range.group(1))
            check_out = to_iso_date(date_range.group(2))

        pax, adults, children = self._extract_occupancy(text)

        guest_match = self._first(self.patterns['guest_name'], text)
        guest_name = guest_match.group(1).strip() if guest_match else None

        room_type = None
        room_match = self._first(self.patterns['room_type'], text)
        if room_match:
            token = room_match.group(0).lower()
            room_type = "Deluxe Room" if "deluxe" in token else "Standard Room"

        hint_match = self.patterns['property_hint'].search(text)
        property_hint = hint_match.group(0) if hint_match else None

        ref_match = self._first(self.patterns['booking_reference'], text)
        booking_reference = ref_match.group(1) if ref_match else None

        confidence = 0.6 if is_booking else 0.4
        reasons = []
        if check_in and check_out:
            confidence = max(confidence, 0.85)
            reasons.append("dates")
        if guest_name:
            confidence = max(confidence, 0.8)
            reasons.append("guest")
        if pax:
            confidence = max(confidence, 0.75)
            reasons.append("pax")

        adult_child = None
        if adults is not None or children is not None:
            adult_child = f"{adults or 0}/{children or 0}"

        parsed = ParsedBookingEmail(
            event_type=self._detect_event(text),
            ota_platform=platform,
            booking_reference=booking_reference,
            guest_name=guest_name,
            room_type=room_type,
            check_in=check_in,
            check_out=check_out,
            no_of_pax=pax,
            adult_child=adult_child,
            property_hint=property_hint,
            confidence=confidence,
            reasoning=(
                f"Heuristic parse: {', '.join(reasons)}; "
                f"pax={pax if pax is not None else 'n/a'}; "
                f"adult_child={adult_child or 'n/a'}"
            ),
            raw_fields={'subject': subject, 'body': body},
        )

        self.logger.info(
            "Heuristic parse finished",
            platform=platform.value,
            event_type=parsed.event_type.value,
            confidence=confidence,
        )
        return parsed

    def parse_message(self, message: Dict[str, Any]) -> ParsedBookingEmail:
        """Parse an ``email_messages`` row."""
        mime = message.get('mime_summary') or {}
        body = mime.get('text') if isinstance(mime, dict) else None
        return self.parse(message.get('subject') or "", body or message.get('snippet') or "")
