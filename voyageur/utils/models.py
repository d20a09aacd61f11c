"""
Data models for the Voyageur Nest backend.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class OTAPlatform(Enum):
    """OTA channels that send booking mail."""
    BOOKING_COM = "booking_com"
    GOMMT = "gommt"
    OTHER = "other"


class EventType(Enum):
    """What an OTA email says happened to a reservation."""
    NEW = "new"
    MODIFIED = "modified"
    CANCELLED = "cancelled"
    NOT_BOOKING = "not_booking"


@dataclass
class EmailData:
    """Email fetched from the inbox, shaped like an ``email_messages`` row."""
    message_id: str
    subject: str
    sender: str
    received_at: Optional[datetime] = None
    body_text: str = ""
    body_html: str = ""
    thread_id: Optional[str] = None
    recipient: Optional[str] = None
    label_ids: List[str] = field(default_factory=list)

    def to_row(self) -> Dict[str, Any]:
        """Convert to an ``email_messages`` insert payload."""
        return {
            'gmail_message_id': self.message_id,
            'thread_id': self.thread_id or self.message_id,
            'label_ids': self.label_ids,
            'sender': self.sender,
            'recipient': self.recipient,
            'subject': self.subject,
            'received_at': self.received_at.isoformat() if self.received_at else None,
            'snippet': (self.body_text or "")[:200],
            'mime_summary': {'text': self.body_text, 'has_html': bool(self.body_html)},
        }


@dataclass
class ParsedBookingEmail:
    """Booking fields extracted from an OTA email."""
    event_type: EventType = EventType.NOT_BOOKING
    ota_platform: OTAPlatform = OTAPlatform.OTHER
    booking_reference: Optional[str] = None
    guest_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    room_type: Optional[str] = None
    room_no: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    no_of_pax: Optional[int] = None
    adult_child: Optional[str] = None
    total_amount: Optional[float] = None
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    special_requests: Optional[str] = None
    property_hint: Optional[str] = None
    confidence: float = 0.0
    reasoning: str = ""
    raw_fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.event_type, str):
            self.event_type = EventType(self.event_type)
        if isinstance(self.ota_platform, str):
            self.ota_platform = OTAPlatform(self.ota_platform)

    @property
    def is_booking(self) -> bool:
        return self.event_type != EventType.NOT_BOOKING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event_type'] = self.event_type.value
        data['ota_platform'] = self.ota_platform.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParsedBookingEmail':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class LineItem:
    """One line on a receipt or expense."""
    description: str
    quantity: Optional[float] = None
    unit_amount: Optional[float] = None
    tax_amount: Optional[float] = None
    line_total: Optional[float] = None

    def __post_init__(self):
        if self.line_total is None and self.quantity is not None and self.unit_amount is not None:
            self.line_total = self.unit_amount * self.quantity


@dataclass
class ReceiptExtraction:
    """Expense fields read off a receipt image."""
    expense_date: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    vendor: Optional[str] = None
    category_hint: Optional[str] = None
    line_items: List[LineItem] = field(default_factory=list)
    confidence: float = 0.7
    reasoning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    """Outcome of importing one OTA iCal feed."""
    platform: str
    property_id: str
    success: bool = False
    records_processed: int = 0
    records_failed: int = 0
    conflicts_detected: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sync_duration: int = 0

    @property
    def status(self) -> str:
        """Sync log status: success, partial or failed."""
        if self.success and not self.errors:
            return "success"
        if self.records_processed > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status
        return data


@dataclass
class CalendarConflict:
    """A scheduling conflict on a property's calendar."""
    id: str
    property_id: str
    conflict_type: str
    severity: str
    conflict_date: str
    booking_id_1: Optional[str] = None
    booking_id_2: Optional[str] = None
    room_no: Optional[str] = None
    conflict_date_start: Optional[str] = None
    conflict_date_end: Optional[str] = None
    description: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    suggested_resolution: Dict[str, Any] = field(default_factory=dict)
    status: str = "detected"

    @property
    def auto_resolvable(self) -> bool:
        return bool(self.suggested_resolution.get('auto_resolvable'))

    def to_row(self) -> Dict[str, Any]:
        """Convert to a ``calendar_conflicts`` row."""
        return asdict(self)


@dataclass
class ImportResult:
    """Outcome of applying one parsed email to the bookings table."""
    outcome: str
    booking_id: Optional[str] = None
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AnalyticsFilters:
    """Property and period selection for KPI calculations."""
    property_id: Optional[str]
    start: str
    end: str
    total_rooms: int = 0
    booking_source: Optional[str] = None

    def with_period(self, start: str, end: str) -> 'AnalyticsFilters':
        return AnalyticsFilters(
            property_id=self.property_id,
            start=start,
            end=end,
            total_rooms=self.total_rooms,
            booking_source=self.booking_source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
