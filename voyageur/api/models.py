"""
Immutable data models for API responses and requests.
"""
from typing import Optional, Dict, Any, List
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict, field_serializer, field_validator, ValidationInfo
from enum import Enum


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"


class ApprovalStatus(str, Enum):
    """Expense approval states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ComparisonMode(str, Enum):
    PREV_PERIOD = "prev_period"
    PREV_YEAR = "prev_year"


class APIResponse(BaseModel):
    """Base API response model."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool = Field(..., description="Whether the request was successful")
    message: str = Field(..., description="Response message")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Response timestamp")

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return timestamp.isoformat()


class DataResponse(APIResponse):
    """Response carrying arbitrary JSON data."""
    data: Any = Field(None, description="Response payload")


class ErrorResponse(APIResponse):
    """Error response model."""
    error_code: Optional[str] = Field(None, description="Error code for debugging")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class BookingSummary(BaseModel):
    """Immutable booking summary model."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    total_bookings: int = Field(..., ge=0, description="Total number of active bookings")
    by_source: Dict[str, int] = Field(default_factory=dict, description="Bookings count by source")
    by_status: Dict[str, int] = Field(default_factory=dict, description="Bookings count by status")
    last_updated: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")

    @field_serializer('last_updated')
    def serialize_last_updated(self, last_updated: datetime) -> str:
        return last_updated.isoformat()


class BookingStatsResponse(APIResponse):
    """Response model for booking statistics."""
    data: Optional[BookingSummary] = Field(None, description="Booking statistics data")


class PaginatedBookingResponse(APIResponse):
    """Response model for paginated bookings."""
    data: Dict[str, Any] = Field(..., description="Paginated booking data including bookings array and pagination metadata")


class HealthResponse(BaseModel):
    """Health check response model."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    dependencies: Dict[str, str] = Field(default_factory=dict, description="Dependency statuses")

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return timestamp.isoformat()


# Bookings

class CreateBookingRequest(BaseModel):
    """Request model for creating a booking."""
    property_id: str = Field(..., description="Property ID")
    guest_name: str = Field(..., min_length=1, description="Guest name")
    room_no: str = Field(..., description="Room number")
    number_of_rooms: int = Field(default=1, ge=1, description="Rooms booked")
    check_in: date = Field(..., description="Check-in date")
    check_out: date = Field(..., description="Check-out date")
    no_of_pax: Optional[int] = Field(None, ge=1, description="Number of guests")
    adult_child: Optional[str] = Field(None, description="Adults/children, e.g. 2/1")
    status: BookingStatus = Field(default=BookingStatus.CONFIRMED, description="Booking status")
    total_amount: float = Field(default=0, ge=0, description="Total amount")
    payment_status: Optional[str] = Field(None, description="Payment status")
    payment_amount: Optional[float] = Field(None, ge=0, description="Amount paid")
    payment_mode: Optional[str] = Field(None, description="Payment mode")
    contact_phone: Optional[str] = Field(None, description="Guest phone number")
    contact_email: Optional[str] = Field(None, description="Guest email")
    special_requests: Optional[str] = Field(None, description="Special requests")
    booking_date: Optional[date] = Field(None, description="Booking date")
    source: str = Field(default="direct", description="Booking source")

    @field_validator('check_out')
    @classmethod
    def check_out_after_check_in(cls, v: date, info: ValidationInfo) -> date:
        check_in = info.data.get('check_in')
        if check_in and v <= check_in:
            raise ValueError("check_out must be after check_in")
        return v


class UpdateBookingRequest(BaseModel):
    """Request model for a partial booking update."""
    model_config = ConfigDict(extra="forbid")

    guest_name: Optional[str] = None
    room_no: Optional[str] = None
    number_of_rooms: Optional[int] = Field(None, ge=1)
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    no_of_pax: Optional[int] = Field(None, ge=1)
    adult_child: Optional[str] = None
    status: Optional[BookingStatus] = None
    total_amount: Optional[float] = Field(None, ge=0)
    payment_status: Optional[str] = None
    payment_amount: Optional[float] = Field(None, ge=0)
    payment_mode: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    special_requests: Optional[str] = None


class CreateBookingResponse(APIResponse):
    """Response model for creating a booking."""
    data: Dict[str, Any] = Field(..., description="Created booking details")


class PropertyCreate(BaseModel):
    name: str
    address: Optional[str] = None
    status: Optional[str] = None


# Expenses

class LineItemRequest(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: Optional[float] = None
    unit_amount: Optional[float] = None
    tax_amount: Optional[float] = None
    line_total: Optional[float] = None


class ExpenseShareRequest(BaseModel):
    property_id: str
    share_percent: Optional[float] = None
    share_amount: Optional[float] = None


class ExpenseRequest(BaseModel):
    """Request model for creating an expense."""
    property_id: str = Field(..., description="Owning property")
    category_id: Optional[str] = Field(None, description="Expense category")
    expense_date: date = Field(..., description="Date of the expense")
    amount: float = Field(..., description="Expense amount")
    currency: str = Field(default="INR", description="Currency code")
    vendor: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None
    line_items: List[LineItemRequest] = Field(default_factory=list)
    shares: List[ExpenseShareRequest] = Field(default_factory=list)
    share_mode: str = Field(default="percentage", pattern="^(percentage|amount)$")


class ExpenseUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[str] = None
    expense_date: Optional[date] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    vendor: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None


class ApprovalRequest(BaseModel):
    status: ApprovalStatus
    approved_by: str = Field(..., description="Who approved or rejected")
    notes: Optional[str] = None


class CategoryRequest(BaseModel):
    name: str = Field(..., min_length=1)
    property_id: Optional[str] = Field(None, description="Omit for a global template category")
    description: Optional[str] = None


class BudgetRequest(BaseModel):
    property_id: str
    category_id: str
    month: date = Field(..., description="First day of the budget month")
    budget_amount: float = Field(..., ge=0)
    currency: Optional[str] = None
    notes: Optional[str] = None


# Analytics

class AnalyticsRequest(BaseModel):
    property_id: str
    start: date
    end: date
    total_rooms: int = Field(default=0, ge=0)
    booking_source: Optional[str] = None

    @field_validator('end')
    @classmethod
    def end_not_before_start(cls, v: date, info: ValidationInfo) -> date:
        start = info.data.get('start')
        if start and v < start:
            raise ValueError("end must not be before start")
        return v


class CompareRequest(AnalyticsRequest):
    mode: ComparisonMode = ComparisonMode.PREV_PERIOD


class AggregateRequest(BaseModel):
    property_ids: List[str] = Field(..., min_length=1)
    start: date
    end: date
    total_rooms_by_property: Dict[str, int] = Field(default_factory=dict)
    booking_source: Optional[str] = None


class InsightsRequest(CompareRequest):
    include_comparison: bool = True


# Guests

class GuestProfileRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None
    notes: Optional[str] = None
    email_marketing_consent: Optional[bool] = None
    sms_marketing_consent: Optional[bool] = None
    data_retention_consent: Optional[bool] = None


class MergeGuestsRequest(BaseModel):
    primary_id: str
    duplicate_ids: List[str] = Field(..., min_length=1)


class PrivacySettingsRequest(BaseModel):
    email_marketing_consent: Optional[bool] = None
    sms_marketing_consent: Optional[bool] = None
    data_retention_consent: Optional[bool] = None


# Calendar sync

class ICalImportRequest(BaseModel):
    platform_id: str
    property_id: str
    ical_data: Optional[str] = Field(None, description="Raw feed text; fetched from ical_url when omitted")
    ical_url: Optional[str] = None


class ICalValidateRequest(BaseModel):
    ical_data: str


class ConflictResolveRequest(BaseModel):
    action: str
    notes: Optional[str] = None
    resolved_by: str = "staff"


class OTAPlatformConfigRequest(BaseModel):
    display_name: Optional[str] = None
    type: Optional[str] = None
    configuration: Optional[Dict[str, Any]] = None
    ical_import_url: Optional[str] = None
    ical_export_url: Optional[str] = None
    sync_enabled: Optional[bool] = None
    is_active: Optional[bool] = None
    manual_update_required: Optional[bool] = None
    sync_interval: Optional[int] = Field(None, ge=1)
    credentials: Optional[Dict[str, Any]] = None


# Email imports

class EmailImportRequest(BaseModel):
    property_id: Optional[str] = Field(None, description="Overrides property resolution from the email")


# Booking ledger

class ChargeRequest(BaseModel):
    property_id: str
    charge_type: str = Field(..., description="room, fnb, misc, discount, tax or service_fee")
    quantity: float = 1
    unit_amount: float
    description: Optional[str] = None
    created_at: Optional[datetime] = Field(None, description="Backdates the charge")


class ChargeUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    property_id: str
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_amount: Optional[float] = None


class PaymentRequest(BaseModel):
    property_id: str
    amount: float
    method: Optional[str] = None
    reference_no: Optional[str] = None


# Manual OTA updates

class ChecklistGenerateRequest(BaseModel):
    platform_id: str
    property_id: str
    start: Optional[date] = None
    end: Optional[date] = None


class ChecklistItemUpdateRequest(BaseModel):
    status: str = Field(..., pattern="^(pending|in_progress|completed)$")
    notes: Optional[str] = None
