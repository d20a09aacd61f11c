"""
Configuration settings for the Voyageur Nest hotel management backend.
"""
import os
from typing import Dict, Optional, Tuple
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_int(name: str):
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass
class GmailConfig:
    """Gmail IMAP configuration for OTA inbox ingestion."""
    email: str = os.getenv("GMAIL_EMAIL", "")
    password: str = os.getenv("GMAIL_PASSWORD", "")
    imap_server: str = os.getenv("GMAIL_IMAP_SERVER", "imap.gmail.com")
    imap_port: int = int(os.getenv("GMAIL_IMAP_PORT", "993"))
    mailbox: str = os.getenv("GMAIL_MAILBOX", "INBOX")

    # OTA senders whose mail is ingested and parsed
    allowed_senders: Tuple[str, ...] = (
        "noreply@booking.com",
        "no-reply@goibibo.com",
        "no-reply@go-mmt.com",
    )

    # Sender domain -> OTA platform the mail is parsed as
    sender_platforms: Dict[str, str] = field(default_factory=lambda: {
        "booking.com": "booking_com",
        "goibibo.com": "gommt",
        "go-mmt.com": "gommt",
        "makemytrip.com": "gommt",
    })


@dataclass
class SupabaseConfig:
    """Supabase configuration settings."""
    url: str = os.getenv("SUPABASE_URL", "")
    anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    service_role_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    receipts_bucket: str = os.getenv("SUPABASE_RECEIPTS_BUCKET", "receipts")

    def get_auth_key(self) -> str:
        """Prefer service role key for server-side operations when available."""
        return self.service_role_key or self.anon_key


@dataclass
class AppConfig:
    """Application configuration settings."""
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")
    default_currency: str = os.getenv("DEFAULT_CURRENCY", "INR")
    max_emails_per_run: int = int(os.getenv("MAX_EMAILS_PER_RUN", "100"))
    folio_prefix: str = os.getenv("FOLIO_PREFIX", "520")

    # Table names
    bookings_table: str = "bookings"
    rooms_table: str = "rooms"
    properties_table: str = "properties"
    guest_profiles_table: str = "guest_profiles"
    invoice_counter_table: str = "invoice_counter"
    email_messages_table: str = "email_messages"
    email_imports_table: str = "email_booking_imports"
    email_extractions_table: str = "email_ai_extractions"
    expenses_table: str = "expenses"
    expense_categories_table: str = "expense_categories"
    expense_line_items_table: str = "expense_line_items"
    expense_budgets_table: str = "expense_budgets"
    expense_shares_table: str = "expense_shares"
    ota_platforms_table: str = "ota_platforms"
    property_ota_platforms_view: str = "property_ota_platforms"
    ota_sync_logs_table: str = "ota_sync_logs"
    calendar_conflicts_table: str = "calendar_conflicts"
    booking_charges_table: str = "booking_charges"
    booking_payments_table: str = "booking_payments"
    manual_update_checklists_table: str = "manual_update_checklists"

    # Receipt upload limits
    receipt_max_bytes: int = 10 * 1024 * 1024
    receipt_mime_types: Tuple[str, ...] = (
        "image/jpeg",
        "image/png",
        "image/webp",
        "application/pdf",
    )


@dataclass
class AIConfig:
    """Gemini and AI insights settings."""
    api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    rpm: int = int(os.getenv("AI_RPM", "6"))
    daily_cap: Optional[int] = _optional_int("AI_DAILY_CAP")
    price_per_1k_tokens: float = float(os.getenv("AI_PRICE_PER_1K", "0.15"))
    email_mode: str = os.getenv("EMAIL_AI_MODE", "auto").lower()
    debug: bool = os.getenv("AI_DEBUG", "false").lower() == "true"
    cache_ttl_seconds: int = int(os.getenv("AI_CACHE_TTL_SECONDS", "600"))


@dataclass
class ICalConfig:
    """iCal feed generation and OTA fetch settings."""
    prod_id: str = "-//Voyageur Nest//Calendar Sync//EN"
    timezone: str = os.getenv("ICAL_TIMEZONE", "Asia/Kolkata")
    uid_domain: str = os.getenv("ICAL_UID_DOMAIN", "voyageurnest.com")
    user_agent: str = "Voyageur Nest Calendar Sync/1.0"
    fetch_timeout: int = int(os.getenv("ICAL_FETCH_TIMEOUT", "30"))
    export_days: int = int(os.getenv("ICAL_EXPORT_DAYS", "365"))


@dataclass
class APIConfig:
    """API and URL configuration settings."""
    base_url: str = os.getenv("API_BASE_URL", "http://127.0.0.1:8001")


gmail_config = GmailConfig()
supabase_config = SupabaseConfig()
app_config = AppConfig()
ai_config = AIConfig()
ical_config = ICalConfig()
api_config = APIConfig()
