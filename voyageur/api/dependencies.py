"""
Dependency injection and service container for FastAPI application.
"""
from typing import Optional
from functools import lru_cache

from ..supabase_sync.supabase_client import SupabaseClient
from ..utils.logger import setup_logger
from ..analytics.kpi_calculator import KPICalculator
from ..ai.insights_service import InsightsService
from ..booking_parser.ai_email_parser import AIEmailParser
from .config import settings
from .services.booking_service import BookingService
from .services.property_service import PropertyService
from .services.expense_service import ExpenseService
from .services.receipt_extraction_service import ReceiptExtractionService
from .services.email_extraction_service import EmailExtractionService
from .services.email_import_service import EmailImportService
from .services.guest_profile_service import GuestProfileService
from .services.ical_service import ICalService
from .services.conflict_service import ConflictService
from .services.ota_platform_service import OTAPlatformService
from .services.availability_service import AvailabilityService
from .services.booking_ledger_service import BookingLedgerService
from .services.manual_update_service import ManualUpdateService
from .services.ota_monitoring_service import OTAMonitoringService


# Global service instances
_supabase_client: Optional[SupabaseClient] = None
_logger = None


def get_logger():
    """Get application logger instance."""
    global _logger
    if _logger is None:
        _logger = setup_logger("fastapi_app", settings.log_level)
    return _logger


def get_supabase_client() -> SupabaseClient:
    """Get Supabase client instance."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient()
    return _supabase_client


@lru_cache(maxsize=1)
def get_guest_profile_service() -> GuestProfileService:
    return GuestProfileService(get_supabase_client())


@lru_cache(maxsize=1)
def get_conflict_service() -> ConflictService:
    return ConflictService(get_supabase_client())


@lru_cache(maxsize=1)
def get_manual_update_service() -> ManualUpdateService:
    return ManualUpdateService(get_supabase_client())


@lru_cache(maxsize=1)
def get_booking_service() -> BookingService:
    """Get booking service instance with caching."""
    return BookingService(
        get_supabase_client(),
        get_logger(),
        guest_profiles=get_guest_profile_service(),
        conflicts=get_conflict_service(),
        manual_updates=get_manual_update_service(),
    )


@lru_cache(maxsize=1)
def get_ical_service() -> ICalService:
    return ICalService(get_supabase_client())


@lru_cache(maxsize=1)
def get_property_service() -> PropertyService:
    return PropertyService(get_supabase_client(), get_ical_service())


@lru_cache(maxsize=1)
def get_expense_service() -> ExpenseService:
    return ExpenseService(get_supabase_client())


@lru_cache(maxsize=1)
def get_receipt_extraction_service() -> ReceiptExtractionService:
    return ReceiptExtractionService()


@lru_cache(maxsize=1)
def get_email_import_service() -> EmailImportService:
    return EmailImportService(get_supabase_client(), get_guest_profile_service())


@lru_cache(maxsize=1)
def get_email_parser() -> AIEmailParser:
    """Email parser that records each Gemini extraction."""
    return AIEmailParser(extraction_store=EmailExtractionService(get_supabase_client()))


@lru_cache(maxsize=1)
def get_ota_platform_service() -> OTAPlatformService:
    return OTAPlatformService(get_supabase_client())


@lru_cache(maxsize=1)
def get_availability_service() -> AvailabilityService:
    return AvailabilityService(get_supabase_client())


@lru_cache(maxsize=1)
def get_booking_ledger_service() -> BookingLedgerService:
    return BookingLedgerService(get_supabase_client())


@lru_cache(maxsize=1)
def get_ota_monitoring_service() -> OTAMonitoringService:
    return OTAMonitoringService(get_supabase_client())


@lru_cache(maxsize=1)
def get_kpi_calculator() -> KPICalculator:
    return KPICalculator(get_supabase_client(), get_expense_service())


@lru_cache(maxsize=1)
def get_insights_service() -> InsightsService:
    return InsightsService()


def clear_service_cache():
    """Drop cached service instances, e.g. between tests or on shutdown."""
    global _supabase_client, _logger
    _supabase_client = None
    _logger = None
    for getter in (
        get_guest_profile_service, get_conflict_service, get_booking_service,
        get_ical_service, get_property_service, get_expense_service,
        get_receipt_extraction_service, get_email_import_service, get_email_parser,
        get_ota_platform_service, get_availability_service, get_kpi_calculator,
        get_insights_service, get_manual_update_service, get_booking_ledger_service,
        get_ota_monitoring_service,
    ):
        getter.cache_clear()
