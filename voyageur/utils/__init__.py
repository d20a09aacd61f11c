"""
Utility modules for the Voyageur Nest backend.
"""

from .models import (
    OTAPlatform, EventType, EmailData, ParsedBookingEmail, LineItem,
    ReceiptExtraction, SyncResult, CalendarConflict, ImportResult, AnalyticsFilters
)
from .logger import setup_logger, get_logger, SyncLogger
from .errors import (
    VoyageurError, ValidationError, NotFoundError, RateLimitError, AIProviderError
)

__all__ = [
    'OTAPlatform', 'EventType', 'EmailData', 'ParsedBookingEmail', 'LineItem',
    'ReceiptExtraction', 'SyncResult', 'CalendarConflict', 'ImportResult',
    'AnalyticsFilters',
    'setup_logger', 'get_logger', 'SyncLogger',
    'VoyageurError', 'ValidationError', 'NotFoundError', 'RateLimitError',
    'AIProviderError',
]
