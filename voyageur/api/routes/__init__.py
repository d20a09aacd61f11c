"""
API routes and endpoints.
"""

from . import (
    analytics, availability, booking_ledger, bookings, conflicts, email_imports, expenses,
    guests, health, ical, manual_updates, ota_platforms, properties,
)

__all__ = [
    "analytics", "availability", "booking_ledger", "bookings", "conflicts", "email_imports", "expenses",
    "guests", "health", "ical", "manual_updates", "ota_platforms", "properties",
]
