"""
Booking email parsing for OTA notifications.
"""

from .parser import BookingEmailParser, to_iso_date, html_to_text
from .ai_email_parser import AIEmailParser, normalize

__all__ = ['BookingEmailParser', 'AIEmailParser', 'normalize', 'to_iso_date', 'html_to_text']
