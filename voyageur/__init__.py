"""
Voyageur Nest hotel management backend.

Booking management, expense approvals, KPI analytics, OTA calendar sync and
AI-assisted email/receipt extraction on top of Supabase and Gemini.
"""

__version__ = "1.0.0"
__author__ = "Voyageur Nest Team"
__description__ = "Hotel operations backend for bookings, expenses, analytics and OTA sync"
