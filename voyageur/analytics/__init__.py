"""
KPI analytics for bookings and expenses.
"""

from .booking_kpis import compute_booking_kpis, empty_booking_kpis, nights_within_period
from .expense_analytics import summarize_expenses, detailed_expense_analytics
from .kpi_calculator import KPICalculator, safe_pct_delta, trend_direction

__all__ = [
    'compute_booking_kpis', 'empty_booking_kpis', 'nights_within_period',
    'summarize_expenses', 'detailed_expense_analytics',
    'KPICalculator', 'safe_pct_delta', 'trend_direction',
]
