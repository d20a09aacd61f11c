"""
Period KPIs, period-over-period comparison and multi-property aggregation.
"""
import math
from typing import Any, Dict, List, Optional

from .booking_kpis import compute_booking_kpis, empty_booking_kpis
from .expense_analytics import summarize_expenses
from ..utils.dates import add_days, add_years, iso, period_days
from ..utils.logger import get_logger
from ..utils.models import AnalyticsFilters
from config.settings import app_config

DELTA_METRICS = (
    "revenue_delta_pct",
    "occupancy_delta_pct",
    "adr_delta_pct",
    "revpar_delta_pct",
    "expense_delta_pct",
    "margin_delta_pct",
)


def safe_pct_delta(current: float, previous: float) -> float:
    """Percent change; a move away from zero counts as 100%."""
    if not math.isfinite(current) or not math.isfinite(previous):
        return 0
    if previous == 0:
        return 0 if current == 0 else 100
    return ((current - previous) / abs(previous)) * 100


def trend_direction(change_pct: float) -> str:
    if abs(change_pct) < 0.001:
        return "flat"
    return "up" if change_pct > 0 else "down"


def profit_margin_pct(total_revenue: float, total_expenses: float) -> float:
    if total_revenue <= 0:
        return 0
    margin = ((total_revenue - total_expenses) / total_revenue) * 100
    return max(0, min(100, margin))


def confidence_score(booking: Dict[str, Any], expenses: Dict[str, Any], total_rooms: Optional[int]) -> int:
    """Heuristic 0-100 confidence from room coverage, sample size and data consistency."""
    room_coverage = 1 if total_rooms and total_rooms > 0 else 0.5
    sample = max(0, min(1, booking["booking_count"] / 10))
    consistency = 1 if math.isfinite(booking["adr"]) and math.isfinite(booking["revpar"]) else 0.6
    expense_avail = 1 if math.isfinite(expenses["total_expenses"]) else 0.5
    score = 0.35 * room_coverage + 0.35 * sample + 0.2 * consistency + 0.1 * expense_avail
    return round(score * 100)


class KPICalculator:
    """Builds KPI period results from bookings and approved expenses."""

    def __init__(self, supabase_client, expense_service):
        self.supabase = supabase_client
        self.expenses = expense_service
        self.logger = get_logger("kpi_calculator")

    def get_booking_kpis(self, filters: AnalyticsFilters) -> Dict[str, Any]:
        if not filters.property_id or not filters.start or not filters.end:
            return empty_booking_kpis()
        source = filters.booking_source if filters.booking_source not in (None, "", "all") else None
        bookings = self.supabase.get_bookings({
            "property_id": filters.property_id,
            "start": iso(filters.start),
            "end": iso(filters.end),
            "source": source,
            "show_cancelled": True,
        })
        return compute_booking_kpis(bookings, filters.start, filters.end, filters.total_rooms)

    def get_expense_summary(self, filters: AnalyticsFilters) -> Dict[str, Any]:
        if not filters.property_id or not filters.start or not filters.end:
            return {"total_expenses": 0, "by_category": []}
        expenses = self.expenses.list_expenses_for_property_view(
            filters.property_id, iso(filters.start), iso(filters.end), approval="approved"
        )
        categories = self.expenses.list_available_categories(filters.property_id)
        return summarize_expenses(expenses, categories)

    def get_period_result(self, filters: AnalyticsFilters) -> Dict[str, Any]:
        """KPIs, profit margin and confidence for one property and period."""
        start, end = iso(filters.start), iso(filters.end)
        period = filters.with_period(start, end)

        booking = self.get_booking_kpis(period)
        expenses = self.get_expense_summary(period)

        result = {
            "booking": booking,
            "expenses": expenses,
            "profit_margin_pct": profit_margin_pct(booking["total_revenue"], expenses["total_expenses"]),
            "meta": {
                "period": {"start": start, "end": end, "days": period_days(start, end)},
                "property_id": filters.property_id,
                "booking_source": filters.booking_source,
                "currency": app_config.default_currency,
            },
            "confidence": confidence_score(booking, expenses, filters.total_rooms),
        }
        self.logger.info(
            "KPI period computed",
            property_id=filters.property_id,
            start=start,
            end=end,
            revenue=booking["total_revenue"],
        )
        return result

    @staticmethod
    def previous_period(filters: AnalyticsFilters, mode: str = "prev_period") -> AnalyticsFilters:
        """The same-length period before ``filters``, or the same dates a year earlier."""
        if mode == "prev_year":
            return filters.with_period(iso(add_years(filters.start, -1)), iso(add_years(filters.end, -1)))
        days = period_days(filters.start, filters.end)
        prev_end = add_days(filters.start, -1)
        prev_start = add_days(prev_end, -(days - 1))
        return filters.with_period(iso(prev_start), iso(prev_end))

    def compare_with_previous(self, filters: AnalyticsFilters, mode: str = "prev_period") -> Dict[str, Any]:
        if mode not in ("prev_period", "prev_year"):
            raise ValueError(f"Unsupported comparison mode: {mode}")

        current = self.get_period_result(filters)
        previous = self.get_period_result(self.previous_period(filters, mode))
        deltas = compute_deltas(current, previous)

        return {
            "current": current,
            "previous": previous,
            "deltas": deltas,
            "trends": [
                {
                    "metric": metric,
                    "direction": trend_direction(deltas[metric]),
                    "change_pct": deltas[metric],
                    "confidence": current["confidence"],
                }
                for metric in DELTA_METRICS
            ],
        }

    def aggregate_across_properties(
        self,
        property_ids: List[str],
        start: str,
        end: str,
        total_rooms_by_property: Dict[str, int],
        booking_source: Optional[str] = None,
    ) -> Dict[str, Any]:
        results = [
            self.get_period_result(AnalyticsFilters(
                property_id=pid,
                start=start,
                end=end,
                total_rooms=total_rooms_by_property.get(pid) or 0,
                booking_source=booking_source,
            ))
            for pid in property_ids
        ]
        return aggregate_results(results, start, end, booking_source)


def compute_deltas(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, float]:
    cb, pb = current["booking"], previous["booking"]
    return {
        "revenue_delta_pct": safe_pct_delta(cb["total_revenue"], pb["total_revenue"]),
        "occupancy_delta_pct": safe_pct_delta(cb["occupancy_rate"], pb["occupancy_rate"]),
        "adr_delta_pct": safe_pct_delta(cb["adr"], pb["adr"]),
        "revpar_delta_pct": safe_pct_delta(cb["revpar"], pb["revpar"]),
        "expense_delta_pct": safe_pct_delta(
            current["expenses"]["total_expenses"], previous["expenses"]["total_expenses"]
        ),
        "margin_delta_pct": safe_pct_delta(current["profit_margin_pct"], previous["profit_margin_pct"]),
    }


_SUMMED = (
    "total_revenue",
    "total_room_nights_sold",
    "total_room_nights_available",
    "booking_count",
    "cancelled_booking_count",
    "total_bookings_all_statuses",
    "confirmed_booking_count",
    "pending_booking_count",
    "total_nights_booked",
    "unique_guests_count",
    "repeat_guests_unique_count",
)


def aggregate_results(
    results: List[Dict[str, Any]],
    start: str,
    end: str,
    booking_source: Optional[str] = None,
) -> Dict[str, Any]:
    """Sum per-property results and recompute every rate from the summed totals."""
    agg = empty_booking_kpis()
    sources: Dict[str, int] = {}
    for r in results:
        for key in _SUMMED:
            agg[key] += r["booking"].get(key) or 0
        for s in r["booking"].get("source_distribution", []):
            sources[s["name"]] = sources.get(s["name"], 0) + s["count"]

    sold = agg["total_room_nights_sold"]
    available = agg["total_room_nights_available"]
    agg["occupancy_rate"] = (sold / available) * 100 if available > 0 else 0
    agg["adr"] = agg["total_revenue"] / sold if sold > 0 else 0
    agg["revpar"] = agg["total_revenue"] / available if available > 0 else 0

    total_all = agg["total_bookings_all_statuses"]
    agg["cancellation_rate"] = (agg["cancelled_booking_count"] / total_all) * 100 if total_all > 0 else 0
    conv_den = agg["confirmed_booking_count"] + agg["pending_booking_count"]
    agg["booking_conversion_rate"] = (
        (agg["confirmed_booking_count"] / conv_den) * 100 if conv_den > 0 else None
    )
    agg["avg_length_of_stay"] = (
        agg["total_nights_booked"] / agg["booking_count"] if agg["booking_count"] > 0 else 0
    )
    agg["repeat_guest_rate"] = (
        (agg["repeat_guests_unique_count"] / agg["unique_guests_count"]) * 100
        if agg["unique_guests_count"] > 0 else 0
    )

    denominator = agg["booking_count"] or 1
    agg["source_distribution"] = [
        {"name": name, "count": count, "value": (count / denominator) * 100}
        for name, count in sources.items()
    ]

    total_expenses = sum(r["expenses"]["total_expenses"] for r in results)
    avg_confidence = round(sum(r["confidence"] for r in results) / max(1, len(results)))

    return {
        "booking": agg,
        "expenses": {"total_expenses": total_expenses, "by_category": []},
        "profit_margin_pct": profit_margin_pct(agg["total_revenue"], total_expenses),
        "meta": {
            "period": {"start": start, "end": end, "days": period_days(start, end)},
            "booking_source": booking_source,
            "currency": app_config.default_currency,
        },
        "confidence": avg_confidence,
    }
