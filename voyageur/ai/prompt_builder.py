"""
Prompt construction for the insights model.
"""
import json
from typing import Any, Dict, Optional

from ..utils.models import AnalyticsFilters

RESPONSE_SHAPE = """Return ONLY a JSON object with the following shape (no markdown fences):
{
  "insights": [
    {"id": string, "title": string, "description": string, "severity": "low"|"medium"|"high"|"critical", "tags": string[], "actions": [{"label": string, "type"?: string, "payload"?: object}], "evidence"?: string}
  ],
  "forecasts": [
    {"metric": string, "value": number, "change_pct"?: number, "confidence"?: number, "unit"?: string, "horizon"?: string}
  ],
  "meta": {"model": string}
}"""

INSTRUCTIONS = (
    "You are an analytics assistant for a small hotel property. Generate actionable, concise insights.",
    "Output requirements (STRICT):",
    "- Return STRICT JSON only. No markdown, no comments, no trailing commas.",
    "- Provide 4-8 insights in total. Each insight description must be <= 280 chars.",
    "- Coverage: include at least one insight for each module: revenue, expenses, guests, anomalies.",
    "- Each insight must include tags; include one of: revenue | expenses | guests | anomalies (as applicable).",
    "- Provide 2-3 forecasts. REQUIRED metrics: revenue and occupancy. Optional: expenses.",
    "- Use India context and INR units for currency-related metrics.",
)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, separators=(",", ":"))


def summarize_kpis(kpis: Dict[str, Any]) -> Dict[str, Any]:
    booking = kpis["booking"]
    return {
        "booking": {
            "total_revenue": round(booking["total_revenue"]),
            "occupancy_rate": round(booking["occupancy_rate"], 2),
            "adr": round(booking["adr"]),
            "revpar": round(booking["revpar"]),
            "booking_count": booking["booking_count"],
            "cancellation_rate": float(booking.get("cancellation_rate") or 0),
            "avg_length_of_stay": float(booking.get("avg_length_of_stay") or 0),
            "repeat_guest_rate": float(booking.get("repeat_guest_rate") or 0),
        },
        "expenses": {"total_expenses": round(kpis["expenses"]["total_expenses"])},
        "profit_margin_pct": round(kpis["profit_margin_pct"], 2),
        "confidence": kpis["confidence"],
    }


def build_insights_prompt(
    filters: AnalyticsFilters,
    kpis: Dict[str, Any],
    comparison: Optional[Dict[str, Any]] = None,
) -> str:
    filters_summary = {
        "property_id": filters.property_id,
        "start": filters.start,
        "end": filters.end,
        "booking_source": filters.booking_source or "all",
        "total_rooms": filters.total_rooms or 0,
    }
    comparison_summary = {"deltas": comparison["deltas"]} if comparison else None

    return "\n".join([
        *INSTRUCTIONS,
        RESPONSE_SHAPE,
        "Context:",
        f"Filters: {_dumps(filters_summary)}",
        f"KPIs: {_dumps(summarize_kpis(kpis))}",
        f"Comparison: {_dumps(comparison_summary)}",
        "Respond with JSON only.",
    ])
