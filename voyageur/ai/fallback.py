"""
Rule-based insights used when the model is unavailable or its output is rejected.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

FALLBACK_MODEL = "fallback-rules-v1"


def generate_fallback_insights(kpis: Dict[str, Any], comparison: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build insights and forecasts from KPI thresholds.

    Args:
        kpis: period result from ``KPICalculator.get_period_result``
        comparison: optional result of ``KPICalculator.compare_with_previous``
    """
    booking = kpis["booking"]
    total_expenses = kpis["expenses"].get("total_expenses") or 0
    total_revenue = booking.get("total_revenue") or 0
    occupancy = booking.get("occupancy_rate") or 0
    deltas = (comparison or {}).get("deltas")
    insights: List[Dict[str, Any]] = []

    if deltas and deltas["revenue_delta_pct"] < -10:
        insights.append({
            "id": "rev_drop",
            "title": "Revenue is down",
            "description": (
                f"Revenue fell {deltas['revenue_delta_pct']:.1f}% vs previous period. "
                "Review pricing and channel promotions."
            ),
            "severity": "high",
            "tags": ["revenue", "pricing", "channels"],
            "actions": [
                {"label": "Review pricing rules", "type": "navigate", "payload": {"to": "pricing"}},
                {"label": "Boost high-ROI channels", "type": "navigate", "payload": {"to": "channels"}},
            ],
        })

    if occupancy < 50:
        insights.append({
            "id": "low_occ",
            "title": "Low occupancy risk",
            "description": f"Occupancy at {occupancy:.1f}%. Consider discount nights and local promotions.",
            "severity": "medium",
            "tags": ["occupancy", "marketing"],
        })

    if total_expenses > total_revenue * 0.7:
        ratio = round(total_expenses / max(1, total_revenue) * 100)
        insights.append({
            "id": "high_expenses",
            "title": "High expense ratio",
            "description": f"Expenses are {ratio}% of revenue. Audit top categories.",
            "severity": "medium",
            "tags": ["expenses", "cost-control"],
            "actions": [
                {"label": "Review expense categories", "type": "navigate", "payload": {"to": "expenses"}},
            ],
        })

    repeat_rate = float(booking.get("repeat_guest_rate") or 0)
    if 0 < repeat_rate < 10:
        insights.append({
            "id": "low_repeat_guest_rate",
            "title": "Low repeat guest rate",
            "description": (
                f"Only {repeat_rate:.1f}% of guests are repeats. "
                "Launch loyalty offers and post-stay emails."
            ),
            "severity": "medium",
            "tags": ["guests", "loyalty", "crm"],
        })

    alos = float(booking.get("avg_length_of_stay") or 0)
    if 0 < alos < 1.5:
        insights.append({
            "id": "short_stays",
            "title": "Short stays dominate",
            "description": (
                f"Avg length of stay is {alos:.2f} nights. "
                "Try 2+ night discounts to boost ADR and reduce turnover costs."
            ),
            "severity": "low",
            "tags": ["pricing", "stay-patterns"],
        })

    cancellation_rate = float(booking.get("cancellation_rate") or 0)
    if cancellation_rate > 25:
        insights.append({
            "id": "high_cancellations",
            "title": "High cancellation rate",
            "description": (
                f"Cancellations at {cancellation_rate:.1f}%. "
                "Tighten policies on high-risk channels and confirm deposits."
            ),
            "severity": "high",
            "tags": ["anomaly", "cancellations", "channels"],
        })

    forecasts: List[Dict[str, Any]] = []
    if deltas:
        confidence = kpis.get("confidence")
        next_revenue = max(0, total_revenue * (1 + deltas["revenue_delta_pct"] / 100))
        next_expenses = max(0, total_expenses * (1 + deltas["expense_delta_pct"] / 100))
        forecasts = [
            {"metric": "revenue", "value": round(next_revenue), "change_pct": deltas["revenue_delta_pct"],
             "confidence": confidence, "unit": "INR", "horizon": "next_period"},
            {"metric": "occupancy", "value": round(occupancy, 1), "change_pct": deltas["occupancy_delta_pct"],
             "confidence": confidence, "unit": "pct", "horizon": "next_period"},
            {"metric": "expenses", "value": round(next_expenses), "change_pct": deltas["expense_delta_pct"],
             "confidence": confidence, "unit": "INR", "horizon": "next_period"},
        ]

    return {
        "insights": insights,
        "forecasts": forecasts,
        "meta": {
            "model": FALLBACK_MODEL,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "from_cache": False,
        },
    }
