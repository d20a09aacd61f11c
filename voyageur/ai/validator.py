"""
Validation and sanitization of model-generated insights.

Model output is untrusted: every string is trimmed to a display limit,
ids are slugged and de-duplicated, and the result is rejected unless it
covers the revenue, expense and guest areas with revenue and occupancy
forecasts.
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

SEVERITIES = ("low", "medium", "high", "critical")
MAX_INSIGHTS = 10
MIN_INSIGHTS = 4
REQUIRED_CATEGORIES = ("revenue", "expenses", "guests")
REQUIRED_FORECASTS = ("revenue", "occupancy")
CURRENCY_METRICS = ("revenue", "expenses", "adr", "revpar")
DEFAULT_MODEL = "gemini-2.5-flash"

CATEGORY_PATTERNS = {
    "revenue": re.compile(r"revenue|adr|revpar|price|pricing|rate|channel|promotion|sales|yield"),
    "expenses": re.compile(r"expense|cost|spend|budget|vendor|invoice"),
    "guests": re.compile(r"guest|loyalty|repeat|stay|alos|review|upsell"),
    "anomalies": re.compile(r"anomal|spike|drop|outlier|fraud|cancel|overbook|error|issue"),
}

CATEGORY_TAGS = {
    "revenue": ("revenue", "pricing", "channels"),
    "expenses": ("expenses", "cost-control", "budget"),
    "guests": ("guests", "loyalty", "crm"),
    "anomalies": ("anomaly", "cancellations", "fraud"),
}

DEFAULT_ACTIONS = {
    "revenue": {"label": "Review pricing rules", "type": "adjust-pricing"},
    "expenses": {"label": "Review expense categories", "type": "review-expenses"},
    "guests": {"label": "Set up loyalty offer", "type": "other", "payload": {"to": "loyalty"}},
    "anomalies": {"label": "Investigate anomaly", "type": "other"},
}


def clamp(value: float, low: float, high: float) -> float:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return low
    return max(low, min(high, value))


def trim(value: Any, limit: int) -> str:
    text = str(value if value is not None else "").strip()
    return text[:limit - 1] + "…" if len(text) > limit else text


def to_id(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def normalize_severity(value: Any) -> str:
    s = str(value or "").lower()
    return s if s in SEVERITIES else "medium"


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _optional_clamped(value: Any, low: float, high: float) -> Optional[float]:
    """``None`` stays ``None``; anything else is clamped, non-numbers to ``low``."""
    if value is None:
        return None
    number = _to_float(value)
    return low if number is None else clamp(number, low, high)


def sanitize_insight(raw: Any, seen_ids: Set[str]) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    title = trim(raw.get("title"), 120)
    description = trim(raw.get("description"), 280)
    if not title or not description:
        return None

    insight_id = trim(raw.get("id"), 64) or to_id(title)
    if not insight_id:
        insight_id = f"insight-{len(seen_ids) + 1}"
    if insight_id in seen_ids:
        n = 2
        while f"{insight_id}-{n}" in seen_ids:
            n += 1
        insight_id = f"{insight_id}-{n}"
    seen_ids.add(insight_id)

    tags = raw.get("tags") if isinstance(raw.get("tags"), list) else []
    tags = [t for t in (trim(tag, 24) for tag in tags[:8]) if t]

    actions = None
    if isinstance(raw.get("actions"), list):
        actions = []
        for a in raw["actions"][:3]:
            a = a if isinstance(a, dict) else {}
            label = trim(a.get("label"), 60)
            if label:
                actions.append({"label": label, "type": a.get("type"), "payload": a.get("payload")})

    insight = {
        "id": insight_id,
        "title": title,
        "description": description,
        "severity": normalize_severity(raw.get("severity")),
        "tags": tags,
        "actions": actions,
    }
    if raw.get("evidence"):
        insight["evidence"] = trim(raw["evidence"], 500)
    return insight


def sanitize_forecast(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    metric = trim(raw.get("metric"), 32)
    if not metric:
        return None
    value = _to_float(raw.get("value"))
    if value is None:
        return None

    change = _optional_clamped(raw.get("change_pct", raw.get("changePct")), -100, 100)
    confidence = _optional_clamped(raw.get("confidence"), 0, 100)

    unit = raw.get("unit") or ("INR" if metric.lower() in CURRENCY_METRICS else "pct")
    forecast = {
        "metric": metric,
        "value": value,
        "change_pct": change,
        "confidence": confidence,
        "unit": unit,
    }
    if raw.get("horizon"):
        forecast["horizon"] = trim(raw["horizon"], 24)
    return forecast


def detect_categories(insight: Dict[str, Any]) -> Set[str]:
    tags = insight.get("tags") or []
    text = f"{insight['title']} {insight['description']} {' '.join(tags)}".lower()
    categories = {name for name, pattern in CATEGORY_PATTERNS.items() if pattern.search(text)}
    for tag in tags:
        tag = str(tag).lower()
        for name, names in CATEGORY_TAGS.items():
            if tag in names:
                categories.add(name)
    return categories


def add_default_actions(insight: Dict[str, Any]) -> Dict[str, Any]:
    if insight.get("actions"):
        return insight
    categories = detect_categories(insight)
    actions = [dict(DEFAULT_ACTIONS[c]) for c in DEFAULT_ACTIONS if c in categories]
    if actions:
        return {**insight, "actions": actions[:3]}
    return insight


def validate_insights_response(parsed: Any) -> Optional[Dict[str, Any]]:
    """Return a sanitized insights result, or ``None`` when the response is unusable."""
    if not isinstance(parsed, dict):
        return None
    raw_insights = parsed.get("insights") if isinstance(parsed.get("insights"), list) else []
    raw_forecasts = parsed.get("forecasts") if isinstance(parsed.get("forecasts"), list) else []

    seen_ids: Set[str] = set()
    insights: List[Dict[str, Any]] = []
    for raw in raw_insights:
        insight = sanitize_insight(raw, seen_ids)
        if insight:
            insights.append(insight)
    insights = [add_default_actions(i) for i in insights[:MAX_INSIGHTS]]

    forecasts = [f for f in (sanitize_forecast(raw) for raw in raw_forecasts) if f]

    if len(insights) < MIN_INSIGHTS:
        return None

    coverage: Set[str] = set()
    for insight in insights:
        coverage |= detect_categories(insight)
    if not all(c in coverage for c in REQUIRED_CATEGORIES):
        return None

    metrics = {str(f["metric"]).lower() for f in forecasts}
    if not all(m in metrics for m in REQUIRED_FORECASTS):
        return None

    meta = parsed.get("meta") if isinstance(parsed.get("meta"), dict) else {}
    model = meta.get("model").strip() if isinstance(meta.get("model"), str) and meta["model"].strip() else DEFAULT_MODEL

    return {
        "insights": insights,
        "forecasts": forecasts,
        "meta": {
            "model": model,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "from_cache": False,
        },
    }
