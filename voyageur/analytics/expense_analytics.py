"""
Expense analytics over approved expenses.
"""
import math
from typing import Any, Dict, List, Optional

from ..utils.dates import parse_date


def _category_name(category_id: Optional[str], names: Dict[str, str]) -> str:
    if not category_id:
        return "Uncategorized"
    return names.get(category_id, "Unknown")


def _names_by_id(categories: List[Dict[str, Any]]) -> Dict[str, str]:
    return {c["id"]: c.get("name") for c in categories if c.get("id")}


def totals_by_category(
    expenses: List[Dict[str, Any]],
    categories: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Sum expense amounts per category, largest first."""
    names = _names_by_id(categories)
    totals: Dict[Optional[str], float] = {}
    for e in expenses:
        key = e.get("category_id") or None
        totals[key] = totals.get(key, 0) + float(e.get("amount") or 0)

    result = [
        {"category_id": cid, "category_name": _category_name(cid, names), "total": total}
        for cid, total in totals.items()
    ]
    result.sort(key=lambda r: r["total"], reverse=True)
    return result


def summarize_expenses(
    expenses: List[Dict[str, Any]],
    categories: List[Dict[str, Any]],
) -> Dict[str, Any]:
    by_category = totals_by_category(expenses, categories)
    return {
        "total_expenses": sum(r["total"] for r in by_category),
        "by_category": by_category,
    }


def empty_detailed_analytics() -> Dict[str, Any]:
    return {
        "kpis": {
            "total_expenses": 0,
            "monthly_average": 0,
            "budget_variance": 0,
            "budget_variance_percent": 0,
            "top_category": "None",
            "top_category_amount": 0,
            "expense_count": 0,
            "average_expense_amount": 0,
        },
        "by_category": [],
        "trends": [],
        "budget_comparison": [],
        "vendor_analysis": [],
        "payment_method_breakdown": [],
    }


def detailed_expense_analytics(
    expenses: List[Dict[str, Any]],
    categories: List[Dict[str, Any]],
    budgets: List[Dict[str, Any]],
    start,
    end,
    trends: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """KPIs, budget comparison, vendor and payment-method breakdowns for a period."""
    names = _names_by_id(categories)
    total_expenses = sum(float(e.get("amount") or 0) for e in expenses)

    span_days = (parse_date(end) - parse_date(start)).days
    month_count = max(1, math.ceil(span_days / 30))

    by_category = totals_by_category(expenses, categories)
    top = by_category[0] if by_category else None

    total_budget = sum(float(b.get("budget_amount") or 0) for b in budgets)
    budget_variance = total_expenses - total_budget
    budget_variance_pct = (budget_variance / total_budget) * 100 if total_budget > 0 else 0

    kpis = {
        "total_expenses": total_expenses,
        "monthly_average": total_expenses / month_count,
        "budget_variance": budget_variance,
        "budget_variance_percent": budget_variance_pct,
        "top_category": top["category_name"] if top else "None",
        "top_category_amount": top["total"] if top else 0,
        "expense_count": len(expenses),
        "average_expense_amount": total_expenses / len(expenses) if expenses else 0,
    }

    budget_by_name: Dict[str, float] = {}
    for b in budgets:
        name = names.get(b.get("category_id"), "Unknown")
        budget_by_name[name] = budget_by_name.get(name, 0) + float(b.get("budget_amount") or 0)

    actual_by_name: Dict[str, float] = {}
    for row in by_category:
        actual_by_name[row["category_name"]] = actual_by_name.get(row["category_name"], 0) + row["total"]

    comparison = []
    for name in list(dict.fromkeys(list(actual_by_name) + list(budget_by_name))):
        actual = actual_by_name.get(name, 0)
        budgeted = budget_by_name.get(name, 0)
        if actual <= 0 and budgeted <= 0:
            continue
        variance = actual - budgeted
        comparison.append({
            "category_name": name,
            "budgeted": budgeted,
            "actual": actual,
            "variance": variance,
            "variance_percent": (variance / budgeted) * 100 if budgeted > 0 else 0,
        })
    comparison.sort(key=lambda c: abs(c["variance"]), reverse=True)

    vendors: Dict[str, Dict[str, float]] = {}
    for e in expenses:
        vendor = e.get("vendor") or "Unknown"
        entry = vendors.setdefault(vendor, {"amount": 0, "count": 0})
        entry["amount"] += float(e.get("amount") or 0)
        entry["count"] += 1
    vendor_analysis = sorted(
        ({"vendor": v, "amount": d["amount"], "count": int(d["count"])} for v, d in vendors.items()),
        key=lambda v: v["amount"],
        reverse=True,
    )[:10]

    payments: Dict[str, float] = {}
    for e in expenses:
        method = e.get("payment_method") or "Unknown"
        payments[method] = payments.get(method, 0) + float(e.get("amount") or 0)
    payment_breakdown = sorted(
        (
            {
                "method": m,
                "amount": amount,
                "percentage": (amount / total_expenses) * 100 if total_expenses > 0 else 0,
            }
            for m, amount in payments.items()
        ),
        key=lambda p: p["amount"],
        reverse=True,
    )

    return {
        "kpis": kpis,
        "by_category": by_category,
        "trends": trends or [],
        "budget_comparison": comparison,
        "vendor_analysis": vendor_analysis,
        "payment_method_breakdown": payment_breakdown,
    }
