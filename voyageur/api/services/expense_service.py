"""
Expenses: receipts, categories, approval workflow, line items, budgets,
property shares and monthly reporting.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ...analytics.expense_analytics import detailed_expense_analytics, empty_detailed_analytics
from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.dates import add_months, iso, month_bounds, month_start_from_key, parse_date
from ...utils.errors import NotFoundError, ValidationError
from ...utils.logger import get_logger
from config.settings import app_config, supabase_config

APPROVAL_STATUSES = ("pending", "approved", "rejected")
SUBSTANTIVE_FIELDS = (
    "category_id", "expense_date", "amount", "currency",
    "payment_method", "vendor", "notes", "receipt_path",
)
APPROVAL_FIELDS = ("approval_status", "approved_by", "approval_notes", "approved_at")
TREND_MONTHS = 6


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _number(value: Any) -> float:
    return float(value) if value is not None else 0.0


def share_contribution(expense: Dict[str, Any], shares: List[Dict[str, Any]], property_id: str) -> float:
    """
    Portion of an expense attributed to ``property_id``.

    Without shares the full amount counts. A share amount overrides the
    percentage; shares that exist without one for this property give zero.
    """
    amount = _number(expense.get("amount"))
    if not shares:
        return amount
    matching = next((s for s in shares if s.get("property_id") == property_id), None)
    if matching is None:
        return 0.0
    if matching.get("share_amount") is not None:
        return _number(matching["share_amount"])
    weight = max(0.0, min(1.0, _number(matching.get("share_percent")) / 100))
    return amount * weight


class ExpenseService:
    """Service for property expenses and their approval."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("expense_service")

    def _table(self, name: str):
        return self.supabase_client.ensure().table(name)

    # Receipts
    def upload_receipt(self, property_id: str, filename: str, content: bytes, content_type: str) -> Dict[str, str]:
        """Store a receipt under ``{property}/{YYYY-MM}/{uuid}.{ext}`` in the receipts bucket."""
        if content_type not in app_config.receipt_mime_types:
            raise ValidationError("Only images (jpeg/png/webp) or PDF allowed")
        if len(content) > app_config.receipt_max_bytes:
            raise ValidationError("File too large (max 10MB)")

        ext = filename.rsplit(".", 1)[-1].lower() if "." in (filename or "") else "bin"
        month = datetime.now(timezone.utc).strftime("%Y-%m")
        path = f"{property_id}/{month}/{uuid4()}.{ext}"

        stored = self.supabase_client.upload_file(supabase_config.receipts_bucket, path, content, content_type)
        if not stored:
            raise RuntimeError("Receipt upload failed")
        return {"path": stored}

    # Categories
    def list_available_categories(self, property_id: str) -> List[Dict[str, Any]]:
        """Global category templates plus the property's own categories."""
        resp = (
            self._table(app_config.expense_categories_table)
            .select("*")
            .or_(f"property_id.is.null,property_id.eq.{property_id}")
            .order("name")
            .execute()
        )
        return resp.data or []

    def create_category_template(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._insert_category(None, name, description)

    def create_property_category(self, property_id: str, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._insert_category(property_id, name, description)

    def _insert_category(self, property_id: Optional[str], name: str, description: Optional[str]) -> Dict[str, Any]:
        if not (name or "").strip():
            raise ValidationError("Category name is required")
        resp = (
            self._table(app_config.expense_categories_table)
            .insert({
                "property_id": property_id,
                "name": name.strip(),
                "description": description,
                "is_active": True,
            })
            .execute()
        )
        return (resp.data or [None])[0]

    def update_category(self, category_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: updates[k] for k in ("name", "description", "is_active") if k in updates}
        resp = (
            self._table(app_config.expense_categories_table)
            .update(payload)
            .eq("id", category_id)
            .execute()
        )
        rows = resp.data or []
        if not rows:
            raise NotFoundError(f"Category {category_id} not found")
        return rows[0]

    def delete_category(self, category_id: str):
        self._table(app_config.expense_categories_table).delete().eq("id", category_id).execute()

    def count_expenses_for_category(self, category_id: str) -> int:
        resp = (
            self._table(app_config.expenses_table)
            .select("id", count="exact")
            .eq("category_id", category_id)
            .execute()
        )
        return resp.count or 0

    # Expenses
    def list_expenses(
        self,
        property_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        to_exclusive: Optional[str] = None,
        category_id: Optional[str] = None,
        approval: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = self._table(app_config.expenses_table).select("*").eq("property_id", property_id)
        if date_from:
            query = query.gte("expense_date", date_from)
        if to_exclusive:
            query = query.lt("expense_date", to_exclusive)
        elif date_to:
            query = query.lte("expense_date", date_to)
        if category_id:
            query = query.eq("category_id", category_id)
        if approval:
            query = query.eq("approval_status", approval)
        if vendor:
            query = query.ilike("vendor", f"%{vendor}%")
        resp = query.order("expense_date", desc=True).execute()
        return resp.data or []

    def list_expenses_for_property_view(
        self,
        property_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        approval: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Expenses as seen by one property: its own expenses plus expenses of
        other properties shared with it, each with ``amount`` replaced by the
        property's share.
        """
        own = self.list_expenses(property_id, date_from, date_to, approval=approval)

        share_rows = (
            self._table(app_config.expense_shares_table)
            .select("expense_id")
            .eq("property_id", property_id)
            .execute()
        ).data or []
        own_ids = {e["id"] for e in own}
        shared_ids = [r["expense_id"] for r in share_rows if r.get("expense_id") not in own_ids]

        shared: List[Dict[str, Any]] = []
        if shared_ids:
            query = self._table(app_config.expenses_table).select("*").in_("id", shared_ids)
            if date_from:
                query = query.gte("expense_date", date_from)
            if date_to:
                query = query.lte("expense_date", date_to)
            if approval:
                query = query.eq("approval_status", approval)
            shared = query.execute().data or []

        expenses = own + shared
        shares_by_expense = self._shares_for([e["id"] for e in expenses])

        result = []
        for expense in expenses:
            shares = shares_by_expense.get(expense["id"], [])
            amount = share_contribution(expense, shares, property_id)
            if shares and amount <= 0:
                continue
            result.append({**expense, "amount": amount, "original_amount": _number(expense.get("amount"))})
        result.sort(key=lambda e: e.get("expense_date") or "", reverse=True)
        return result

    def get_expense(self, expense_id: str) -> Dict[str, Any]:
        rows = (
            self._table(app_config.expenses_table).select("*").eq("id", expense_id).limit(1).execute()
        ).data or []
        if not rows:
            raise NotFoundError(f"Expense {expense_id} not found")
        return rows[0]

    def create_expense(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("property_id"):
            raise ValidationError("property_id is required")
        payload = {
            "property_id": data["property_id"],
            "category_id": data.get("category_id") or None,
            "expense_date": iso(data["expense_date"]),
            "amount": data.get("amount"),
            "currency": data.get("currency") or app_config.default_currency,
            "payment_method": data.get("payment_method") or None,
            "vendor": data.get("vendor") or None,
            "notes": data.get("notes") or None,
            "receipt_path": data.get("receipt_path") or None,
            "approval_status": data.get("approval_status") or "pending",
            "approved_by": data.get("approved_by") or None,
            "created_by": data.get("created_by") or None,
        }
        created = (self._table(app_config.expenses_table).insert(payload).execute()).data[0]
        self.logger.info(
            "Expense created",
            expense_id=created.get("id"),
            property_id=payload["property_id"],
            amount=payload["amount"],
        )
        return created

    def update_expense(self, expense_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply updates; editing a substantive field of an approved expense sends
        it back to ``pending`` unless the update sets the approval status itself.
        """
        current = self.get_expense(expense_id)

        payload = {k: updates[k] for k in SUBSTANTIVE_FIELDS + APPROVAL_FIELDS if k in updates}
        substantive = any(k in updates for k in SUBSTANTIVE_FIELDS)
        if current.get("approval_status") == "approved" and substantive and "approval_status" not in updates:
            payload.update({
                "approval_status": "pending",
                "approved_by": None,
                "approval_notes": None,
                "approved_at": None,
            })
            self.logger.info("Approved expense edited; approval reset", expense_id=expense_id)

        resp = self._table(app_config.expenses_table).update(payload).eq("id", expense_id).execute()
        return (resp.data or [{**current, **payload}])[0]

    def delete_expense(self, expense_id: str):
        self._table(app_config.expenses_table).delete().eq("id", expense_id).execute()
        self.logger.info("Expense deleted", expense_id=expense_id)

    def set_approval(
        self,
        expense_id: str,
        status: str,
        approved_by: str,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        if status not in ("approved", "rejected"):
            raise ValidationError(f"Invalid approval status: {status}")
        resp = (
            self._table(app_config.expenses_table)
            .update({
                "approval_status": status,
                "approved_by": approved_by,
                "approval_notes": notes,
                "approved_at": _now(),
            })
            .eq("id", expense_id)
            .execute()
        )
        rows = resp.data or []
        if not rows:
            raise NotFoundError(f"Expense {expense_id} not found")
        expense = rows[0]

        vendor = f" • {expense['vendor']}" if expense.get("vendor") else ""
        self.logger.info(
            f"Expense {status}",
            expense_id=expense_id,
            property_id=expense.get("property_id"),
            approved_by=approved_by,
            message=(
                f"{expense.get('expense_date')} • ₹{_number(expense.get('amount')):.2f} "
                f"{expense.get('currency') or app_config.default_currency}{vendor}"
            ),
        )
        return expense

    # Line items
    def save_line_items(self, expense_id: str, items: List[Dict[str, Any]]):
        self._table(app_config.expense_line_items_table).delete().eq("expense_id", expense_id).execute()
        if not items:
            return
        rows = []
        for item in items:
            quantity = item.get("quantity") if item.get("quantity") is not None else 1
            unit_amount = item.get("unit_amount") if item.get("unit_amount") is not None else 0
            line_total = item.get("line_total")
            if not isinstance(line_total, (int, float)):
                line_total = quantity * unit_amount
            rows.append({
                "expense_id": expense_id,
                "description": item.get("description"),
                "quantity": quantity,
                "unit_amount": unit_amount,
                "tax_amount": item.get("tax_amount"),
                "line_total": line_total,
            })
        self._table(app_config.expense_line_items_table).insert(rows).execute()

    def get_line_items(self, expense_id: str) -> List[Dict[str, Any]]:
        resp = (
            self._table(app_config.expense_line_items_table)
            .select("description,quantity,unit_amount,tax_amount,line_total")
            .eq("expense_id", expense_id)
            .order("created_at")
            .execute()
        )
        return resp.data or []

    def replace_line_items(self, expense_id: str, items: List[Dict[str, Any]]):
        self.save_line_items(expense_id, items)

    # Budgets
    def get_budgets(
        self,
        property_id: str,
        from_month: Optional[str] = None,
        to_month: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = self._table(app_config.expense_budgets_table).select("*").eq("property_id", property_id)
        if from_month:
            query = query.gte("month", from_month)
        if to_month:
            query = query.lte("month", to_month)
        return query.order("month").execute().data or []

    def upsert_budget(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "property_id": data["property_id"],
            "category_id": data["category_id"],
            "month": iso(data["month"]),
            "budget_amount": data["budget_amount"],
            "currency": data.get("currency") or app_config.default_currency,
            "notes": data.get("notes"),
        }
        resp = (
            self._table(app_config.expense_budgets_table)
            .upsert(payload, on_conflict="property_id,category_id,month")
            .execute()
        )
        return (resp.data or [payload])[0]

    def delete_budget(self, budget_id: str):
        self._table(app_config.expense_budgets_table).delete().eq("id", budget_id).execute()

    # Shares
    def _shares_for(self, expense_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        if not expense_ids:
            return {}
        rows = (
            self._table(app_config.expense_shares_table)
            .select("expense_id,property_id,share_percent,share_amount")
            .in_("expense_id", expense_ids)
            .execute()
        ).data or []
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["expense_id"], []).append(row)
        return grouped

    def get_expense_shares(self, expense_id: str) -> List[Dict[str, Any]]:
        rows = (
            self._table(app_config.expense_shares_table)
            .select("property_id,share_percent,share_amount")
            .eq("expense_id", expense_id)
            .execute()
        ).data or []
        return [
            {
                "property_id": r["property_id"],
                "share_percent": float(r["share_percent"]) if r.get("share_percent") is not None else None,
                "share_amount": float(r["share_amount"]) if r.get("share_amount") is not None else None,
            }
            for r in rows
        ]

    def save_expense_shares(self, expense_id: str, shares: List[Dict[str, Any]]):
        """Replace the expense's shares; zero shares are kept, negative ones dropped."""
        self._table(app_config.expense_shares_table).delete().eq("expense_id", expense_id).execute()
        valid = [
            s for s in shares
            if (s.get("share_percent") is not None and s["share_percent"] >= 0)
            or (s.get("share_amount") is not None and s["share_amount"] >= 0)
        ]
        if not valid:
            return
        self._table(app_config.expense_shares_table).insert([
            {
                "expense_id": expense_id,
                "property_id": s["property_id"],
                "share_percent": s.get("share_percent"),
                "share_amount": s.get("share_amount"),
            }
            for s in valid
        ]).execute()

    # Reporting
    def get_monthly_report(self, property_id: str, month: str) -> Dict[str, Any]:
        """Category totals for ``YYYY-MM`` with shares applied, against that month's budgets."""
        start, end = month_bounds(month_start_from_key(month))
        expenses = self.list_expenses(property_id, iso(start), iso(end))
        shares_by_expense = self._shares_for([e["id"] for e in expenses])

        totals: Dict[Optional[str], float] = {}
        for expense in expenses:
            contribution = share_contribution(expense, shares_by_expense.get(expense["id"], []), property_id)
            key = expense.get("category_id") or None
            totals[key] = totals.get(key, 0) + contribution

        budgets = self.get_budgets(property_id, iso(start), iso(start))
        budget_by_category = {b["category_id"]: _number(b.get("budget_amount")) for b in budgets}

        rows = []
        total_budget = 0.0
        for category_id, total in totals.items():
            budget_amount = budget_by_category.get(category_id) if category_id else None
            if budget_amount:
                total_budget += budget_amount
            rows.append({
                "category_id": category_id,
                "category_name": "",
                "total": total,
                "budget_amount": budget_amount,
            })

        return {
            "month": month,
            "totals_by_category": rows,
            "total_expenses": sum(totals.values()),
            "total_budget": total_budget,
        }

    def get_detailed_analytics(self, property_id: Optional[str], start: str, end: str) -> Dict[str, Any]:
        """KPIs, breakdowns and six-month trends over approved expenses."""
        if not property_id or not start or not end:
            return empty_detailed_analytics()
        start, end = iso(start), iso(end)

        expenses = self.list_expenses_for_property_view(property_id, start, end, approval="approved")
        categories = self.list_available_categories(property_id)
        budgets = self.get_budgets(
            property_id, iso(month_bounds(start)[0]), iso(month_bounds(end)[1])
        )
        return detailed_expense_analytics(
            expenses, categories, budgets, start, end, trends=self.get_expense_trends(property_id)
        )

    def get_expense_trends(self, property_id: str, months: int = TREND_MONTHS, today=None) -> List[Dict[str, Any]]:
        today = parse_date(today) if today else datetime.now(timezone.utc).date()
        trends = []
        for offset in range(months - 1, -1, -1):
            month_start, month_end = month_bounds(add_months(today.replace(day=1), -offset))
            expenses = self.list_expenses_for_property_view(
                property_id, iso(month_start), iso(month_end), approval="approved"
            )
            budget_rows = (
                self._table(app_config.expense_budgets_table)
                .select("budget_amount")
                .eq("property_id", property_id)
                .eq("month", iso(month_start))
                .execute()
            ).data or []
            budget = sum(_number(b.get("budget_amount")) for b in budget_rows)
            trends.append({
                "month": month_start.strftime("%b %Y"),
                "total_expenses": sum(_number(e.get("amount")) for e in expenses),
                "budget": budget if budget > 0 else None,
            })
        return trends
