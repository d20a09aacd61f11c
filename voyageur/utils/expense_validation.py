"""
Expense form validation: required fields, line items, property shares and receipts.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .dates import add_days, add_years, parse_date

LARGE_AMOUNT = 1_000_000
MAX_RECEIPT_BYTES = 10 * 1024 * 1024
LARGE_RECEIPT_BYTES = 5 * 1024 * 1024
RECEIPT_TYPES = ("image/jpeg", "image/jpg", "image/png", "application/pdf")
TOLERANCE = 0.01


@dataclass
class ValidationIssue:
    field: str
    message: str
    type: str = "error"

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "type": self.type}


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str):
        self.errors.append(ValidationIssue(field_name, message, "error"))

    def warning(self, field_name: str, message: str):
        self.warnings.append(ValidationIssue(field_name, message, "warning"))

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def summary(self) -> str:
        if self.is_valid and not self.warnings:
            return "All fields are valid"
        if not self.is_valid:
            n = len(self.errors)
            return f"{n} error{'s' if n > 1 else ''} found"
        n = len(self.warnings)
        return f"{n} warning{'s' if n > 1 else ''} found"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


class ExpenseValidator:
    """Validation rules applied before an expense is saved."""

    @staticmethod
    def validate_form_data(form: Dict[str, Any], today: Optional[date] = None) -> ValidationResult:
        result = ValidationResult()
        today = today or date.today()
        amount = form.get("amount") or 0

        if _blank(form.get("expense_date")):
            result.error("expense_date", "Expense date is required")
        if amount <= 0:
            result.error("amount", "Amount must be greater than ₹0")
        if amount > LARGE_AMOUNT:
            result.warning("amount", "Large expense amount - please verify")

        if not _blank(form.get("expense_date")):
            expense_date = parse_date(form["expense_date"])
            if expense_date > add_days(today, 30):
                result.error("expense_date", "Expense date cannot be more than 30 days in the future")
            if expense_date < add_years(today, -2):
                result.warning("expense_date", "Expense date is more than 2 years old")

        if not form.get("category_id"):
            result.warning("category_id", "Consider selecting a category for better reporting")
        if _blank(form.get("vendor")):
            result.warning("vendor", "Vendor information helps with expense tracking")
        if _blank(form.get("payment_method")):
            result.warning("payment_method", "Payment method helps with financial reconciliation")
        return result

    @staticmethod
    def validate_line_items(line_items: List[Dict[str, Any]], total_amount: float) -> ValidationResult:
        """Line totals must add up to the expense amount; each item is checked on its own."""
        result = ValidationResult()
        if not line_items:
            return result

        items_total = sum(
            item["line_total"] for item in line_items
            if isinstance(item.get("line_total"), (int, float))
        )
        if abs(items_total - total_amount) > TOLERANCE:
            result.error(
                "line_items",
                f"Item breakdown total (₹{items_total:.2f}) must equal expense amount (₹{total_amount:.2f})",
            )

        for index, item in enumerate(line_items):
            n = index + 1
            quantity = item.get("quantity")
            unit_amount = item.get("unit_amount")
            tax_amount = item.get("tax_amount")
            line_total = item.get("line_total")

            if _blank(item.get("description")):
                result.error(f"line_item_{index}_description", f"Item {n}: Description is required")
            if quantity is not None and quantity <= 0:
                result.error(f"line_item_{index}_quantity", f"Item {n}: Quantity must be greater than 0")
            if unit_amount is not None and unit_amount < 0:
                result.error(f"line_item_{index}_unit_amount", f"Item {n}: Unit amount cannot be negative")
            if tax_amount is not None and tax_amount < 0:
                result.error(f"line_item_{index}_tax_amount", f"Item {n}: Tax amount cannot be negative")
            if line_total is not None and line_total <= 0:
                result.error(f"line_item_{index}_line_total", f"Item {n}: Total cost must be greater than 0")

            if quantity and unit_amount and line_total:
                calculated = quantity * unit_amount + (tax_amount or 0)
                if abs(calculated - line_total) > TOLERANCE:
                    result.warning(
                        f"line_item_{index}_calculation",
                        f"Item {n}: Calculated total (₹{calculated:.2f}) doesn't match the entered total",
                    )
        return result

    @staticmethod
    def validate_expense_shares(
        shares: List[Dict[str, Any]],
        total_amount: float,
        mode: str = "percentage",
    ) -> ValidationResult:
        """
        Shares split an expense across properties, either by percentage
        (must total 100) or by amount (must total the expense amount).
        Zero shares are allowed.
        """
        result = ValidationResult()
        if not shares:
            return result

        if mode == "percentage":
            total_percent = sum(s.get("share_percent") or 0 for s in shares)
            if abs(total_percent - 100) > TOLERANCE:
                result.error("shares_percentage", f"Total percentage ({total_percent:.1f}%) must equal 100%")
            for index, share in enumerate(shares):
                percent = share.get("share_percent")
                if percent is not None and percent < 0:
                    result.error(f"share_{index}_percent", f"Property {index + 1}: Share percentage cannot be negative")
                if percent and percent > 100:
                    result.error(f"share_{index}_percent", f"Property {index + 1}: Share percentage cannot exceed 100%")
        else:
            shares_total = sum(s.get("share_amount") or 0 for s in shares)
            if abs(shares_total - total_amount) > TOLERANCE:
                result.error(
                    "shares_amount",
                    f"Total share amount (₹{shares_total:.2f}) must equal expense amount (₹{total_amount:.2f})",
                )
            for index, share in enumerate(shares):
                amount = share.get("share_amount")
                if amount is not None and amount < 0:
                    result.error(f"share_{index}_amount", f"Property {index + 1}: Share amount cannot be negative")
                if amount and amount > total_amount:
                    result.error(
                        f"share_{index}_amount",
                        f"Property {index + 1}: Share amount cannot exceed total expense amount",
                    )
        return result

    @staticmethod
    def validate_receipt_file(content_type: Optional[str], size: Optional[int]) -> ValidationResult:
        result = ValidationResult()
        if content_type is None and size is None:
            result.warning("receipt_file", "Adding a receipt helps with expense verification")
            return result

        size = size or 0
        if size > MAX_RECEIPT_BYTES:
            result.error("receipt_file", "Receipt file size must be less than 10MB")
        if content_type not in RECEIPT_TYPES:
            result.error("receipt_file", "Receipt must be a JPG, PNG, or PDF file")
        if size > LARGE_RECEIPT_BYTES:
            result.warning("receipt_file", "Large file size may slow down upload and processing")
        return result

    @classmethod
    def validate_complete_expense(
        cls,
        form: Dict[str, Any],
        line_items: Optional[List[Dict[str, Any]]] = None,
        shares: Optional[List[Dict[str, Any]]] = None,
        share_mode: str = "percentage",
        receipt_content_type: Optional[str] = None,
        receipt_size: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        amount = form.get("amount") or 0
        result = cls.validate_form_data(form, today)
        result.merge(cls.validate_line_items(line_items or [], amount))
        result.merge(cls.validate_expense_shares(shares or [], amount, share_mode))
        result.merge(cls.validate_receipt_file(receipt_content_type, receipt_size))
        return result
