"""
Per-booking folio: charges, payments and the financial summary built from them.

Rows are never deleted; voiding sets ``is_voided`` and voided rows drop out of
every listing and total. Each write first checks that the booking belongs to
the given property.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.errors import NotFoundError, ValidationError
from ...utils.logger import get_logger
from config.settings import app_config

CHARGE_TYPES = ("room", "fnb", "misc", "discount", "tax", "service_fee")
PAYMENT_TYPES = ("payment", "refund", "adjustment")
# Charge types that add to the gross before discounts and taxes
BILLABLE_CHARGE_TYPES = ("room", "fnb", "misc", "service_fee")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(value, fallback):
    return fallback if value is None else value


def _amount(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def compute_line_total(quantity, unit_amount) -> float:
    """quantity x unit amount rounded to paise; 0 when either is not a finite number."""
    try:
        total = float(quantity) * float(unit_amount)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(total):
        return 0.0
    return round(total, 2)


def validate_charge_input(quantity, unit_amount) -> None:
    errors = []
    if not _amount(quantity) > 0:
        errors.append("quantity must be greater than 0")
    if unit_amount is None or _amount(unit_amount) < 0:
        errors.append("unit_amount must be 0 or more")
    if errors:
        raise ValidationError("Invalid charge", errors)


def financial_status(gross: float, balance_due: float, payments_total: float) -> str:
    if gross <= 0:
        return "no-charges"
    if balance_due <= 0:
        return "paid"
    if payments_total > 0:
        return "partial"
    return "unpaid"


def summarize_financials(
    booking: Dict[str, Any],
    charges: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Fold a booking's ledger rows into totals.

    The booking's own ``payment_amount`` (recorded before the ledger existed)
    counts as a payment. Voided rows are ignored.

    Args:
        booking: Booking row with ``id``, ``property_id`` and ``payment_amount``
        charges: ``booking_charges`` rows
        payments: ``booking_payments`` rows

    Returns:
        Totals, balance due and a paid/partial/unpaid/no-charges status
    """
    live_charges = [c for c in charges if not c.get("is_voided")]
    live_payments = [p for p in payments if not p.get("is_voided")]

    def charge_sum(types) -> float:
        return sum(_amount(c.get("amount")) for c in live_charges if c.get("charge_type") in types)

    charges_total = charge_sum(BILLABLE_CHARGE_TYPES)
    discounts_total = charge_sum(("discount",))
    taxes_total = charge_sum(("tax",))
    gross_total = charges_total - discounts_total + taxes_total

    payments_total = sum(
        _amount(p.get("amount")) for p in live_payments if p.get("payment_type") == "payment"
    ) + _amount(booking.get("payment_amount"))
    refunds_total = sum(_amount(p.get("amount")) for p in live_payments if p.get("payment_type") == "refund")
    balance_due = gross_total - payments_total + refunds_total

    activity = [row.get("created_at") for row in live_charges + live_payments if row.get("created_at")]
    return {
        "booking_id": booking.get("id"),
        "property_id": booking.get("property_id"),
        "charges_total": round(charges_total, 2),
        "discounts_total": round(discounts_total, 2),
        "taxes_total": round(taxes_total, 2),
        "gross_total": round(gross_total, 2),
        "payments_total": round(payments_total, 2),
        "refunds_total": round(refunds_total, 2),
        "balance_due": round(balance_due, 2),
        "status": financial_status(gross_total, balance_due, payments_total),
        "last_activity_at": max(activity) if activity else None,
    }


class BookingLedgerService:
    """Charges and payments recorded against a booking."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("booking_ledger_service")

    def _table(self, name: str):
        return self.supabase_client.ensure().table(name)

    def _booking(self, property_id: str, booking_id: str) -> Dict[str, Any]:
        rows = (
            self._table(app_config.bookings_table)
            .select("id, property_id, payment_amount")
            .eq("id", booking_id)
            .eq("property_id", property_id)
            .limit(1)
            .execute()
        ).data or []
        if not rows:
            raise NotFoundError(
                "Booking not found for given property",
                {"booking_id": booking_id, "property_id": property_id},
            )
        return rows[0]

    def _live_rows(self, table: str, property_id: str, booking_id: str) -> List[Dict[str, Any]]:
        return (
            self._table(table).select("*")
            .eq("property_id", property_id)
            .eq("booking_id", booking_id)
            .eq("is_voided", False)
            .order("created_at")
            .execute()
        ).data or []

    def _void(self, table: str, property_id: str, booking_id: str, row_id: str) -> Dict[str, Any]:
        self._booking(property_id, booking_id)
        rows = (
            self._table(table)
            .update({"is_voided": True, "updated_at": _now()})
            .eq("id", row_id)
            .eq("property_id", property_id)
            .eq("booking_id", booking_id)
            .execute()
        ).data or []
        if not rows:
            raise NotFoundError("Ledger entry not found", {"id": row_id, "booking_id": booking_id})
        self.logger.info("Ledger entry voided", table=table, id=row_id, booking_id=booking_id)
        return rows[0]

    # Charges

    def list_charges(self, property_id: str, booking_id: str) -> List[Dict[str, Any]]:
        return self._live_rows(app_config.booking_charges_table, property_id, booking_id)

    def add_charge(
        self,
        property_id: str,
        booking_id: str,
        charge_type: str,
        quantity,
        unit_amount,
        description: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a charge; ``created_at`` backdates it, e.g. for a meal served yesterday."""
        if charge_type not in CHARGE_TYPES:
            raise ValidationError("Invalid charge type", [f"charge_type must be one of {', '.join(CHARGE_TYPES)}"])
        self._booking(property_id, booking_id)
        validate_charge_input(quantity, unit_amount)

        payload = {
            "property_id": property_id,
            "booking_id": booking_id,
            "charge_type": charge_type,
            "description": description,
            "quantity": quantity,
            "unit_amount": unit_amount,
            "amount": compute_line_total(quantity, unit_amount),
            "is_voided": False,
        }
        if created_at:
            payload["created_at"] = created_at
        rows = self._table(app_config.booking_charges_table).insert(payload).execute().data or []
        self.logger.info(
            "Charge added",
            booking_id=booking_id,
            charge_type=charge_type,
            amount=payload["amount"],
        )
        return rows[0] if rows else payload

    def update_charge(
        self,
        property_id: str,
        booking_id: str,
        charge_id: str,
        updates: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Edit a charge's description, quantity or unit amount; the amount is recomputed."""
        self._booking(property_id, booking_id)
        current = (
            self._table(app_config.booking_charges_table).select("*")
            .eq("id", charge_id)
            .eq("property_id", property_id)
            .eq("booking_id", booking_id)
            .limit(1)
            .execute()
        ).data or []
        if not current:
            raise NotFoundError("Charge not found", {"id": charge_id, "booking_id": booking_id})

        payload: Dict[str, Any] = {"updated_at": _now()}
        if "description" in updates:
            payload["description"] = updates["description"]
        if updates.get("quantity") is not None or updates.get("unit_amount") is not None:
            quantity = _first(updates.get("quantity"), current[0].get("quantity"))
            unit_amount = _first(updates.get("unit_amount"), current[0].get("unit_amount"))
            validate_charge_input(quantity, unit_amount)
            payload.update({
                "quantity": quantity,
                "unit_amount": unit_amount,
                "amount": compute_line_total(quantity, unit_amount),
            })

        rows = (
            self._table(app_config.booking_charges_table)
            .update(payload)
            .eq("id", charge_id)
            .eq("property_id", property_id)
            .execute()
        ).data or []
        return rows[0] if rows else {**current[0], **payload}

    def void_charge(self, property_id: str, booking_id: str, charge_id: str) -> Dict[str, Any]:
        return self._void(app_config.booking_charges_table, property_id, booking_id, charge_id)

    # Payments

    def list_payments(self, property_id: str, booking_id: str) -> List[Dict[str, Any]]:
        return self._live_rows(app_config.booking_payments_table, property_id, booking_id)

    def add_payment(
        self,
        property_id: str,
        booking_id: str,
        amount,
        method: Optional[str] = None,
        reference_no: Optional[str] = None,
        payment_type: str = "payment",
    ) -> Dict[str, Any]:
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError("Invalid payment type", [f"payment_type must be one of {', '.join(PAYMENT_TYPES)}"])
        self._booking(property_id, booking_id)
        if not _amount(amount) > 0:
            raise ValidationError("Invalid payment", ["amount must be greater than 0"])

        payload = {
            "property_id": property_id,
            "booking_id": booking_id,
            "payment_type": payment_type,
            "method": method,
            "reference_no": reference_no,
            "amount": amount,
            "is_voided": False,
        }
        rows = self._table(app_config.booking_payments_table).insert(payload).execute().data or []
        self.logger.info("Payment recorded", booking_id=booking_id, payment_type=payment_type, amount=amount)
        return rows[0] if rows else payload

    def add_refund(
        self,
        property_id: str,
        booking_id: str,
        amount,
        method: Optional[str] = None,
        reference_no: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.add_payment(property_id, booking_id, amount, method, reference_no, payment_type="refund")

    def void_payment(self, property_id: str, booking_id: str, payment_id: str) -> Dict[str, Any]:
        return self._void(app_config.booking_payments_table, property_id, booking_id, payment_id)

    # Summary

    def get_financials(self, property_id: str, booking_id: str) -> Dict[str, Any]:
        booking = self._booking(property_id, booking_id)
        return summarize_financials(
            booking,
            self.list_charges(property_id, booking_id),
            self.list_payments(property_id, booking_id),
        )
