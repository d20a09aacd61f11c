"""
Booking folio endpoints: charges, payments and the balance they add up to.
"""
from fastapi import APIRouter, Depends, Query
from ..models import DataResponse, ChargeRequest, ChargeUpdateRequest, PaymentRequest
from ..dependencies import get_booking_ledger_service
from ..services.booking_ledger_service import BookingLedgerService

router = APIRouter(prefix="/bookings", tags=["booking-ledger"])


@router.get("/{booking_id}/charges", response_model=DataResponse)
async def list_charges(
    booking_id: str,
    property_id: str = Query(...),
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    return DataResponse(success=True, message="Charges", data=ledger.list_charges(property_id, booking_id))


@router.post("/{booking_id}/charges", response_model=DataResponse, summary="Add a charge to a booking")
async def add_charge(
    booking_id: str,
    request: ChargeRequest,
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    body = request.model_dump(mode="json")
    charge = ledger.add_charge(
        body["property_id"],
        booking_id,
        body["charge_type"],
        body["quantity"],
        body["unit_amount"],
        description=body["description"],
        created_at=body["created_at"],
    )
    return DataResponse(success=True, message="Charge added", data=charge)


@router.patch("/{booking_id}/charges/{charge_id}", response_model=DataResponse)
async def update_charge(
    booking_id: str,
    charge_id: str,
    request: ChargeUpdateRequest,
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    updates = request.model_dump(exclude_unset=True, exclude={"property_id"})
    charge = ledger.update_charge(request.property_id, booking_id, charge_id, updates)
    return DataResponse(success=True, message="Charge updated", data=charge)


@router.delete("/{booking_id}/charges/{charge_id}", response_model=DataResponse, summary="Void a charge")
async def void_charge(
    booking_id: str,
    charge_id: str,
    property_id: str = Query(...),
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    voided = ledger.void_charge(property_id, booking_id, charge_id)
    return DataResponse(success=True, message="Charge voided", data=voided)


@router.get("/{booking_id}/payments", response_model=DataResponse)
async def list_payments(
    booking_id: str,
    property_id: str = Query(...),
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    return DataResponse(success=True, message="Payments", data=ledger.list_payments(property_id, booking_id))


@router.post("/{booking_id}/payments", response_model=DataResponse)
async def add_payment(
    booking_id: str,
    request: PaymentRequest,
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    payment = ledger.add_payment(
        request.property_id, booking_id, request.amount, request.method, request.reference_no
    )
    return DataResponse(success=True, message="Payment recorded", data=payment)


@router.post("/{booking_id}/refunds", response_model=DataResponse)
async def add_refund(
    booking_id: str,
    request: PaymentRequest,
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    refund = ledger.add_refund(request.property_id, booking_id, request.amount, request.method, request.reference_no)
    return DataResponse(success=True, message="Refund recorded", data=refund)


@router.delete("/{booking_id}/payments/{payment_id}", response_model=DataResponse, summary="Void a payment or refund")
async def void_payment(
    booking_id: str,
    payment_id: str,
    property_id: str = Query(...),
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    return DataResponse(
        success=True,
        message="Payment voided",
        data=ledger.void_payment(property_id, booking_id, payment_id),
    )


@router.get("/{booking_id}/financials", response_model=DataResponse, summary="Totals and balance due")
async def financials(
    booking_id: str,
    property_id: str = Query(...),
    ledger: BookingLedgerService = Depends(get_booking_ledger_service),
):
    return DataResponse(success=True, message="Financials", data=ledger.get_financials(property_id, booking_id))
