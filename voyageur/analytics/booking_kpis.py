"""
Booking KPIs: occupancy, ADR, RevPAR, cancellations and guest metrics.
"""
from typing import Any, Dict, List, Optional

from ..utils.dates import parse_date, period_days

CONFIRMED_STATUSES = {"confirmed", "checked-in", "checked_in", "checked-out", "checked_out"}


def empty_booking_kpis() -> Dict[str, Any]:
    return {
        "total_revenue": 0,
        "occupancy_rate": 0,
        "adr": 0,
        "revpar": 0,
        "total_room_nights_sold": 0,
        "total_room_nights_available": 0,
        "booking_count": 0,
        "source_distribution": [],
        "cancellation_rate": 0,
        "booking_conversion_rate": None,
        "cancelled_booking_count": 0,
        "total_bookings_all_statuses": 0,
        "confirmed_booking_count": 0,
        "pending_booking_count": 0,
        "avg_length_of_stay": 0,
        "total_nights_booked": 0,
        "unique_guests_count": 0,
        "repeat_guests_unique_count": 0,
        "repeat_guest_rate": 0,
    }


def nights_within_period(check_in, check_out, period_start, period_end) -> int:
    """Nights from check-in (inclusive) to check-out (exclusive), clipped to the period."""
    ci = parse_date(check_in)
    co = parse_date(check_out)
    if ci is None or co is None:
        return 0
    stay_start = max(ci, parse_date(period_start))
    stay_end = min(co, parse_date(period_end))
    return max(0, (stay_end - stay_start).days)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def guest_key(booking: Dict[str, Any]) -> str:
    """Identify a guest by profile id, then email, then phone, then name."""
    return (
        booking.get("guest_profile_id")
        or _norm(booking.get("contact_email"))
        or _norm(booking.get("guest_email"))
        or (booking.get("contact_phone") or "")
        or _norm(booking.get("guest_name"))
    )


def compute_booking_kpis(
    bookings: List[Dict[str, Any]],
    start,
    end,
    total_rooms: int = 0,
) -> Dict[str, Any]:
    """
    Compute booking KPIs for a period from booking rows.

    ``bookings`` includes cancelled rows; they only count towards the
    cancellation and conversion metrics.
    """
    active = [b for b in bookings if not b.get("cancelled")]
    days = period_days(start, end)

    total_revenue = sum(float(b.get("total_amount") or 0) for b in active)
    booking_count = len(active)

    per_booking_nights = [
        nights_within_period(b.get("check_in"), b.get("check_out"), start, end) for b in active
    ]
    room_nights_sold = sum(
        (b.get("number_of_rooms") or 1) * nights for b, nights in zip(active, per_booking_nights)
    )
    room_nights_available = total_rooms * days if total_rooms and total_rooms > 0 else 0

    occupancy_rate = (room_nights_sold / room_nights_available) * 100 if room_nights_available > 0 else 0
    adr = total_revenue / room_nights_sold if room_nights_sold > 0 else 0
    revpar = total_revenue / room_nights_available if room_nights_available > 0 else 0

    source_counts: Dict[str, int] = {}
    for b in active:
        key = str(b.get("source") or "Unknown")
        source_counts[key] = source_counts.get(key, 0) + 1
    source_distribution = [
        {
            "name": name,
            "count": count,
            "value": (count / booking_count) * 100 if booking_count > 0 else 0,
        }
        for name, count in source_counts.items()
    ]

    total_all = len(bookings)
    cancelled_count = sum(1 for b in bookings if b.get("cancelled"))
    cancellation_rate = (cancelled_count / total_all) * 100 if total_all > 0 else 0

    confirmed_count = sum(1 for b in bookings if b.get("status") in CONFIRMED_STATUSES)
    pending_count = sum(1 for b in bookings if b.get("status") == "pending")
    conversion_den = confirmed_count + pending_count
    conversion_rate = (confirmed_count / conversion_den) * 100 if conversion_den > 0 else None

    total_nights = sum(per_booking_nights)
    with_nights = sum(1 for n in per_booking_nights if n > 0) or len(active)
    alos = total_nights / with_nights if with_nights > 0 else 0

    guest_counts: Dict[str, int] = {}
    for b in active:
        key = guest_key(b)
        if not key:
            continue
        guest_counts[key] = guest_counts.get(key, 0) + 1
    unique_guests = len(guest_counts)
    repeat_guests = sum(1 for c in guest_counts.values() if c > 1)
    repeat_rate = (repeat_guests / unique_guests) * 100 if unique_guests > 0 else 0

    return {
        "total_revenue": total_revenue,
        "occupancy_rate": occupancy_rate,
        "adr": adr,
        "revpar": revpar,
        "total_room_nights_sold": room_nights_sold,
        "total_room_nights_available": room_nights_available,
        "booking_count": booking_count,
        "source_distribution": source_distribution,
        "cancellation_rate": cancellation_rate,
        "booking_conversion_rate": conversion_rate,
        "cancelled_booking_count": cancelled_count,
        "total_bookings_all_statuses": total_all,
        "confirmed_booking_count": confirmed_count,
        "pending_booking_count": pending_count,
        "avg_length_of_stay": alos,
        "total_nights_booked": total_nights,
        "unique_guests_count": unique_guests,
        "repeat_guests_unique_count": repeat_guests,
        "repeat_guest_rate": repeat_rate,
    }
