"""
Finance and calendar derivations over a list of reservations
"""
from decimal import Decimal
from typing import Iterable, List

from .models import Reservation, ReservationSummary
from .states import includes_in_revenue, occupies_vehicle


def revenue_total(reservations: Iterable[Reservation]) -> Decimal:
    """Sum of net amounts for reservations that count as revenue"""
    return sum(
        (r.net_amount for r in reservations if includes_in_revenue(r.status, r.cancellation_type)),
        Decimal("0")
    )


def occupied_vehicle_ids(reservations: Iterable[Reservation]) -> List[str]:
    """Vehicles currently held by at least one reservation"""
    return sorted({
        r.vehicle_id for r in reservations
        if r.vehicle_id and occupies_vehicle(r.status)
    })


def summarize(reservations: List[Reservation]) -> ReservationSummary:
    return ReservationSummary(
        reservation_count=len(reservations),
        revenue_total=revenue_total(reservations),
        occupied_vehicle_ids=occupied_vehicle_ids(reservations),
    )
