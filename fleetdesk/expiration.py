"""
Expiration predicate for unpaid reservations

Only statuses with an auto-cancel timer can expire. The deadline is the
explicit auto_cancel_at when present, otherwise created_at + GRACE_PERIOD.
A reservation expires strictly after the deadline: at the deadline itself it
is still alive.
"""
from datetime import datetime, timedelta
from typing import Optional

import structlog

from .models import PaymentStatus, Reservation, TimeRemaining, ensure_utc
from .states import StatusLike, get_state_config
from .utils import utcnow

logger = structlog.get_logger(__name__)

GRACE_PERIOD = timedelta(hours=2)
URGENT_THRESHOLD = timedelta(minutes=30)


def compute_deadline(created_at: datetime, auto_cancel_at: Optional[datetime] = None) -> datetime:
    """Explicit deadline wins over the derived created_at + 2h"""
    if auto_cancel_at is not None:
        deadline = ensure_utc(auto_cancel_at)
        created = ensure_utc(created_at)
        if deadline < created:
            # Honored as written; ReservationCreate refuses to store these
            logger.warning(
                "inverted_auto_cancel_deadline",
                created_at=created.isoformat(),
                auto_cancel_at=deadline.isoformat()
            )
        return deadline
    return ensure_utc(created_at) + GRACE_PERIOD


def should_expire(
    status: StatusLike,
    created_at: datetime,
    auto_cancel_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> bool:
    if not get_state_config(status).has_auto_cancel_timer:
        return False

    current = ensure_utc(now) if now is not None else utcnow()
    return current > compute_deadline(created_at, auto_cancel_at)


def time_until_expiration(
    status: StatusLike,
    created_at: datetime,
    auto_cancel_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> Optional[TimeRemaining]:
    """
    Countdown for UI display

    Returns None for statuses without a timer.
    """
    if not get_state_config(status).has_auto_cancel_timer:
        return None

    current = ensure_utc(now) if now is not None else utcnow()
    deadline = compute_deadline(created_at, auto_cancel_at)
    remaining = deadline - current

    if remaining <= timedelta(0):
        return TimeRemaining(hours=0, minutes=0, is_expired=True, is_urgent=True, deadline=deadline)

    total_minutes = int(remaining.total_seconds() // 60)
    return TimeRemaining(
        hours=total_minutes // 60,
        minutes=total_minutes % 60,
        is_expired=False,
        is_urgent=remaining < URGENT_THRESHOLD,
        deadline=deadline
    )


def reservation_should_expire(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    """Predicate plus the payment guard: a paid reservation never expires"""
    if reservation.payment_status == PaymentStatus.PAID:
        return False
    return should_expire(reservation.status, reservation.created_at, reservation.auto_cancel_at, now)


def reservation_time_remaining(
    reservation: Reservation,
    now: Optional[datetime] = None
) -> Optional[TimeRemaining]:
    if reservation.payment_status == PaymentStatus.PAID:
        return None
    return time_until_expiration(reservation.status, reservation.created_at, reservation.auto_cancel_at, now)
