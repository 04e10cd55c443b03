"""
Reservation state registry

One configuration table maps every canonical status to its display metadata
and behavioral flags (vehicle occupancy, revenue inclusion, auto-cancel timer).
Calendar, finance and expiration code all read from here.

Lookup never raises: unknown strings go through the legacy table and then
fall back to AWAITING_PAYMENT with a warning.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Union

import structlog

from .exceptions import StateTransitionError
from .legacy_states import (
    LEGACY_STATUS_MAP,
    clean_status,
    legacy_cancellation_type,
    normalize_legacy_status,
)
from .models import (
    CalendarStatus,
    CancellationType,
    PaymentStatus,
    ReservationStatus,
    parse_cancellation_type,
)

logger = structlog.get_logger(__name__)

StatusLike = Union[ReservationStatus, str, None]

DEFAULT_STATUS = ReservationStatus.AWAITING_PAYMENT

RESERVATION_VALUES = frozenset(status.value for status in ReservationStatus)


@dataclass(frozen=True)
class StateConfig:
    """Behavior and display configuration for one reservation status"""
    status: ReservationStatus
    label: str
    description: str
    badge_style: str       # list / badge rendering
    calendar_style: str    # calendar cell rendering
    color_hex: str
    is_active: bool
    include_in_revenue: bool
    occupies_vehicle: bool
    has_auto_cancel_timer: bool
    sort_priority: int     # lower sorts first; terminal statuses last

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "label": self.label,
            "description": self.description,
            "badge_style": self.badge_style,
            "calendar_style": self.calendar_style,
            "color_hex": self.color_hex,
            "is_active": self.is_active,
            "include_in_revenue": self.include_in_revenue,
            "occupies_vehicle": self.occupies_vehicle,
            "has_auto_cancel_timer": self.has_auto_cancel_timer,
            "sort_priority": self.sort_priority,
        }


RESERVATION_STATES: Dict[ReservationStatus, StateConfig] = {
    # Pre-payment: hold the vehicle, expire after the grace period
    ReservationStatus.PENDING: StateConfig(
        status=ReservationStatus.PENDING,
        label="Pending (2h)",
        description="New reservation, payment not yet requested",
        badge_style="bg-lime-300 text-black",
        calendar_style="bg-lime-300 hover:bg-lime-400",
        color_hex="#bef264",
        is_active=True,
        include_in_revenue=False,
        occupies_vehicle=True,
        has_auto_cancel_timer=True,
        sort_priority=5,
    ),
    ReservationStatus.AWAITING_PAYMENT: StateConfig(
        status=ReservationStatus.AWAITING_PAYMENT,
        label="Reserved, unpaid (2h)",
        description="Cancelled automatically if unpaid after 2 hours",
        badge_style="bg-lime-400 text-black hover:bg-lime-500",
        calendar_style="bg-lime-400 hover:bg-lime-500",
        color_hex="#a3e635",
        is_active=True,
        include_in_revenue=False,
        occupies_vehicle=True,
        has_auto_cancel_timer=True,
        sort_priority=4,
    ),

    # Paid: count as revenue, no timer
    ReservationStatus.PAID_NO_CONTRACT: StateConfig(
        status=ReservationStatus.PAID_NO_CONTRACT,
        label="Paid, no contract",
        description="Payment received, contract still to be generated",
        badge_style="bg-green-500 text-white hover:bg-green-600",
        calendar_style="bg-green-400 hover:bg-green-500",
        color_hex="#22c55e",
        is_active=True,
        include_in_revenue=True,
        occupies_vehicle=True,
        has_auto_cancel_timer=False,
        sort_priority=3,
    ),
    ReservationStatus.CONTRACT_GENERATED: StateConfig(
        status=ReservationStatus.CONTRACT_GENERATED,
        label="Contract generated",
        description="Contract ready, waiting for vehicle hand-over",
        badge_style="bg-emerald-600 text-white hover:bg-emerald-700",
        calendar_style="bg-emerald-500 hover:bg-emerald-600",
        color_hex="#059669",
        is_active=True,
        include_in_revenue=True,
        occupies_vehicle=True,
        has_auto_cancel_timer=False,
        sort_priority=2,
    ),
    ReservationStatus.CONFIRMED: StateConfig(
        status=ReservationStatus.CONFIRMED,
        label="Confirmed (rented)",
        description="Vehicle currently rented under a signed contract",
        badge_style="bg-red-500 text-white hover:bg-red-600",
        calendar_style="bg-red-500 hover:bg-red-600",
        color_hex="#ef4444",
        is_active=True,
        include_in_revenue=True,
        occupies_vehicle=True,
        has_auto_cancel_timer=False,
        sort_priority=1,
    ),

    # Terminal: retained as history, never occupy the vehicle
    ReservationStatus.COMPLETED: StateConfig(
        status=ReservationStatus.COMPLETED,
        label="Completed",
        description="Rental finished, vehicle returned",
        badge_style="bg-gray-500 text-white",
        calendar_style="bg-gray-300",
        color_hex="#6b7280",
        is_active=False,
        include_in_revenue=True,
        occupies_vehicle=False,
        has_auto_cancel_timer=False,
        sort_priority=10,
    ),
    ReservationStatus.CANCELLED: StateConfig(
        status=ReservationStatus.CANCELLED,
        label="Cancelled",
        description="Cancelled manually; revenue depends on the refund decision",
        badge_style="bg-red-700 text-white",
        calendar_style="bg-red-200",
        color_hex="#b91c1c",
        is_active=False,
        include_in_revenue=False,
        occupies_vehicle=False,
        has_auto_cancel_timer=False,
        sort_priority=11,
    ),
    ReservationStatus.EXPIRED: StateConfig(
        status=ReservationStatus.EXPIRED,
        label="Expired",
        description="Not paid within the grace period",
        badge_style="bg-gray-400 text-white line-through",
        calendar_style="bg-gray-200",
        color_hex="#9ca3af",
        is_active=False,
        include_in_revenue=False,
        occupies_vehicle=False,
        has_auto_cancel_timer=False,
        sort_priority=12,
    ),
}

TIMER_STATUSES: FrozenSet[ReservationStatus] = frozenset(
    status for status, config in RESERVATION_STATES.items() if config.has_auto_cancel_timer
)
OCCUPYING_STATUSES: FrozenSet[ReservationStatus] = frozenset(
    status for status, config in RESERVATION_STATES.items() if config.occupies_vehicle
)
TERMINAL_STATUSES: FrozenSet[ReservationStatus] = frozenset(
    status for status, config in RESERVATION_STATES.items() if not config.is_active
)

ALLOWED_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.AWAITING_PAYMENT,
        ReservationStatus.PAID_NO_CONTRACT,
        ReservationStatus.EXPIRED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.AWAITING_PAYMENT: frozenset({
        ReservationStatus.PAID_NO_CONTRACT,
        ReservationStatus.EXPIRED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.PAID_NO_CONTRACT: frozenset({
        ReservationStatus.CONTRACT_GENERATED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONTRACT_GENERATED: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.COMPLETED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.EXPIRED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


def resolve_status(status: StatusLike) -> ReservationStatus:
    """
    Resolve any stored status string to a canonical status

    Order: canonical name, legacy table, then DEFAULT_STATUS with a warning.
    """
    if isinstance(status, ReservationStatus):
        return status

    cleaned = clean_status(status)
    try:
        return ReservationStatus(cleaned)
    except ValueError:
        pass

    legacy = normalize_legacy_status(cleaned)
    if legacy is not None:
        return legacy

    logger.warning(
        "unknown_reservation_status",
        status=status,
        fallback=DEFAULT_STATUS.value
    )
    return DEFAULT_STATUS


def is_known_status(status: StatusLike) -> bool:
    """Whether a string names a canonical or legacy status (no fallback)"""
    if isinstance(status, ReservationStatus):
        return True
    cleaned = clean_status(status)
    return cleaned in RESERVATION_VALUES or normalize_legacy_status(cleaned) is not None


def get_state_config(status: StatusLike) -> StateConfig:
    return RESERVATION_STATES[resolve_status(status)]


def is_active(status: StatusLike) -> bool:
    return get_state_config(status).is_active


def occupies_vehicle(status: StatusLike) -> bool:
    return get_state_config(status).occupies_vehicle


def has_auto_cancel_timer(status: StatusLike) -> bool:
    return get_state_config(status).has_auto_cancel_timer


def is_cancellable(status: StatusLike) -> bool:
    return ReservationStatus.CANCELLED in ALLOWED_TRANSITIONS[resolve_status(status)]


def includes_in_revenue(
    status: StatusLike,
    cancellation_type: Union[CancellationType, str, None] = None
) -> bool:
    """
    Whether a reservation counts toward revenue

    Cancelled reservations count only when the money was kept
    (WITHOUT_REFUND). Legacy cancelled variants carry that tag in the
    status string itself.
    """
    config = get_state_config(status)
    if config.status != ReservationStatus.CANCELLED:
        return config.include_in_revenue

    tag = parse_cancellation_type(cancellation_type)
    if tag is None and isinstance(status, str):
        tag = legacy_cancellation_type(status)
    return tag == CancellationType.WITHOUT_REFUND


def get_calendar_status(
    status: StatusLike,
    payment_status: Union[PaymentStatus, str, None] = None
) -> CalendarStatus:
    """Calendar cell state for a reservation; non-occupying statuses leave the day free"""
    config = get_state_config(status)
    if not config.occupies_vehicle:
        return CalendarStatus.AVAILABLE

    if config.status in (ReservationStatus.CONFIRMED, ReservationStatus.CONTRACT_GENERATED):
        return CalendarStatus.RENTED

    if isinstance(payment_status, PaymentStatus):
        payment_status = payment_status.value
    paid = (payment_status or "").lower() == PaymentStatus.PAID.value
    if config.status == ReservationStatus.PAID_NO_CONTRACT or paid:
        return CalendarStatus.RESERVED_PAID

    return CalendarStatus.RESERVED_NO_PAYMENT


def validate_transition(current: StatusLike, requested: StatusLike) -> ReservationStatus:
    """
    Check a manual status change against the lifecycle graph

    Returns the canonical requested status.

    Raises:
        StateTransitionError: the edge does not exist
    """
    current_status = resolve_status(current)
    requested_status = resolve_status(requested)

    if requested_status not in ALLOWED_TRANSITIONS[current_status]:
        raise StateTransitionError(
            f"Cannot move reservation from {current_status.value} to {requested_status.value}",
            current_state=current_status.value,
            requested_state=requested_status.value
        )
    return requested_status


def sort_key(status: StatusLike) -> int:
    return get_state_config(status).sort_priority


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_reservations(reservations: Iterable[Any]) -> List[Any]:
    """Order by status priority, newest first within a status"""
    by_newest = sorted(
        reservations,
        key=lambda r: getattr(r, "created_at", None) or _EPOCH,
        reverse=True
    )
    return sorted(by_newest, key=lambda r: sort_key(r.status))


def stored_status_values(statuses: Iterable[ReservationStatus]) -> List[str]:
    """
    Every stored string that resolves to one of ``statuses``

    Queries against old rows must match legacy spellings as well as the
    canonical values.
    """
    wanted = set(statuses)
    values = {status.value for status in wanted}
    values.update(raw for raw, status in LEGACY_STATUS_MAP.items() if status in wanted)
    return sorted(values)
