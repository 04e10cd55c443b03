"""
Reservations API router
Read views over the lifecycle registry plus validated status transitions
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
import structlog

from ..cache import CacheInvalidator, CacheManager
from ..dependencies import get_cache, get_cache_invalidator, get_store
from ..exceptions import ValidationError
from ..expiration import reservation_time_remaining
from ..metrics import track_transition, track_vehicle_release
from ..models import (
    CancellationType,
    Reservation,
    ReservationStatus,
    ReservationSummary,
    ReservationView,
    StatusTransitionRequest,
)
from ..reporting import summarize
from ..states import (
    RESERVATION_STATES,
    get_calendar_status,
    get_state_config,
    includes_in_revenue,
    is_known_status,
    occupies_vehicle,
    resolve_status,
    sort_reservations,
    stored_status_values,
    validate_transition,
)
from ..store import ReservationStore
from ..utils import utcnow

router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"])
logger = structlog.get_logger(__name__)


def build_view(reservation: Reservation) -> ReservationView:
    config = get_state_config(reservation.status)
    return ReservationView(
        reservation=reservation,
        status=config.status,
        label=config.label,
        color_hex=config.color_hex,
        badge_style=config.badge_style,
        calendar_status=get_calendar_status(reservation.status, reservation.payment_status),
        include_in_revenue=includes_in_revenue(reservation.status, reservation.cancellation_type),
        time_remaining=reservation_time_remaining(reservation),
    )


@router.get("/", response_model=List[ReservationView])
async def list_reservations(
    status_filter: Optional[str] = Query(None, alias="status", description="Canonical or legacy status"),
    store: ReservationStore = Depends(get_store),
    cache: Optional[CacheManager] = Depends(get_cache)
):
    """
    List reservations, most relevant first

    The status filter goes through the registry, so legacy names select the
    same rows as their canonical equivalent.
    """
    statuses = None
    if status_filter:
        if not is_known_status(status_filter):
            raise ValidationError("status", f"unknown reservation status '{status_filter}'")
        statuses = stored_status_values([resolve_status(status_filter)])

    # Rows are cached, views are not: countdowns are computed per request
    cache_key = CacheManager.make_key("reservations", "list", statuses)
    cached = await cache.get(cache_key) if cache is not None else None
    if cached is not None:
        return [build_view(Reservation.model_validate(row)) for row in cached]

    reservations = sort_reservations(await store.list_reservations(statuses))
    views = [build_view(r) for r in reservations]

    if cache is not None:
        await cache.set(cache_key, [r.model_dump(mode="json") for r in reservations])

    logger.info("reservations_listed", status=status_filter, count=len(views))
    return views


@router.get("/states", response_model=List[Dict[str, Any]])
async def list_states():
    """State registry, ordered by sort priority"""
    configs = sorted(RESERVATION_STATES.values(), key=lambda c: c.sort_priority)
    return [config.to_dict() for config in configs]


@router.get("/summary", response_model=ReservationSummary)
async def reservation_summary(store: ReservationStore = Depends(get_store)):
    """Revenue total and occupied vehicles across all reservations"""
    return summarize(await store.list_reservations())


@router.get("/{reservation_id}", response_model=ReservationView)
async def get_reservation(reservation_id: str, store: ReservationStore = Depends(get_store)):
    return build_view(await store.get_reservation(reservation_id))


@router.post("/{reservation_id}/transition", response_model=ReservationView)
async def transition_reservation(
    reservation_id: str,
    request: StatusTransitionRequest,
    store: ReservationStore = Depends(get_store),
    invalidator: Optional[CacheInvalidator] = Depends(get_cache_invalidator)
):
    """
    Move a reservation along its lifecycle

    Cancelling records the refund decision (defaults to with_refund) and the
    cancellation time. Leaving an occupying status releases the vehicle.
    """
    if not is_known_status(request.status):
        raise ValidationError("status", f"unknown reservation status '{request.status}'")

    current = await store.get_reservation(reservation_id)
    current_status = resolve_status(current.status)
    new_status = validate_transition(current_status, request.status)

    cancelled_at = None
    cancellation_type = None
    if new_status in (ReservationStatus.CANCELLED, ReservationStatus.EXPIRED):
        cancelled_at = utcnow()
    if new_status == ReservationStatus.CANCELLED:
        cancellation_type = request.cancellation_type or CancellationType.WITH_REFUND

    updated = await store.update_status(
        reservation_id,
        new_status.value,
        cancelled_at=cancelled_at,
        cancellation_type=cancellation_type,
        reason=request.reason,
        expected_statuses=[current.status]
    )
    track_transition(current_status.value, new_status.value)
    logger.info(
        "reservation_transitioned",
        reservation_id=reservation_id,
        from_status=current_status.value,
        to_status=new_status.value,
        cancellation_type=cancellation_type.value if cancellation_type else None
    )

    if updated.vehicle_id and occupies_vehicle(current_status) and not occupies_vehicle(new_status):
        try:
            if await store.release_vehicle(updated.vehicle_id):
                track_vehicle_release("transition")
        except Exception as e:
            track_vehicle_release("transition", success=False)
            logger.error("vehicle_release_failed", reservation_id=reservation_id, vehicle_id=updated.vehicle_id, error=str(e))

    if invalidator is not None:
        await invalidator.invalidate_entity("reservations")
        await invalidator.invalidate_entity("vehicles")

    return build_view(updated)
