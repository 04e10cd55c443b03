"""
Reservation expiration sweep

The single implementation behind both triggers: the in-process interval task
(background_tasks.py) and the scheduled HTTP endpoint (routers/expiration.py).

One sweep:
1. Reconcile: release vehicles still held by expired reservations
   (a vehicle release that failed in an earlier cycle).
2. Fetch unpaid reservations in a timer status.
3. Expire those past their deadline with a conditional write; a reservation
   another sweeper already expired is skipped with no side effects.
4. Release each expired reservation's vehicle, independently of step 3:
   a failed release never reverts the status change.
5. Invalidate dependent caches.
"""
import asyncio
import time
from datetime import datetime
from typing import Callable, Optional

import structlog

from .cache import CacheInvalidator
from .exceptions import SweepError
from .expiration import compute_deadline, reservation_should_expire
from .metrics import (
    MetricsTimer,
    sweep_duration_seconds,
    track_expiry_write_failure,
    track_sweep,
    track_vehicle_release,
)
from .models import ExpiredReservation, Reservation, SweepResult, SweepTrigger
from .states import TIMER_STATUSES, stored_status_values
from .store import ReservationStore
from .utils import utcnow

logger = structlog.get_logger(__name__)

EXPIRATION_REASON = "Automatic expiration: payment not received within 2 hours"


class ExpirationSweeper:
    """Expires unpaid reservations and frees their vehicles"""

    def __init__(
        self,
        store: ReservationStore,
        cache_invalidator: Optional[CacheInvalidator] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.cache_invalidator = cache_invalidator
        self.clock = clock
        self.timer_status_values = stored_status_values(TIMER_STATUSES)
        self.last_result: Optional[SweepResult] = None
        # Serializes the interval task and the endpoint within one process
        self._lock = asyncio.Lock()

    async def sweep(
        self,
        trigger: SweepTrigger = SweepTrigger.MANUAL,
        now: Optional[datetime] = None
    ) -> SweepResult:
        """
        Run one sweep

        Raises:
            SweepError: candidates could not be fetched; nothing was changed
                in this cycle beyond reconciliation
        """
        async with self._lock:
            started = time.monotonic()
            try:
                with MetricsTimer(sweep_duration_seconds, {"trigger": trigger.value}):
                    result = await self._sweep(trigger, now or self.clock())
            except SweepError:
                track_sweep(trigger.value, "failed")
                raise

            result.duration_seconds = round(time.monotonic() - started, 4)
            track_sweep(trigger.value, "ok", result.cancelled)
            self.last_result = result
            return result

    async def _sweep(self, trigger: SweepTrigger, now: datetime) -> SweepResult:
        result = SweepResult(trigger=trigger, started_at=now)

        result.reconciled = await self._reconcile()

        try:
            candidates = await self.store.fetch_expiration_candidates(self.timer_status_values)
        except Exception as e:
            logger.error("sweep_fetch_failed", trigger=trigger.value, error=str(e), exc_info=True)
            raise SweepError(f"Failed to fetch expiration candidates: {e}", trigger=trigger.value) from e

        result.checked = len(candidates)

        for reservation in candidates:
            if not reservation_should_expire(reservation, now):
                continue
            await self._expire(reservation, now, result)

        if result.expired or result.reconciled:
            if self.cache_invalidator is not None:
                await self.cache_invalidator.after_sweep()

        if result.expired or result.failed:
            logger.info(
                "sweep_completed",
                trigger=trigger.value,
                checked=result.checked,
                expired=result.cancelled,
                failed=len(result.failed),
                vehicles_released=result.vehicles_released,
                vehicle_release_failures=result.vehicle_release_failures,
                reconciled=result.reconciled
            )
        else:
            logger.debug("sweep_completed", trigger=trigger.value, checked=result.checked)

        return result

    async def _expire(self, reservation: Reservation, now: datetime, result: SweepResult):
        try:
            transitioned = await self.store.mark_expired(
                reservation.id,
                self.timer_status_values,
                now,
                EXPIRATION_REASON
            )
        except Exception as e:
            logger.error("reservation_expiry_write_failed", reservation_id=reservation.id, error=str(e))
            track_expiry_write_failure()
            result.failed.append(reservation.id)
            return

        if not transitioned:
            logger.debug("reservation_expiry_skipped", reservation_id=reservation.id)
            return

        released = False
        if reservation.vehicle_id:
            try:
                released = await self.store.release_vehicle(reservation.vehicle_id)
            except Exception as e:
                # Reservation stays expired; reconciliation retries the release
                logger.error(
                    "vehicle_release_failed",
                    reservation_id=reservation.id,
                    vehicle_id=reservation.vehicle_id,
                    error=str(e)
                )
                track_vehicle_release("sweep", success=False)
                result.vehicle_release_failures += 1
            else:
                if released:
                    track_vehicle_release("sweep")
                    result.vehicles_released += 1

        deadline = compute_deadline(reservation.created_at, reservation.auto_cancel_at)
        result.expired.append(ExpiredReservation(
            id=reservation.id,
            customer_name=reservation.customer_name,
            deadline=deadline,
            vehicle_id=reservation.vehicle_id,
            vehicle_released=released
        ))
        logger.info(
            "reservation_expired",
            reservation_id=reservation.id,
            customer_name=reservation.customer_name,
            deadline=deadline.isoformat(),
            vehicle_id=reservation.vehicle_id,
            vehicle_released=released
        )

    async def _reconcile(self) -> int:
        """Release vehicles left held by expired reservations"""
        try:
            vehicle_ids = await self.store.fetch_stranded_vehicle_ids()
        except Exception as e:
            logger.warning("reconciliation_fetch_failed", error=str(e))
            return 0

        released = 0
        for vehicle_id in vehicle_ids:
            try:
                if await self.store.release_vehicle(vehicle_id):
                    released += 1
                    track_vehicle_release("reconciliation")
                    logger.info("stranded_vehicle_released", vehicle_id=vehicle_id)
            except Exception as e:
                track_vehicle_release("reconciliation", success=False)
                logger.error("stranded_vehicle_release_failed", vehicle_id=vehicle_id, error=str(e))
        return released
