"""
Shared fixtures: in-memory reservation store and Redis client
"""
import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest
from redis.exceptions import RedisError

from fleetdesk.cache import CacheInvalidator, CacheManager
from fleetdesk.database import _row_to_reservation
from fleetdesk.exceptions import ReservationNotFoundError, StateTransitionError
from fleetdesk.models import (
    HELD_VEHICLE_VALUES,
    CancellationType,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    VehicleStatus,
)
from fleetdesk.states import OCCUPYING_STATUSES, stored_status_values

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_reservation(
    reservation_id: str = "r1",
    status: str = "awaiting_payment",
    created_at: datetime = T0,
    **fields
) -> Reservation:
    fields.setdefault("payment_status", PaymentStatus.PENDING)
    fields.setdefault("customer_name", f"Customer {reservation_id}")
    return Reservation(id=reservation_id, status=status, created_at=created_at, **fields)


class MockReservationStore:
    """
    In-memory ReservationStore with the same conditional-write semantics as
    PostgresReservationStore, plus failure injection
    """

    def __init__(self):
        self.reservations: Dict[str, Reservation] = {}
        self.vehicles: Dict[str, str] = {}
        self.fail_fetch = False
        self.fail_mark: set = set()
        self.fail_release: set = set()
        self.release_calls: List[str] = []
        self._occupying = stored_status_values(OCCUPYING_STATUSES)

    def add(self, reservation: Reservation, vehicle_status: Optional[str] = None) -> Reservation:
        self.reservations[reservation.id] = reservation
        if reservation.vehicle_id and vehicle_status is not None:
            self.vehicles[reservation.vehicle_id] = vehicle_status
        return reservation

    def add_row(self, row: dict, vehicle_status: Optional[str] = None) -> Reservation:
        """Insert a raw stored row, mapped the way PostgresReservationStore maps it"""
        return self.add(_row_to_reservation(row), vehicle_status)

    async def fetch_expiration_candidates(self, statuses: Sequence[str]) -> List[Reservation]:
        if self.fail_fetch:
            raise ConnectionError("connection reset by peer")
        return [
            r for r in self.reservations.values()
            if r.status in statuses and r.payment_status != PaymentStatus.PAID
        ]

    async def mark_expired(self, reservation_id, statuses, cancelled_at, reason) -> bool:
        if reservation_id in self.fail_mark:
            raise ConnectionError("write timed out")
        current = self.reservations.get(reservation_id)
        if current is None or current.status not in statuses or current.payment_status == PaymentStatus.PAID:
            return False
        self.reservations[reservation_id] = current.model_copy(update={
            "status": ReservationStatus.EXPIRED.value,
            "cancelled_at": cancelled_at,
            "cancellation_reason": reason,
        })
        return True

    async def release_vehicle(self, vehicle_id: str) -> bool:
        self.release_calls.append(vehicle_id)
        if vehicle_id in self.fail_release:
            raise ConnectionError("vehicle update failed")
        if self.vehicles.get(vehicle_id) not in HELD_VEHICLE_VALUES:
            return False
        if any(r.vehicle_id == vehicle_id and r.status in self._occupying for r in self.reservations.values()):
            return False
        self.vehicles[vehicle_id] = VehicleStatus.AVAILABLE.value
        return True

    async def fetch_stranded_vehicle_ids(self) -> List[str]:
        stranded = set()
        for r in self.reservations.values():
            if r.status != ReservationStatus.EXPIRED.value or not r.vehicle_id:
                continue
            if self.vehicles.get(r.vehicle_id) not in HELD_VEHICLE_VALUES:
                continue
            if any(o.vehicle_id == r.vehicle_id and o.status in self._occupying for o in self.reservations.values()):
                continue
            stranded.add(r.vehicle_id)
        return sorted(stranded)

    async def get_reservation(self, reservation_id: str) -> Reservation:
        if reservation_id not in self.reservations:
            raise ReservationNotFoundError(reservation_id)
        return self.reservations[reservation_id]

    async def list_reservations(self, statuses: Optional[Sequence[str]] = None) -> List[Reservation]:
        return [r for r in self.reservations.values() if not statuses or r.status in statuses]

    async def update_status(
        self,
        reservation_id: str,
        status: str,
        cancelled_at: Optional[datetime] = None,
        cancellation_type: Optional[CancellationType] = None,
        reason: Optional[str] = None,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> Reservation:
        if reservation_id not in self.reservations:
            raise ReservationNotFoundError(reservation_id)
        current = self.reservations[reservation_id]
        if expected_statuses is not None and current.status not in expected_statuses:
            raise StateTransitionError(
                f"Reservation {reservation_id} changed status before the update was applied",
                requested_state=status
            )
        update = {"status": status}
        if cancelled_at is not None:
            update["cancelled_at"] = cancelled_at
        if cancellation_type is not None:
            update["cancellation_type"] = cancellation_type
        if reason is not None:
            update["cancellation_reason"] = reason
        self.reservations[reservation_id] = current.model_copy(update=update)
        return self.reservations[reservation_id]


class MockRedis:
    """Subset of redis.asyncio.Redis used by CacheManager"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise RedisError("Connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    async def scan_iter(self, match="*"):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        pass


@pytest.fixture
def store():
    return MockReservationStore()


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def cache(redis_client):
    return CacheManager(redis_client, default_ttl=60)


@pytest.fixture
def invalidator(cache):
    return CacheInvalidator(cache)


@pytest.fixture
def clock():
    """Mutable clock; tests move it with clock.now = ..."""
    class Clock:
        now = T0 + timedelta(hours=3)

        def __call__(self):
            return self.now

    return Clock()
