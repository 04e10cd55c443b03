"""
Database connection pool and reservation queries
PostgreSQL via asyncpg; all reservation/vehicle reads and writes go through here
"""
import asyncpg
from typing import Optional, List, Dict, Any, AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
import logging

from .config import settings
from .models import (
    CancellationType,
    HELD_VEHICLE_VALUES,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    VehicleStatus,
    parse_cancellation_type,
)
from .exceptions import DatabaseError, ReservationNotFoundError, StateTransitionError
from .states import OCCUPYING_STATUSES, stored_status_values

logger = logging.getLogger(__name__)

RESERVATION_COLUMNS = """
    id, status, payment_status, created_at, auto_cancel_at,
    cancellation_type, cancelled_at, cancellation_reason,
    vehicle_id, customer_name, start_date, end_date,
    total_amount, discount
"""


class DatabasePool:
    """
    Async PostgreSQL connection pool
    """

    def __init__(self, dsn: str = None):
        self.dsn = dsn or settings.database_url
        self.pool: Optional[asyncpg.Pool] = None
        self._initialized = False

    async def initialize(self):
        """Create connection pool"""
        if self._initialized:
            return

        try:
            logger.info("Creating database pool...")

            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                max_inactive_connection_lifetime=300,
                command_timeout=settings.db_command_timeout,
                server_settings={
                    'application_name': 'fleetdesk',
                    'jit': 'off'
                }
            )

            async with self.pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info(f"Connected to PostgreSQL: {version[:30]}...")

            self._initialized = True
            logger.info(f"Database pool ready: {self.get_stats()}")

        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise DatabaseError(f"Cannot connect to database: {e}")

    async def close(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            self._initialized = False
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[asyncpg.Connection, None]:
        if not self.pool:
            raise DatabaseError("Database pool not initialized")

        async with self.pool.acquire() as conn:
            yield conn

    async def ping(self) -> bool:
        async with self.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    def get_stats(self) -> Dict[str, Any]:
        """Get pool statistics"""
        if not self.pool:
            return {"status": "not_initialized"}

        return {
            "size": self.pool.get_size(),
            "min_size": self.pool.get_min_size(),
            "max_size": self.pool.get_max_size(),
            "free_connections": self.pool.get_idle_size(),
        }


def _row_to_reservation(row) -> Reservation:
    row_dict = dict(row)
    # Legacy rows may carry free-text payment statuses
    payment = (row_dict.get("payment_status") or "").strip().lower()
    if payment not in {p.value for p in PaymentStatus}:
        row_dict["payment_status"] = PaymentStatus.PENDING.value if not payment else None
    try:
        row_dict["cancellation_type"] = parse_cancellation_type(row_dict.get("cancellation_type"))
    except ValueError:
        logger.warning(
            f"Reservation {row_dict.get('id')} has unknown cancellation_type "
            f"{row_dict['cancellation_type']!r}, treating it as unset"
        )
        row_dict["cancellation_type"] = None
    return Reservation(**row_dict)


class PostgresReservationStore:
    """
    Reservation/vehicle queries backing the sweeper and the API

    Writes used by the sweeper are conditional UPDATEs, so the store stays
    correct when the in-process sweep and the scheduled endpoint overlap.
    """

    def __init__(self, db_pool: DatabasePool):
        self.db_pool = db_pool
        self._occupying = stored_status_values(OCCUPYING_STATUSES)

    async def fetch_expiration_candidates(self, statuses: Sequence[str]) -> List[Reservation]:
        query = f"""
            SELECT {RESERVATION_COLUMNS}
            FROM reservations
            WHERE status = ANY($1::text[])
              AND COALESCE(payment_status, 'pending') <> 'paid'
            ORDER BY created_at
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, list(statuses))

        return [_row_to_reservation(row) for row in rows]

    async def mark_expired(
        self,
        reservation_id: str,
        statuses: Sequence[str],
        cancelled_at: datetime,
        reason: str
    ) -> bool:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE reservations
                SET status = $2,
                    cancelled_at = $3,
                    cancellation_reason = $4,
                    updated_at = NOW()
                WHERE id = $1
                  AND status = ANY($5::text[])
                  AND COALESCE(payment_status, 'pending') <> 'paid'
                RETURNING id
            """, reservation_id, ReservationStatus.EXPIRED.value, cancelled_at, reason, list(statuses))

        return row is not None

    async def release_vehicle(self, vehicle_id: str) -> bool:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE vehicles v
                SET status = $2, updated_at = NOW()
                WHERE v.id = $1
                  AND v.status = ANY($3::text[])
                  AND NOT EXISTS (
                      SELECT 1 FROM reservations r
                      WHERE r.vehicle_id = v.id
                        AND r.status = ANY($4::text[])
                  )
                RETURNING v.id
            """, vehicle_id, VehicleStatus.AVAILABLE.value, HELD_VEHICLE_VALUES, self._occupying)

        return row is not None

    async def fetch_stranded_vehicle_ids(self) -> List[str]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT DISTINCT v.id
                FROM vehicles v
                JOIN reservations r ON r.vehicle_id = v.id
                WHERE r.status = $1
                  AND v.status = ANY($2::text[])
                  AND NOT EXISTS (
                      SELECT 1 FROM reservations o
                      WHERE o.vehicle_id = v.id
                        AND o.status = ANY($3::text[])
                  )
            """, ReservationStatus.EXPIRED.value, HELD_VEHICLE_VALUES, self._occupying)

        return [str(row["id"]) for row in rows]

    async def get_reservation(self, reservation_id: str) -> Reservation:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {RESERVATION_COLUMNS} FROM reservations WHERE id = $1",
                reservation_id
            )

        if not row:
            raise ReservationNotFoundError(reservation_id)
        return _row_to_reservation(row)

    async def list_reservations(self, statuses: Optional[Sequence[str]] = None) -> List[Reservation]:
        query = f"SELECT {RESERVATION_COLUMNS} FROM reservations"
        params = []

        if statuses:
            params.append(list(statuses))
            query += " WHERE status = ANY($1::text[])"

        query += " ORDER BY created_at DESC"

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [_row_to_reservation(row) for row in rows]

    async def update_status(
        self,
        reservation_id: str,
        status: str,
        cancelled_at: Optional[datetime] = None,
        cancellation_type: Optional[CancellationType] = None,
        reason: Optional[str] = None,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> Reservation:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                UPDATE reservations
                SET status = $2,
                    cancelled_at = COALESCE($3, cancelled_at),
                    cancellation_type = COALESCE($4, cancellation_type),
                    cancellation_reason = COALESCE($5, cancellation_reason),
                    updated_at = NOW()
                WHERE id = $1
                  AND ($6::text[] IS NULL OR status = ANY($6::text[]))
                RETURNING {RESERVATION_COLUMNS}
            """,
                reservation_id,
                status,
                cancelled_at,
                cancellation_type.value if cancellation_type else None,
                reason,
                list(expected_statuses) if expected_statuses is not None else None
            )

        if not row:
            if expected_statuses is not None:
                raise StateTransitionError(
                    f"Reservation {reservation_id} changed status before the update was applied",
                    requested_state=status
                )
            raise ReservationNotFoundError(reservation_id)
        return _row_to_reservation(row)
