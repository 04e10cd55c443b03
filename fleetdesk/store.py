"""
Data-access interface used by the expiration sweeper and the API

The PostgreSQL implementation lives in database.py; tests provide an
in-memory one. Every write that the sweeper performs is conditional, so two
sweepers racing on the same row cannot both report the same transition.
"""
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .models import CancellationType, Reservation


class ReservationStore(Protocol):

    async def fetch_expiration_candidates(self, statuses: Sequence[str]) -> List[Reservation]:
        """Reservations whose stored status is in ``statuses`` and whose payment is not 'paid'"""
        ...

    async def mark_expired(
        self,
        reservation_id: str,
        statuses: Sequence[str],
        cancelled_at: datetime,
        reason: str
    ) -> bool:
        """
        Set status to 'expired' if the row is still in ``statuses`` and unpaid

        Returns False when the row no longer qualifies (already expired by
        another sweeper, paid in the meantime, edited by a user).
        """
        ...

    async def release_vehicle(self, vehicle_id: str) -> bool:
        """
        Set the vehicle to 'available' if it is held and no occupying
        reservation references it. Returns whether a row changed.
        """
        ...

    async def fetch_stranded_vehicle_ids(self) -> List[str]:
        """Held vehicles whose only reservations are expired (failed releases)"""
        ...

    async def get_reservation(self, reservation_id: str) -> Reservation:
        """Raises ReservationNotFoundError"""
        ...

    async def list_reservations(self, statuses: Optional[Sequence[str]] = None) -> List[Reservation]:
        ...

    async def update_status(
        self,
        reservation_id: str,
        status: str,
        cancelled_at: Optional[datetime] = None,
        cancellation_type: Optional[CancellationType] = None,
        reason: Optional[str] = None,
        expected_statuses: Optional[Sequence[str]] = None
    ) -> Reservation:
        """
        Write a manual status change

        With ``expected_statuses`` the write only applies while the stored
        status is still one of them; otherwise StateTransitionError is raised.
        Raises ReservationNotFoundError for an unknown id.
        """
        ...
