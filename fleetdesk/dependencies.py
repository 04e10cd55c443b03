"""
FastAPI dependencies resolving the services wired in main.lifespan
"""
import hmac
from typing import Optional

from fastapi import Header, Request

from .cache import CacheInvalidator, CacheManager
from .config import settings
from .exceptions import AuthenticationError, DatabaseError
from .store import ReservationStore
from .sweeper import ExpirationSweeper


def get_store(request: Request) -> ReservationStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise DatabaseError("Reservation store not initialized")
    return store


def get_sweeper(request: Request) -> ExpirationSweeper:
    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is None:
        raise DatabaseError("Expiration sweeper not initialized")
    return sweeper


def get_cache(request: Request) -> Optional[CacheManager]:
    return getattr(request.app.state, "cache", None)


def get_cache_invalidator(request: Request) -> Optional[CacheInvalidator]:
    return getattr(request.app.state, "cache_invalidator", None)


def verify_cron_token(x_cron_token: Optional[str] = Header(None)):
    """
    Guard for the scheduled endpoint

    Open when no cron_token is configured (local development).
    """
    expected = settings.cron_token
    if not expected:
        return
    if not x_cron_token or not hmac.compare_digest(x_cron_token, expected):
        raise AuthenticationError("Invalid or missing cron token")
