"""
API Routers
"""
from .expiration import router as expiration_router
from .metrics import router as metrics_router
from .reservations import router as reservations_router

__all__ = ["expiration_router", "metrics_router", "reservations_router"]
