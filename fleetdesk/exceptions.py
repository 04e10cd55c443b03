"""
Custom exceptions for the rental back office
Every error carries a stable error_code for API responses
"""
from typing import Optional, Any


class FleetdeskException(Exception):
    """Base exception for all back-office errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }

# ============================================================
# Database Exceptions
# ============================================================

class DatabaseError(FleetdeskException):
    """Database connection or query error"""
    status_code = 503


class RecordNotFoundError(FleetdeskException):
    """Record not found in database"""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code="RECORD_NOT_FOUND",
            details={"resource": resource, "identifier": str(identifier)}
        )


class ReservationNotFoundError(RecordNotFoundError):
    """Reservation not found"""

    def __init__(self, reservation_id: Any):
        super().__init__("Reservation", reservation_id)
        self.reservation_id = reservation_id

# ============================================================
# Business Logic Exceptions
# ============================================================

class StateTransitionError(FleetdeskException):
    """Requested reservation status change is not part of the lifecycle"""

    status_code = 409

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        requested_state: Optional[str] = None
    ):
        super().__init__(
            message=message,
            error_code="INVALID_STATE_TRANSITION",
            details={
                "current_state": current_state,
                "requested_state": requested_state
            }
        )
        self.current_state = current_state
        self.requested_state = requested_state


class SweepError(FleetdeskException):
    """An expiration sweep cycle had to be aborted"""

    def __init__(self, message: str, trigger: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="SWEEP_FAILED",
            details={"trigger": trigger} if trigger else {}
        )
        self.trigger = trigger

# ============================================================
# Validation / Access Exceptions
# ============================================================

class ValidationError(FleetdeskException):
    """Input validation error"""

    status_code = 422

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Validation error for {field}: {message}",
            error_code="VALIDATION_ERROR",
            details={"field": field, "error": message}
        )


class AuthenticationError(FleetdeskException):
    """Authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_ERROR"
        )
