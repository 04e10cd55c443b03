"""
Pydantic models for request/response validation
All models in one place for simplicity
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

# ============================================================
# Enums
# ============================================================

class ReservationStatus(str, Enum):
    """Canonical reservation statuses, in lifecycle order"""
    PENDING = "pending"                        # Just created, no payment yet
    AWAITING_PAYMENT = "awaiting_payment"      # Customer told to pay within the grace period
    PAID_NO_CONTRACT = "paid_no_contract"
    CONTRACT_GENERATED = "contract_generated"
    CONFIRMED = "confirmed"                    # Vehicle handed over, rental running
    COMPLETED = "completed"
    EXPIRED = "expired"                        # Unpaid past the deadline
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class CancellationType(str, Enum):
    """Refund outcome recorded when a reservation is cancelled"""
    WITH_REFUND = "with_refund"
    WITHOUT_REFUND = "without_refund"


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    RENTED = "rented"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class CalendarStatus(str, Enum):
    """How a reservation paints a vehicle's calendar cell"""
    RENTED = "rented"
    RESERVED_PAID = "reserved_paid"
    RESERVED_NO_PAYMENT = "reserved_no_payment"
    AVAILABLE = "available"


class SweepTrigger(str, Enum):
    INTERVAL = "interval"    # In-process periodic task
    SCHEDULED = "scheduled"  # External scheduler hitting the HTTP endpoint
    MANUAL = "manual"


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# Vehicle statuses meaning "held for a reservation"
HELD_VEHICLE_STATUSES = (VehicleStatus.RESERVED, VehicleStatus.RENTED)

# Spanish vehicle statuses written by the first version of the app
LEGACY_VEHICLE_STATUSES = {
    "disponible": VehicleStatus.AVAILABLE,
    "reservado": VehicleStatus.RESERVED,
    "alquilado": VehicleStatus.RENTED,
    "mantenimiento": VehicleStatus.MAINTENANCE,
    "eliminado": VehicleStatus.RETIRED,
}

# Stored strings (canonical and legacy) that mean "held"
HELD_VEHICLE_VALUES = sorted(
    {status.value for status in HELD_VEHICLE_STATUSES}
    | {raw for raw, status in LEGACY_VEHICLE_STATUSES.items() if status in HELD_VEHICLE_STATUSES}
)


def parse_cancellation_type(value: Any) -> Optional[CancellationType]:
    """Accept with_refund / withRefund / with-refund spellings"""
    if value is None or isinstance(value, CancellationType):
        return value
    cleaned = str(value).strip()
    if not cleaned:
        return None
    if "_" in cleaned or "-" in cleaned:
        snake = cleaned.replace("-", "_").lower()
    else:
        # camelCase -> snake_case
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in cleaned).lstrip("_")
    return CancellationType(snake)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

# ============================================================
# Reservation Models
# ============================================================

class Reservation(BaseModel):
    """
    Reservation as stored

    ``status`` keeps the raw stored string: old rows may carry a legacy
    vocabulary, which the state registry resolves on read.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    payment_status: Optional[PaymentStatus] = PaymentStatus.PENDING
    created_at: datetime
    auto_cancel_at: Optional[datetime] = None
    cancellation_type: Optional[CancellationType] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    vehicle_id: Optional[str] = None
    customer_name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    total_amount: Optional[Decimal] = None
    discount: Optional[Decimal] = None

    @field_validator("id", "vehicle_id", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        return str(v) if v is not None else v

    @field_validator("cancellation_type", mode="before")
    @classmethod
    def normalize_cancellation_type(cls, v):
        return parse_cancellation_type(v)

    @field_validator("payment_status", mode="before")
    @classmethod
    def normalize_payment_status(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("created_at", "auto_cancel_at", "cancelled_at", "start_date", "end_date")
    @classmethod
    def normalize_timestamps(cls, v):
        return ensure_utc(v)

    @property
    def net_amount(self) -> Decimal:
        """Billed amount after discount"""
        return (self.total_amount or Decimal("0")) - (self.discount or Decimal("0"))


class ReservationCreate(BaseModel):
    """Write-side model; rejects deadlines that precede creation"""
    vehicle_id: str
    customer_name: str = Field(..., min_length=1, max_length=200)
    start_date: datetime
    end_date: datetime
    created_at: Optional[datetime] = None
    auto_cancel_at: Optional[datetime] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        created = ensure_utc(self.created_at)
        deadline = ensure_utc(self.auto_cancel_at)
        if created is not None and deadline is not None and deadline < created:
            raise ValueError("auto_cancel_at cannot be earlier than created_at")
        return self


class StatusTransitionRequest(BaseModel):
    status: str
    cancellation_type: Optional[CancellationType] = None
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("cancellation_type", mode="before")
    @classmethod
    def normalize_cancellation_type(cls, v):
        return parse_cancellation_type(v)


class TimeRemaining(BaseModel):
    """Countdown shown next to unpaid reservations"""
    hours: int
    minutes: int
    is_expired: bool
    is_urgent: bool
    deadline: datetime


class ReservationView(BaseModel):
    """Reservation enriched with its registry configuration"""
    reservation: Reservation
    status: ReservationStatus
    label: str
    color_hex: str
    badge_style: str
    calendar_status: CalendarStatus
    include_in_revenue: bool
    time_remaining: Optional[TimeRemaining] = None

# ============================================================
# Sweep Models
# ============================================================

class ExpiredReservation(BaseModel):
    id: str
    customer_name: Optional[str] = None
    deadline: datetime
    vehicle_id: Optional[str] = None
    vehicle_released: bool = False


class SweepResult(BaseModel):
    """Outcome of one expiration sweep"""
    trigger: SweepTrigger
    started_at: datetime
    checked: int = 0
    expired: List[ExpiredReservation] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    vehicles_released: int = 0
    vehicle_release_failures: int = 0
    reconciled: int = 0
    duration_seconds: float = 0.0

    @property
    def cancelled(self) -> int:
        return len(self.expired)

    def to_response(self) -> Dict[str, Any]:
        """Body returned by the scheduled expiration endpoint"""
        return {
            "success": True,
            "cancelled": self.cancelled,
            "reservations": [
                {
                    "id": item.id,
                    "customerName": item.customer_name,
                    "deadline": item.deadline.isoformat(),
                }
                for item in self.expired
            ],
        }

# ============================================================
# Realtime Models
# ============================================================

class ChangeEvent(BaseModel):
    """Row change notification published by the database triggers"""
    table: str
    type: ChangeType
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    @field_validator("type", mode="before")
    @classmethod
    def upper_type(cls, v):
        return v.upper() if isinstance(v, str) else v

# ============================================================
# Reporting / Health
# ============================================================

class ReservationSummary(BaseModel):
    reservation_count: int
    revenue_total: Decimal
    occupied_vehicle_ids: List[str]


class HealthStatus(BaseModel):
    status: str
    version: str
    timestamp: datetime
    checks: Dict[str, str] = Field(default_factory=dict)
    stats: Dict[str, Any] = Field(default_factory=dict)
