"""
Legacy reservation status vocabulary

Rows written before the canonical status set existed use one of two older
naming schemes (an English "pending_*" scheme and the first, Spanish one).
This table is the only place those strings are translated.
"""
from typing import Dict, Optional

from .models import ReservationStatus, CancellationType

LEGACY_STATUS_MAP: Dict[str, ReservationStatus] = {
    # Unpaid holds
    "pending_no_payment": ReservationStatus.AWAITING_PAYMENT,
    "reserved": ReservationStatus.AWAITING_PAYMENT,
    "reserved_no_payment": ReservationStatus.AWAITING_PAYMENT,
    "reservado": ReservationStatus.AWAITING_PAYMENT,
    "reservado_sin_pago": ReservationStatus.AWAITING_PAYMENT,
    "pendiente": ReservationStatus.PENDING,

    # Paid holds
    "pending_with_payment": ReservationStatus.PAID_NO_CONTRACT,
    "reserved_paid": ReservationStatus.PAID_NO_CONTRACT,
    "reservado_con_pago": ReservationStatus.PAID_NO_CONTRACT,
    "pagada": ReservationStatus.PAID_NO_CONTRACT,

    "contrato_generado": ReservationStatus.CONTRACT_GENERATED,

    # Running rentals
    "active": ReservationStatus.CONFIRMED,
    "rented": ReservationStatus.CONFIRMED,
    "rentado": ReservationStatus.CONFIRMED,
    "alquilado": ReservationStatus.CONFIRMED,
    "confirmada": ReservationStatus.CONFIRMED,

    # Terminal
    "completada": ReservationStatus.COMPLETED,
    "expirada": ReservationStatus.EXPIRED,
    "cancelada": ReservationStatus.CANCELLED,
    "cancelled_with_refund": ReservationStatus.CANCELLED,
    "cancelled_no_refund": ReservationStatus.CANCELLED,
    "cancelada_con_devolucion": ReservationStatus.CANCELLED,
    "cancelada_sin_devolucion": ReservationStatus.CANCELLED,
}

# Cancelled variants that encoded the refund decision in the status itself
LEGACY_CANCELLATION_TYPES: Dict[str, CancellationType] = {
    "cancelled_with_refund": CancellationType.WITH_REFUND,
    "cancelada_con_devolucion": CancellationType.WITH_REFUND,
    "cancelled_no_refund": CancellationType.WITHOUT_REFUND,
    "cancelada_sin_devolucion": CancellationType.WITHOUT_REFUND,
}


def clean_status(raw: Optional[str]) -> str:
    """Lowercase, trim, and turn inner spaces/hyphens into underscores"""
    if not raw:
        return ""
    return "_".join(raw.strip().lower().replace("-", " ").split())


def normalize_legacy_status(raw: Optional[str]) -> Optional[ReservationStatus]:
    """Translate a legacy status string, or None when it is not a known one"""
    return LEGACY_STATUS_MAP.get(clean_status(raw))


def legacy_cancellation_type(raw: Optional[str]) -> Optional[CancellationType]:
    """Refund tag implied by a legacy cancelled status, if any"""
    return LEGACY_CANCELLATION_TYPES.get(clean_status(raw))
