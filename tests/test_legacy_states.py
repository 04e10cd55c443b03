"""
Tests for the legacy status vocabulary
"""
import pytest

from fleetdesk.legacy_states import (
    LEGACY_CANCELLATION_TYPES,
    LEGACY_STATUS_MAP,
    clean_status,
    legacy_cancellation_type,
    normalize_legacy_status,
)
from fleetdesk.models import CancellationType, ReservationStatus


@pytest.mark.parametrize("raw,expected", [
    ("pending_no_payment", ReservationStatus.AWAITING_PAYMENT),
    ("reservado", ReservationStatus.AWAITING_PAYMENT),
    ("pending_with_payment", ReservationStatus.PAID_NO_CONTRACT),
    ("reservado_con_pago", ReservationStatus.PAID_NO_CONTRACT),
    ("pendiente", ReservationStatus.PENDING),
    ("contrato_generado", ReservationStatus.CONTRACT_GENERATED),
    ("active", ReservationStatus.CONFIRMED),
    ("alquilado", ReservationStatus.CONFIRMED),
    ("completada", ReservationStatus.COMPLETED),
    ("expirada", ReservationStatus.EXPIRED),
    ("cancelada", ReservationStatus.CANCELLED),
])
def test_known_legacy_strings(raw, expected):
    assert normalize_legacy_status(raw) == expected


def test_reserved_variants_split_on_payment():
    unpaid = {k for k, v in LEGACY_STATUS_MAP.items() if k.startswith("reserv") and v == ReservationStatus.AWAITING_PAYMENT}
    paid = {k for k, v in LEGACY_STATUS_MAP.items() if k.startswith("reserv") and v == ReservationStatus.PAID_NO_CONTRACT}
    assert unpaid == {"reserved", "reserved_no_payment", "reservado", "reservado_sin_pago"}
    assert paid == {"reserved_paid", "reservado_con_pago"}


def test_no_legacy_key_shadows_a_canonical_value():
    canonical = {s.value for s in ReservationStatus}
    assert not canonical & set(LEGACY_STATUS_MAP)


@pytest.mark.parametrize("raw", ["Reservado Con Pago", " reservado-con-pago ", "RESERVADO_CON_PAGO"])
def test_spelling_variants(raw):
    assert clean_status(raw) == "reservado_con_pago"
    assert normalize_legacy_status(raw) == ReservationStatus.PAID_NO_CONTRACT


@pytest.mark.parametrize("raw", [None, "", "foo_bar", "confirmed"])
def test_unmapped_returns_none(raw):
    assert normalize_legacy_status(raw) is None


def test_cancellation_variants_all_map_to_cancelled():
    for raw in LEGACY_CANCELLATION_TYPES:
        assert LEGACY_STATUS_MAP[raw] == ReservationStatus.CANCELLED


def test_legacy_cancellation_type():
    assert legacy_cancellation_type("cancelled_no_refund") == CancellationType.WITHOUT_REFUND
    assert legacy_cancellation_type("Cancelada con devolucion") == CancellationType.WITH_REFUND
    assert legacy_cancellation_type("cancelada") is None
