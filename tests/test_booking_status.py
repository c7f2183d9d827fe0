import itertools

import pytest

from app.models.enums import BookingStatus, PaymentStatus
from app.services.booking_status import (
    VALID_TRANSITIONS,
    TERMINAL_STATUSES,
    is_valid_transition,
    payment_status_after_refund,
)

ALLOWED = {
    ("pending", "confirmed"),
    ("pending", "cancellation_requested"),
    ("pending", "cancelled"),
    ("confirmed", "completed"),
    ("confirmed", "cancellation_requested"),
    ("confirmed", "cancelled"),
    ("cancellation_requested", "cancelled"),
    ("cancellation_requested", "confirmed"),
}

STATUSES = [s.value for s in BookingStatus]


def test_every_status_has_a_table_entry():
    assert set(VALID_TRANSITIONS) == set(BookingStatus)


@pytest.mark.parametrize("current,requested", list(itertools.product(STATUSES, STATUSES)))
def test_table_matches_allowed_pairs(current, requested):
    expected = current == requested or (current, requested) in ALLOWED
    assert is_valid_transition(current, requested) is expected


def test_enum_members_and_plain_strings_agree():
    assert is_valid_transition(BookingStatus.PENDING, "confirmed")
    assert not is_valid_transition("cancelled", BookingStatus.CONFIRMED)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {BookingStatus.CANCELLED, BookingStatus.COMPLETED}


@pytest.mark.parametrize("current,requested", [
    ("archived", "cancelled"),
    ("archived", "archived"),
    ("pending", "archived"),
    (None, "pending"),
])
def test_unknown_statuses_fail_closed(current, requested):
    assert is_valid_transition(current, requested) is False


def test_payment_status_after_refund():
    assert payment_status_after_refund(18500, 18500) == PaymentStatus.REFUNDED
    assert payment_status_after_refund(2750, 5500) == PaymentStatus.PARTIALLY_REFUNDED
