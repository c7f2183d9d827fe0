"""Booking status transitions and the payment-status side of a refund.

``status``, ``payment_status`` and ``refund_status`` are three separate
lifecycles. Only ``status`` is governed by the transition table; the other two
are written by the cancellation workflow and the refund processor.
"""
from app.models.enums import BookingStatus, PaymentStatus

VALID_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLATION_REQUESTED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLATION_REQUESTED,
        BookingStatus.CANCELLED,
    }),
    # admin approves (-> cancelled) or rejects (-> confirmed)
    BookingStatus.CANCELLATION_REQUESTED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.CONFIRMED,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, allowed in VALID_TRANSITIONS.items() if not allowed)


def _coerce(status) -> BookingStatus | None:
    try:
        return BookingStatus(status)
    except ValueError:
        return None


def is_valid_transition(current, requested) -> bool:
    """Same-status is always allowed; unknown statuses fail closed."""
    cur = _coerce(current)
    req = _coerce(requested)
    if cur is None or req is None:
        return False
    if cur == req:
        return True
    return req in VALID_TRANSITIONS[cur]


def payment_status_after_refund(refund_amount: int, total_price: int) -> PaymentStatus:
    if refund_amount < total_price:
        return PaymentStatus.PARTIALLY_REFUNDED
    return PaymentStatus.REFUNDED
