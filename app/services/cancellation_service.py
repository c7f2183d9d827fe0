"""Customer cancellation requests and the admin decision on them.

Every status write goes through :func:`is_valid_transition` first; the only
exception is :meth:`CancellationService.reject_cancellation`, which is the
designated undo and restores the booking to its pre-request status.
"""
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.logging_config import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus, PaymentStatus, RefundStatus, CancelledBy
from app.models.user import User
from app.services.audit_service import log_booking_event
from app.services.booking_status import is_valid_transition, payment_status_after_refund
from app.services.errors import (
    BookingNotFound,
    NotAuthorized,
    InvalidTransition,
    InvalidState,
    ConcurrentModification,
)
from app.services.refund_calculator import RefundQuote, calculate_refund, percentage_of

Clock = Callable[[], datetime]

logger = get_logger("booking")
admin_logger = get_logger("admin")

PREVIEWABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
APPROVABLE_STATUSES = (BookingStatus.CANCELLATION_REQUESTED, BookingStatus.PENDING, BookingStatus.CONFIRMED)
DEFAULT_ADMIN_REASON = "Cancelled by admin"
MAX_LIST_LIMIT = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_booking(db: Session, booking_id: str, for_update: bool = False) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update()
    b = db.execute(stmt).scalar_one_or_none()
    if not b:
        raise BookingNotFound(booking_id)
    return b


def commit_booking(db: Session, b: Booking) -> Booking:
    """Commit the pending booking write; a lost optimistic-lock race becomes ConcurrentModification."""
    booking_id = b.id
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentModification(booking_id) from e
    db.refresh(b)
    return b


def refund_status_for(payment_status: str, refund_amount: int) -> RefundStatus:
    if payment_status == PaymentStatus.PAID and refund_amount > 0:
        return RefundStatus.PENDING
    return RefundStatus.NONE


class CancellationService:
    def __init__(self, db: Session, now: Clock = utcnow):
        self.db = db
        self.now = now

    # -------------------------
    # READ
    # -------------------------
    def get_booking(self, booking_id: str, viewer: User) -> Booking:
        b = load_booking(self.db, booking_id)
        self._ensure_owner_or_admin(b, viewer)
        return b

    def list_bookings(self, status: str | None = None, unread_only: bool = False, limit: int = 100) -> list[Booking]:
        stmt = select(Booking)
        if status:
            stmt = stmt.where(Booking.status == status)
        if unread_only:
            stmt = stmt.where(Booking.is_read_by_admin.is_(False))
        stmt = stmt.order_by(Booking.updated_at.desc()).limit(max(1, min(limit, MAX_LIST_LIMIT)))
        return list(self.db.execute(stmt).scalars())

    def get_refund_preview(self, booking_id: str, viewer: User) -> tuple[Booking, RefundQuote]:
        b = load_booking(self.db, booking_id)
        self._ensure_owner_or_admin(b, viewer)
        if b.status not in PREVIEWABLE_STATUSES:
            raise InvalidState(f"Refund preview is not available for a booking in status '{b.status}'")
        return b, calculate_refund(b.total_price, b.trip_date, self.now())

    # -------------------------
    # CUSTOMER
    # -------------------------
    def request_cancellation(self, booking_id: str, requester: User, reason: str = "") -> tuple[Booking, RefundQuote]:
        b = load_booking(self.db, booking_id, for_update=True)
        if b.user_id != requester.id:
            raise NotAuthorized("Only the booking owner can request a cancellation")
        if b.status == BookingStatus.CANCELLATION_REQUESTED:
            raise InvalidState("A cancellation request is already pending for this booking")
        if not is_valid_transition(b.status, BookingStatus.CANCELLATION_REQUESTED):
            raise InvalidTransition(b.status, BookingStatus.CANCELLATION_REQUESTED.value)

        now = self.now()
        quote = calculate_refund(b.total_price, b.trip_date, now)
        previous = b.status

        b.status = BookingStatus.CANCELLATION_REQUESTED.value
        b.cancellation_reason = (reason or "").strip() or None
        b.cancelled_by = CancelledBy.USER.value
        b.cancellation_requested_at = now
        b.refund_amount = quote.refund_amount
        b.refund_percentage = quote.refund_percentage
        b.refund_status = refund_status_for(b.payment_status, quote.refund_amount).value
        b.is_read_by_admin = False

        log_booking_event(self.db, requester, "booking.cancel_requested", b, {
            "from": previous, "reason": b.cancellation_reason, **quote.to_dict(),
        })
        commit_booking(self.db, b)
        logger.info(
            f"Cancellation requested | Booking={b.id} | User={requester.id} | "
            f"Refund={quote.refund_amount} ({quote.refund_percentage}%) | DaysUntilTrip={quote.days_until_trip}"
        )
        return b, quote

    # -------------------------
    # ADMIN
    # -------------------------
    def approve_cancellation(
        self,
        booking_id: str,
        admin: User,
        admin_notes: str | None = None,
        override_refund_amount: int | None = None,
    ) -> Booking:
        b = load_booking(self.db, booking_id, for_update=True)
        if b.status not in APPROVABLE_STATUSES or not is_valid_transition(b.status, BookingStatus.CANCELLED):
            raise InvalidTransition(b.status, BookingStatus.CANCELLED.value)

        now = self.now()
        if override_refund_amount is not None:
            if override_refund_amount < 0 or override_refund_amount > b.total_price:
                raise InvalidState(f"Override refund amount must be between 0 and {b.total_price}")
            amount = int(override_refund_amount)
            pct = percentage_of(amount, b.total_price)
        else:
            quote = calculate_refund(b.total_price, b.trip_date, now)
            amount, pct = quote.refund_amount, quote.refund_percentage

        previous = b.status
        requested_amount = b.refund_amount if previous == BookingStatus.CANCELLATION_REQUESTED else None
        if requested_amount is not None and requested_amount != amount:
            admin_logger.warning(
                f"Refund differs from request-time preview | Booking={b.id} | "
                f"Requested={requested_amount} | Approved={amount} | Override={override_refund_amount is not None}"
            )

        b.status = BookingStatus.CANCELLED.value
        b.cancelled_at = now
        # A customer's request keeps its actor and reason, even a blank one
        if not b.cancelled_by:
            b.cancelled_by = CancelledBy.ADMIN.value
        if b.cancelled_by == CancelledBy.ADMIN and not b.cancellation_reason:
            b.cancellation_reason = DEFAULT_ADMIN_REASON
        if admin_notes is not None:
            b.admin_notes = admin_notes
        b.refund_amount = amount
        b.refund_percentage = pct
        b.refund_status = refund_status_for(b.payment_status, amount).value
        if b.refund_status == RefundStatus.PENDING:
            b.payment_status = payment_status_after_refund(amount, b.total_price).value
        b.is_read_by_admin = True

        log_booking_event(self.db, admin, "booking.cancel_approved", b, {
            "from": previous,
            "refundAmount": amount,
            "refundPercentage": pct,
            "requestedRefundAmount": requested_amount,
            "override": override_refund_amount is not None,
        })
        commit_booking(self.db, b)
        admin_logger.info(
            f"Cancellation approved | Booking={b.id} | Admin={admin.id} | From={previous} | "
            f"Refund={amount} ({pct}%) | PaymentStatus={b.payment_status} | RefundStatus={b.refund_status}"
        )
        return b

    def reject_cancellation(self, booking_id: str, admin: User, admin_notes: str | None = None) -> Booking:
        b = load_booking(self.db, booking_id, for_update=True)
        if b.status != BookingStatus.CANCELLATION_REQUESTED:
            raise InvalidState(f"Only bookings with a pending cancellation request can be rejected (status is '{b.status}')")

        restored = BookingStatus.CONFIRMED if b.payment_status == PaymentStatus.PAID else BookingStatus.PENDING
        discarded = {"reason": b.cancellation_reason, "refundAmount": b.refund_amount}

        b.status = restored.value
        b.cancellation_reason = None
        b.cancelled_by = None
        b.cancellation_requested_at = None
        b.refund_amount = 0
        b.refund_percentage = 0
        b.refund_status = RefundStatus.NONE.value
        if admin_notes is not None:
            b.admin_notes = admin_notes
        b.is_read_by_admin = True

        log_booking_event(self.db, admin, "booking.cancel_rejected", b, {"restored": restored.value, **discarded})
        commit_booking(self.db, b)
        admin_logger.info(f"Cancellation rejected | Booking={b.id} | Admin={admin.id} | Restored={restored.value}")
        return b

    def update_status(self, booking_id: str, admin: User, status: str) -> Booking:
        """Admin status override, still bound by the transition table.

        Cancelling routes through approval so refund fields stay consistent, and
        confirming a pending request is treated as rejecting it.
        """
        try:
            requested = BookingStatus(status)
        except ValueError:
            raise InvalidState(f"Unknown booking status '{status}'")

        b = load_booking(self.db, booking_id, for_update=True)
        current = b.status
        if not is_valid_transition(current, requested):
            raise InvalidTransition(current, requested.value)
        if current == requested:
            return b

        if requested == BookingStatus.CANCELLED:
            return self.approve_cancellation(booking_id, admin)
        if current == BookingStatus.CANCELLATION_REQUESTED and requested == BookingStatus.CONFIRMED:
            return self.reject_cancellation(booking_id, admin)

        b.status = requested.value
        if requested == BookingStatus.CANCELLATION_REQUESTED:
            now = self.now()
            quote = calculate_refund(b.total_price, b.trip_date, now)
            b.cancelled_by = CancelledBy.ADMIN.value
            b.cancellation_requested_at = now
            b.refund_amount = quote.refund_amount
            b.refund_percentage = quote.refund_percentage
            b.refund_status = refund_status_for(b.payment_status, quote.refund_amount).value

        log_booking_event(self.db, admin, "booking.status_updated", b, {"from": current, "to": requested.value})
        commit_booking(self.db, b)
        admin_logger.info(f"Status updated | Booking={b.id} | Admin={admin.id} | {current} -> {requested.value}")
        return b

    def force_set_payment_status(self, booking_id: str, admin: User, payment_status: str) -> Booking:
        """Escape hatch: payment status has its own lifecycle and is written without the transition table."""
        try:
            requested = PaymentStatus(payment_status)
        except ValueError:
            raise InvalidState(f"Unknown payment status '{payment_status}'")

        b = load_booking(self.db, booking_id, for_update=True)
        previous = b.payment_status
        if previous == requested:
            return b
        b.payment_status = requested.value

        log_booking_event(self.db, admin, "booking.payment_status_forced", b, {"from": previous, "to": requested.value})
        commit_booking(self.db, b)
        admin_logger.warning(f"Payment status forced | Booking={b.id} | Admin={admin.id} | {previous} -> {requested.value}")
        return b

    def mark_read(self, booking_id: str) -> Booking:
        b = load_booking(self.db, booking_id, for_update=True)
        if not b.is_read_by_admin:
            b.is_read_by_admin = True
            commit_booking(self.db, b)
        return b

    def _ensure_owner_or_admin(self, b: Booking, viewer: User) -> None:
        if b.user_id != viewer.id and not viewer.is_admin:
            raise NotAuthorized("Not authorized to access this booking")
