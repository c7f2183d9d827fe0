"""Issue the refund for an approved cancellation through the payment gateway.

Runs as its own admin action after approval; a gateway error leaves the
booking cancelled with ``refund_status='failed'`` and can be retried.

A refund is ``processing`` only while a gateway call is in flight. If the
worker dies in that window the row is released again once
``REFUND_PROCESSING_TIMEOUT_MINUTES`` have passed since ``refund_started_at``,
or earlier through :meth:`RefundProcessor.reset_refund`.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus, RefundStatus
from app.models.user import User
from app.services.audit_service import log_booking_event
from app.services.booking_status import payment_status_after_refund
from app.services.cancellation_service import Clock, utcnow, load_booking, commit_booking
from app.services.errors import InvalidState, AlreadyProcessed, GatewayFailure, ConcurrentModification
from app.services.payment_gateway import GatewayRefund, PaymentGateway, to_minor_units

logger = get_logger("payment")

DEFAULT_RESET_REASON = "Reset by admin after an interrupted gateway call"


@dataclass
class RefundOutcome:
    booking: Booking
    refund_id: str | None = None
    queued: bool = False
    message: str = ""


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class RefundProcessor:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None,
        now: Clock = utcnow,
        stale_after: timedelta | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.now = now
        self.stale_after = stale_after or timedelta(minutes=settings.REFUND_PROCESSING_TIMEOUT_MINUTES)

    def process_refund(self, booking_id: str, admin: User) -> RefundOutcome:
        b = load_booking(self.db, booking_id, for_update=True)
        self._check_preconditions(b)

        if not b.payment_id:
            b.refund_status = RefundStatus.COMPLETED.value
            b.refund_processed_at = self.now()
            log_booking_event(self.db, admin, "refund.no_payment", b, {"refundAmount": b.refund_amount})
            commit_booking(self.db, b)
            logger.info(f"Refund closed without gateway call (no captured payment) | Booking={b.id}")
            return RefundOutcome(booking=b, message="No captured payment on file; refund marked completed")

        if self.gateway is None:
            b.refund_status = RefundStatus.PENDING.value
            log_booking_event(self.db, admin, "refund.queued", b, {"refundAmount": b.refund_amount})
            commit_booking(self.db, b)
            logger.warning(f"Payment gateway not configured; refund left pending | Booking={b.id} | Amount={b.refund_amount}")
            return RefundOutcome(
                booking=b,
                queued=True,
                message="Payment gateway not configured; refund queued for manual processing",
            )

        if b.refund_status == RefundStatus.PROCESSING:
            logger.warning(
                f"Re-attempting refund left in processing | Booking={b.id} | StartedAt={b.refund_started_at}"
            )

        # Visible intermediate state while the gateway call is in flight
        b.refund_status = RefundStatus.PROCESSING.value
        b.refund_started_at = self.now()
        b.refund_failure_reason = None
        commit_booking(self.db, b)

        payment_id, amount = b.payment_id, b.refund_amount
        metadata = {
            "bookingId": b.id,
            "bookingRef": b.booking_ref,
            "reason": b.cancellation_reason or "Booking cancellation",
        }
        try:
            result = self.gateway.issue_refund(payment_id, to_minor_units(amount), metadata)
        except GatewayFailure as e:
            self._mark_failed(booking_id, admin, e.message)
            raise
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            self._mark_failed(booking_id, admin, reason)
            raise GatewayFailure(reason) from e

        try:
            b = self._persist(booking_id, lambda row: self._apply_completion(row, admin, result))
        except Exception:
            # Money has moved; the refund id must reach an operator even if the row write is lost
            logger.exception(f"Refund issued but not recorded | Booking={booking_id} | RefundId={result.refund_id} | Amount={amount}")
            raise
        logger.info(f"Refund completed | Booking={b.id} | RefundId={result.refund_id} | Amount={b.refund_amount}")
        return RefundOutcome(booking=b, refund_id=result.refund_id, message="Refund processed")

    def reset_refund(self, booking_id: str, admin: User, refund_id: str | None = None, reason: str | None = None) -> Booking:
        """Release a refund stuck in ``processing``.

        With ``refund_id`` (confirmed on the gateway dashboard) the refund is
        recorded as completed; otherwise it is marked failed so it can be retried.
        """
        b = load_booking(self.db, booking_id, for_update=True)
        if b.refund_status != RefundStatus.PROCESSING:
            raise InvalidState(f"Only refunds in processing can be reset (refund status is '{b.refund_status}')")

        if refund_id:
            self._apply_completion(b, admin, GatewayRefund(refund_id=refund_id, status="manual"), action="refund.reset_completed")
            commit_booking(self.db, b)
            logger.warning(f"Stuck refund recorded as completed | Booking={b.id} | Admin={admin.id} | RefundId={refund_id}")
            return b

        message = (reason or "").strip() or DEFAULT_RESET_REASON
        self._apply_failure(b, admin, message, action="refund.reset_failed")
        commit_booking(self.db, b)
        logger.warning(f"Stuck refund reset to failed | Booking={b.id} | Admin={admin.id}")
        return b

    def _check_preconditions(self, b: Booking) -> None:
        if b.status != BookingStatus.CANCELLED:
            raise InvalidState(f"Refunds can only be processed for cancelled bookings (status is '{b.status}')")
        if b.refund_status == RefundStatus.COMPLETED:
            raise AlreadyProcessed("Refund has already been completed for this booking")
        if b.refund_status == RefundStatus.PROCESSING and not self._is_stale(b):
            raise AlreadyProcessed("Refund is already being processed for this booking")
        if b.refund_amount <= 0:
            raise InvalidState("Booking has no refundable amount")

    def _is_stale(self, b: Booking) -> bool:
        if b.refund_started_at is None:
            return True
        return self.now() - _aware(b.refund_started_at) >= self.stale_after

    def _persist(self, booking_id: str, apply: Callable[[Booking], None]) -> Booking:
        """Write a gateway result; if the row changed meanwhile, reload it and apply once more."""
        b = load_booking(self.db, booking_id, for_update=True)
        apply(b)
        try:
            return commit_booking(self.db, b)
        except ConcurrentModification:
            logger.warning(f"Booking changed during gateway call; re-applying result | Booking={booking_id}")
            b = load_booking(self.db, booking_id, for_update=True)
            apply(b)
            return commit_booking(self.db, b)

    def _apply_completion(self, b: Booking, admin: User, result: GatewayRefund, action: str = "refund.completed") -> None:
        b.refund_id = result.refund_id
        b.refund_status = RefundStatus.COMPLETED.value
        b.refund_processed_at = self.now()
        b.refund_failure_reason = None
        b.payment_status = payment_status_after_refund(b.refund_amount, b.total_price).value
        log_booking_event(self.db, admin, action, b, {
            "refundId": result.refund_id, "gatewayStatus": result.status, "refundAmount": b.refund_amount,
        })

    def _apply_failure(self, b: Booking, admin: User, reason: str, action: str = "refund.failed") -> None:
        b.refund_status = RefundStatus.FAILED.value
        b.refund_failure_reason = reason
        log_booking_event(self.db, admin, action, b, {"error": reason, "refundAmount": b.refund_amount})

    def _mark_failed(self, booking_id: str, admin: User, reason: str) -> None:
        self._persist(booking_id, lambda row: self._apply_failure(row, admin, reason))
        logger.error(f"Refund failed | Booking={booking_id} | Error={reason}")
