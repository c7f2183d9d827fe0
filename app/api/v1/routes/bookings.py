from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.api.deps import get_current_user, require_admin, get_clock, get_payment_gateway
from app.models.user import User
from app.schemas.booking import (
    BookingOut,
    CancelRequestIn,
    ApproveCancelIn,
    RejectCancelIn,
    StatusUpdateIn,
    PaymentStatusIn,
    ResetRefundIn,
    RefundPreviewOut,
)
from app.services.audit_service import booking_history
from app.services.cancellation_service import CancellationService, Clock, MAX_LIST_LIMIT, load_booking
from app.services.errors import BookingError
from app.services.payment_gateway import PaymentGateway
from app.services.refund_service import RefundProcessor

router = APIRouter(tags=["bookings"])


def _http_error(e: BookingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


# -------------------------
# READ
# -------------------------
@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        b = CancellationService(db).get_booking(booking_id, user)
    except BookingError as e:
        raise _http_error(e)
    return BookingOut.from_booking(b)


@router.get("/admin/bookings")
def list_bookings(
    status: str = "",
    unread: bool = False,
    limit: int = Query(default=100, ge=1, le=MAX_LIST_LIMIT),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    items = CancellationService(db).list_bookings(status=status or None, unread_only=unread, limit=limit)
    return {"total": len(items), "items": [BookingOut.from_booking(b) for b in items]}


@router.get("/admin/bookings/{booking_id}/audit")
def audit_trail(booking_id: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        b = load_booking(db, booking_id)
    except BookingError as e:
        raise _http_error(e)
    return {"bookingId": b.id, "items": booking_history(db, b.id)}


@router.get("/bookings/{booking_id}/refund-preview", response_model=RefundPreviewOut)
def refund_preview(
    booking_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    now: Clock = Depends(get_clock),
):
    try:
        b, quote = CancellationService(db, now).get_refund_preview(booking_id, user)
    except BookingError as e:
        raise _http_error(e)
    return RefundPreviewOut(
        refundPercentage=quote.refund_percentage,
        refundAmount=quote.refund_amount,
        daysUntilTrip=quote.days_until_trip,
        totalPrice=b.total_price,
        paymentStatus=b.payment_status,
        tripDate=b.trip_date.isoformat(),
    )


# -------------------------
# CANCELLATION WORKFLOW
# -------------------------
@router.put("/bookings/{booking_id}/request-cancel")
def request_cancel(
    booking_id: str,
    body: CancelRequestIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    now: Clock = Depends(get_clock),
):
    try:
        b, quote = CancellationService(db, now).request_cancellation(booking_id, user, body.reason)
    except BookingError as e:
        raise _http_error(e)
    return {
        "ok": True,
        "message": "Cancellation request submitted",
        "booking": BookingOut.from_booking(b),
        "refundPreview": {
            "refundPercentage": quote.refund_percentage,
            "refundAmount": quote.refund_amount,
            "daysUntilTrip": quote.days_until_trip,
        },
    }


@router.put("/bookings/{booking_id}/approve-cancel")
def approve_cancel(
    booking_id: str,
    body: ApproveCancelIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    now: Clock = Depends(get_clock),
):
    try:
        b = CancellationService(db, now).approve_cancellation(
            booking_id, admin, admin_notes=body.adminNotes, override_refund_amount=body.overrideRefundAmount,
        )
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "message": "Cancellation approved", "booking": BookingOut.from_booking(b)}


@router.put("/bookings/{booking_id}/reject-cancel")
def reject_cancel(
    booking_id: str,
    body: RejectCancelIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    now: Clock = Depends(get_clock),
):
    try:
        b = CancellationService(db, now).reject_cancellation(booking_id, admin, admin_notes=body.adminNotes)
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "message": "Cancellation request rejected", "booking": BookingOut.from_booking(b)}


@router.post("/bookings/{booking_id}/process-refund")
def process_refund(
    booking_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
    now: Clock = Depends(get_clock),
):
    try:
        outcome = RefundProcessor(db, gateway, now).process_refund(booking_id, admin)
    except BookingError as e:
        raise _http_error(e)
    return {
        "ok": True,
        "queued": outcome.queued,
        "message": outcome.message,
        "refundId": outcome.refund_id,
        "booking": BookingOut.from_booking(outcome.booking),
    }


@router.put("/bookings/{booking_id}/reset-refund")
def reset_refund(
    booking_id: str,
    body: ResetRefundIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    now: Clock = Depends(get_clock),
):
    try:
        b = RefundProcessor(db, None, now).reset_refund(booking_id, admin, refund_id=body.refundId, reason=body.reason)
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "booking": BookingOut.from_booking(b)}


# -------------------------
# ADMIN OVERRIDES
# -------------------------
@router.put("/bookings/{booking_id}/status")
def update_status(
    booking_id: str,
    body: StatusUpdateIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    now: Clock = Depends(get_clock),
):
    if body.status is None and body.paymentStatus is None:
        raise HTTPException(status_code=400, detail="Provide status and/or paymentStatus")
    svc = CancellationService(db, now)
    try:
        b = None
        if body.status is not None:
            b = svc.update_status(booking_id, admin, body.status.value)
        if body.paymentStatus is not None:
            b = svc.force_set_payment_status(booking_id, admin, body.paymentStatus.value)
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "booking": BookingOut.from_booking(b)}


@router.put("/bookings/{booking_id}/payment-status")
def force_payment_status(
    booking_id: str,
    body: PaymentStatusIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        b = CancellationService(db).force_set_payment_status(booking_id, admin, body.paymentStatus.value)
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "booking": BookingOut.from_booking(b)}


@router.put("/bookings/{booking_id}/mark-read")
def mark_read(booking_id: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        b = CancellationService(db).mark_read(booking_id)
    except BookingError as e:
        raise _http_error(e)
    return {"ok": True, "booking": BookingOut.from_booking(b)}
