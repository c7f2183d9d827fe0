from pydantic import BaseModel, Field
from typing import Optional
from app.models.enums import BookingStatus, PaymentStatus

class CancelRequestIn(BaseModel):
    reason: str = Field(default="", max_length=500)

class ApproveCancelIn(BaseModel):
    adminNotes: Optional[str] = None
    overrideRefundAmount: Optional[int] = Field(default=None, ge=0)

class RejectCancelIn(BaseModel):
    adminNotes: Optional[str] = None

class StatusUpdateIn(BaseModel):
    status: Optional[BookingStatus] = None
    paymentStatus: Optional[PaymentStatus] = None

class PaymentStatusIn(BaseModel):
    paymentStatus: PaymentStatus

class RefundPreviewOut(BaseModel):
    refundPercentage: int
    refundAmount: int
    daysUntilTrip: int
    totalPrice: int
    paymentStatus: str
    tripDate: str

def _iso(v):
    return v.isoformat() if v else None

class BookingOut(BaseModel):
    id: str
    bookingRef: Optional[str] = None
    userId: str
    packageName: str = ""
    travelers: int = 1
    totalPrice: int
    tripDate: str
    status: str
    paymentStatus: str
    paymentId: Optional[str] = None
    cancellationReason: Optional[str] = None
    cancelledBy: Optional[str] = None
    cancellationRequestedAt: Optional[str] = None
    cancelledAt: Optional[str] = None
    refundAmount: int = 0
    refundPercentage: int = 0
    refundStatus: str = "none"
    refundId: Optional[str] = None
    refundStartedAt: Optional[str] = None
    refundProcessedAt: Optional[str] = None
    refundFailureReason: Optional[str] = None
    adminNotes: Optional[str] = None
    isReadByAdmin: bool = False

    @classmethod
    def from_booking(cls, b) -> "BookingOut":
        return cls(
            id=b.id,
            bookingRef=b.booking_ref,
            userId=b.user_id,
            packageName=b.package_name or "",
            travelers=b.travelers or 1,
            totalPrice=b.total_price,
            tripDate=b.trip_date.isoformat(),
            status=b.status,
            paymentStatus=b.payment_status,
            paymentId=b.payment_id,
            cancellationReason=b.cancellation_reason,
            cancelledBy=b.cancelled_by,
            cancellationRequestedAt=_iso(b.cancellation_requested_at),
            cancelledAt=_iso(b.cancelled_at),
            refundAmount=b.refund_amount or 0,
            refundPercentage=b.refund_percentage or 0,
            refundStatus=b.refund_status,
            refundId=b.refund_id,
            refundStartedAt=_iso(b.refund_started_at),
            refundProcessedAt=_iso(b.refund_processed_at),
            refundFailureReason=b.refund_failure_reason,
            adminNotes=b.admin_notes,
            isReadByAdmin=bool(b.is_read_by_admin),
        )

class ResetRefundIn(BaseModel):
    refundId: Optional[str] = Field(default=None, max_length=64)
    reason: Optional[str] = Field(default=None, max_length=500)
