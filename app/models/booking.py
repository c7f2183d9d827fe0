from sqlalchemy import String, Integer, Date, DateTime, Boolean, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from app.db.session import Base
from app.models.enums import BookingStatus, PaymentStatus, RefundStatus

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=True)  # TUR001

    user_id: Mapped[str] = mapped_column(String(36), index=True)  # owner
    package_name: Mapped[str] = mapped_column(String(200), default="")
    travelers: Mapped[int] = mapped_column(Integer, default=1)

    total_price: Mapped[int] = mapped_column(Integer, default=0)  # whole currency units
    trip_date: Mapped[date] = mapped_column(Date)

    status: Mapped[str] = mapped_column(String(30), default=BookingStatus.PENDING.value, index=True)
    payment_status: Mapped[str] = mapped_column(String(30), default=PaymentStatus.PENDING.value)
    payment_id: Mapped[str] = mapped_column(String(64), nullable=True)  # captured gateway payment, e.g. pay_XXXX

    # Cancellation audit trail
    cancellation_reason: Mapped[str] = mapped_column(String(500), nullable=True)
    cancelled_by: Mapped[str] = mapped_column(String(12), nullable=True)  # user|admin
    cancellation_requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    # Refund tracking
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)
    refund_percentage: Mapped[int] = mapped_column(Integer, default=0)
    refund_status: Mapped[str] = mapped_column(String(20), default=RefundStatus.NONE.value)
    refund_id: Mapped[str] = mapped_column(String(64), nullable=True)
    refund_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)  # last gateway attempt
    refund_processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_failure_reason: Mapped[str] = mapped_column(Text, nullable=True)

    admin_notes: Mapped[str] = mapped_column(Text, nullable=True)
    is_read_by_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Optimistic lock; bumped by SQLAlchemy on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("refund_amount >= 0 AND refund_amount <= total_price", name="ck_bookings_refund_amount_range"),
    )
    __mapper_args__ = {"version_id_col": version}
