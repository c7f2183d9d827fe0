"""Audit trail for booking mutations.

Rows are staged on the caller's session and committed with the booking write,
so a rolled-back mutation never leaves an audit row behind. Each row carries
the booking's three lifecycle fields as they stand after the change.
"""
import uuid, json
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog
from app.models.booking import Booking
from app.models.user import User

SYSTEM_ACTOR = "system"


def _lifecycle(b: Booking) -> dict:
    return {"status": b.status, "paymentStatus": b.payment_status, "refundStatus": b.refund_status}


def log_booking_event(db: Session, actor: User | None, action: str, b: Booking, details: dict | None = None) -> AuditLog:
    payload = {**(details or {}), "state": _lifecycle(b)}
    row = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor.id if actor else SYSTEM_ACTOR,
        action=action,
        entity_type="booking",
        entity_id=b.id,
        details_json=json.dumps(payload, ensure_ascii=False, default=str),
    )
    db.add(row)
    return row


def booking_history(db: Session, booking_id: str) -> list[dict]:
    rows = db.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == "booking", AuditLog.entity_id == booking_id)
        .order_by(AuditLog.created_at.asc())
    ).scalars()
    return [
        {
            "action": r.action,
            "actorUserId": r.actor_user_id,
            "createdAt": r.created_at.isoformat() if r.created_at else None,
            "details": json.loads(r.details_json or "{}"),
        }
        for r in rows
    ]
