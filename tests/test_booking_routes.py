from datetime import timedelta

from app.api.deps import get_payment_gateway
from app.main import app
from app.services.errors import GatewayFailure

from conftest import NOW, auth


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_authentication(client, make_booking):
    b = make_booking()
    assert client.get(f"/api/v1/bookings/{b.id}/refund-preview").status_code == 401
    r = client.get(f"/api/v1/bookings/{b.id}", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_get_booking_owner_admin_and_stranger(client, make_booking, customer, admin, other_customer):
    b = make_booking()
    r = client.get(f"/api/v1/bookings/{b.id}", headers=auth(customer))
    assert r.status_code == 200
    assert r.json()["bookingRef"] == b.booking_ref
    assert client.get(f"/api/v1/bookings/{b.id}", headers=auth(admin)).status_code == 200
    assert client.get(f"/api/v1/bookings/{b.id}", headers=auth(other_customer)).status_code == 403
    assert client.get("/api/v1/bookings/nope", headers=auth(admin)).status_code == 404


def test_refund_preview(client, make_booking, customer):
    b = make_booking(total_price=5500, days=10)
    r = client.get(f"/api/v1/bookings/{b.id}/refund-preview", headers=auth(customer))
    assert r.status_code == 200
    assert r.json() == {
        "refundPercentage": 50,
        "refundAmount": 2750,
        "daysUntilTrip": 10,
        "totalPrice": 5500,
        "paymentStatus": "paid",
        "tripDate": b.trip_date.isoformat(),
    }


def test_request_then_approve_then_refund(client, db, make_booking, customer, admin, gateway):
    b = make_booking(total_price=18500, days=35)

    r = client.put(f"/api/v1/bookings/{b.id}/request-cancel", json={"reason": "Family emergency"}, headers=auth(customer))
    assert r.status_code == 200
    body = r.json()
    assert body["booking"]["status"] == "cancellation_requested"
    assert body["booking"]["refundStatus"] == "pending"
    assert body["refundPreview"] == {"refundPercentage": 100, "refundAmount": 18500, "daysUntilTrip": 35}

    r = client.get("/api/v1/admin/bookings", params={"status": "cancellation_requested", "unread": True}, headers=auth(admin))
    assert [item["id"] for item in r.json()["items"]] == [b.id]

    r = client.put(f"/api/v1/bookings/{b.id}/approve-cancel", json={"adminNotes": "Approved per policy"}, headers=auth(admin))
    assert r.status_code == 200
    booking = r.json()["booking"]
    assert booking["status"] == "cancelled"
    assert booking["paymentStatus"] == "refunded"
    assert booking["refundStatus"] == "pending"
    assert booking["adminNotes"] == "Approved per policy"

    r = client.post(f"/api/v1/bookings/{b.id}/process-refund", headers=auth(admin))
    assert r.status_code == 200
    body = r.json()
    assert body["queued"] is False
    assert body["refundId"] == "rfnd_test_0001"
    assert body["booking"]["refundStatus"] == "completed"
    assert gateway.calls[0]["amount"] == 1850000

    r = client.post(f"/api/v1/bookings/{b.id}/process-refund", headers=auth(admin))
    assert r.status_code == 409


def test_customer_cannot_use_admin_endpoints(client, make_booking, customer):
    b = make_booking()
    for method, path in [
        ("put", "approve-cancel"),
        ("put", "reject-cancel"),
        ("post", "process-refund"),
        ("put", "status"),
    ]:
        r = client.request(method.upper(), f"/api/v1/bookings/{b.id}/{path}", json={"status": "completed"}, headers=auth(customer))
        assert r.status_code == 403, path


def test_request_then_reject(client, make_booking, customer, admin):
    b = make_booking()
    client.put(f"/api/v1/bookings/{b.id}/request-cancel", json={"reason": "x"}, headers=auth(customer))
    r = client.put(f"/api/v1/bookings/{b.id}/reject-cancel", json={}, headers=auth(admin))
    assert r.status_code == 200
    booking = r.json()["booking"]
    assert booking["status"] == "confirmed"
    assert booking["refundAmount"] == 0
    assert booking["refundStatus"] == "none"
    assert booking["cancellationReason"] is None


def test_cancelled_booking_rejects_every_workflow_call(client, make_booking, customer, admin):
    b = make_booking(status="cancelled")
    before = client.get(f"/api/v1/bookings/{b.id}", headers=auth(admin)).json()

    r = client.put(f"/api/v1/bookings/{b.id}/request-cancel", json={"reason": "x"}, headers=auth(customer))
    assert r.status_code == 400
    assert "'cancelled'" in r.json()["detail"]
    assert client.put(f"/api/v1/bookings/{b.id}/approve-cancel", json={}, headers=auth(admin)).status_code == 400
    assert client.put(f"/api/v1/bookings/{b.id}/reject-cancel", json={}, headers=auth(admin)).status_code == 400

    assert client.get(f"/api/v1/bookings/{b.id}", headers=auth(admin)).json() == before


def test_override_refund_amount(client, make_booking, admin):
    b = make_booking(total_price=5000, days=2)
    r = client.put(f"/api/v1/bookings/{b.id}/approve-cancel", json={"overrideRefundAmount": 1234}, headers=auth(admin))
    booking = r.json()["booking"]
    assert booking["refundAmount"] == 1234
    assert booking["refundPercentage"] == 25
    assert client.put(f"/api/v1/bookings/{make_booking().id}/approve-cancel", json={"overrideRefundAmount": -1}, headers=auth(admin)).status_code == 422


def test_process_refund_gateway_failure_returns_502(client, make_booking, admin):
    app.dependency_overrides[get_payment_gateway] = lambda: _FailingGateway()
    b = make_booking()
    client.put(f"/api/v1/bookings/{b.id}/approve-cancel", json={}, headers=auth(admin))

    r = client.post(f"/api/v1/bookings/{b.id}/process-refund", headers=auth(admin))

    assert r.status_code == 502
    assert "insufficient balance" in r.json()["detail"]
    booking = client.get(f"/api/v1/bookings/{b.id}", headers=auth(admin)).json()
    assert booking["status"] == "cancelled"
    assert booking["refundStatus"] == "failed"


def test_process_refund_without_gateway_is_queued(client, make_booking, admin):
    app.dependency_overrides[get_payment_gateway] = lambda: None
    b = make_booking()
    client.put(f"/api/v1/bookings/{b.id}/approve-cancel", json={}, headers=auth(admin))

    r = client.post(f"/api/v1/bookings/{b.id}/process-refund", headers=auth(admin))

    assert r.status_code == 200
    assert r.json()["queued"] is True
    assert r.json()["booking"]["refundStatus"] == "pending"


def test_status_endpoint(client, make_booking, admin):
    b = make_booking(status="completed")
    r = client.put(f"/api/v1/bookings/{b.id}/status", json={"status": "confirmed"}, headers=auth(admin))
    assert r.status_code == 400
    assert "completed" in r.json()["detail"]

    r = client.put(f"/api/v1/bookings/{b.id}/status", json={"paymentStatus": "refunded"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["booking"]["paymentStatus"] == "refunded"
    assert r.json()["booking"]["status"] == "completed"

    assert client.put(f"/api/v1/bookings/{b.id}/status", json={}, headers=auth(admin)).status_code == 400
    assert client.put(f"/api/v1/bookings/{b.id}/status", json={"status": "archived"}, headers=auth(admin)).status_code == 422


def test_force_payment_status_and_mark_read(client, make_booking, admin):
    b = make_booking(payment_status="pending")
    r = client.put(f"/api/v1/bookings/{b.id}/payment-status", json={"paymentStatus": "paid"}, headers=auth(admin))
    assert r.json()["booking"]["paymentStatus"] == "paid"

    r = client.put(f"/api/v1/bookings/{b.id}/mark-read", headers=auth(admin))
    assert r.json()["booking"]["isReadByAdmin"] is True


class _FailingGateway:
    def issue_refund(self, payment_id, amount_minor_units, metadata):
        raise GatewayFailure("Razorpay 400: Refund failed due to insufficient balance")


def test_admin_listing_rejects_out_of_range_limit(client, make_booking, admin):
    make_booking()
    assert client.get("/api/v1/admin/bookings", params={"limit": -1}, headers=auth(admin)).status_code == 422
    assert client.get("/api/v1/admin/bookings", params={"limit": 501}, headers=auth(admin)).status_code == 422
    assert client.get("/api/v1/admin/bookings", params={"limit": 1}, headers=auth(admin)).json()["total"] == 1


def test_reset_stuck_refund_and_read_audit_trail(client, make_booking, customer, admin):
    b = make_booking(
        total_price=5500,
        status="cancelled",
        payment_status="partially_refunded",
        refund_amount=2750,
        refund_percentage=50,
        refund_status="processing",
        refund_started_at=NOW - timedelta(minutes=1),
    )
    url = f"/api/v1/bookings/{b.id}/reset-refund"
    assert client.put(url, json={}, headers=auth(customer)).status_code == 403

    r = client.post(f"/api/v1/bookings/{b.id}/process-refund", headers=auth(admin))
    assert r.status_code == 409

    r = client.put(url, json={"refundId": "rfnd_dashboard"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["booking"]["refundStatus"] == "completed"
    assert r.json()["booking"]["refundId"] == "rfnd_dashboard"

    assert client.put(url, json={}, headers=auth(admin)).status_code == 400

    r = client.get(f"/api/v1/admin/bookings/{b.id}/audit", headers=auth(admin))
    assert r.status_code == 200
    assert [item["action"] for item in r.json()["items"]] == ["refund.reset_completed"]
    assert client.get(f"/api/v1/admin/bookings/{b.id}/audit", headers=auth(customer)).status_code == 403
    assert client.get("/api/v1/admin/bookings/missing/audit", headers=auth(admin)).status_code == 404
