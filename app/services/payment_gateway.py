"""Refund-issuing boundary to the payment gateway.

The workflow only depends on :class:`PaymentGateway`; routes receive a concrete
adapter through the ``get_payment_gateway`` dependency so tests can swap in a fake.
"""
from dataclasses import dataclass
from typing import Protocol

from app.core.config import Settings
from app.services.errors import GatewayFailure
from app.services.razorpay_client import RazorpayClient, RazorpayConfig, RazorpayError


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    status: str


class PaymentGateway(Protocol):
    def issue_refund(self, payment_id: str, amount_minor_units: int, metadata: dict) -> GatewayRefund:
        ...


class RazorpayGateway:
    FAILED_STATUSES = ("failed",)

    def __init__(self, client: RazorpayClient, speed: str = "normal"):
        self.client = client
        self.speed = speed

    def issue_refund(self, payment_id: str, amount_minor_units: int, metadata: dict) -> GatewayRefund:
        try:
            resp = self.client.refund_payment(
                payment_id=payment_id,
                amount=amount_minor_units,
                speed=self.speed,
                receipt=str(metadata.get("bookingRef") or metadata.get("bookingId") or ""),
                notes={k: str(v) for k, v in metadata.items() if v is not None},
            )
        except RazorpayError as e:
            raise GatewayFailure(str(e)) from e

        refund_id = str(resp.get("id") or "")
        status = str(resp.get("status") or "").lower()
        if not refund_id or status in self.FAILED_STATUSES:
            raise GatewayFailure(f"Razorpay refund not accepted (status={status or 'unknown'})")
        return GatewayRefund(refund_id=refund_id, status=status)


def to_minor_units(amount: int) -> int:
    return int(amount) * 100


def build_payment_gateway(cfg: Settings) -> PaymentGateway | None:
    """Return a configured gateway, or None when credentials are missing."""
    if not (cfg.RAZORPAY_KEY_ID and cfg.RAZORPAY_KEY_SECRET):
        return None
    client = RazorpayClient(RazorpayConfig(
        key_id=cfg.RAZORPAY_KEY_ID,
        key_secret=cfg.RAZORPAY_KEY_SECRET,
        host=cfg.RAZORPAY_HOST,
        timeout=cfg.RAZORPAY_TIMEOUT,
    ))
    return RazorpayGateway(client, speed=cfg.RAZORPAY_REFUND_SPEED)
