"""Cancellation refund policy.

    30+ days before trip  -> 100%
    15-29 days            -> 75%
    7-14 days             -> 50%
    under 7 days          -> 0%
"""
import math
from dataclasses import dataclass, asdict
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

SECONDS_PER_DAY = 24 * 60 * 60

# (minimum days until trip, refund percentage), checked in order
REFUND_TIERS: tuple[tuple[int, int], ...] = (
    (30, 100),
    (15, 75),
    (7, 50),
)


@dataclass(frozen=True)
class RefundQuote:
    refund_percentage: int
    refund_amount: int
    days_until_trip: int

    def to_dict(self) -> dict:
        return asdict(self)


def _as_utc(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def days_until(trip_date: date | datetime, now: datetime) -> int:
    delta = _as_utc(trip_date) - _as_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def refund_percentage_for(days_until_trip: int) -> int:
    for min_days, pct in REFUND_TIERS:
        if days_until_trip >= min_days:
            return pct
    return 0


def calculate_refund(total_price: int, trip_date: date | datetime, now: datetime) -> RefundQuote:
    if total_price < 0:
        raise ValueError("total_price must be >= 0")
    days = days_until(trip_date, now)
    pct = refund_percentage_for(days)
    amount = round_half_up(Decimal(total_price) * pct / 100)
    return RefundQuote(refund_percentage=pct, refund_amount=amount, days_until_trip=days)


def percentage_of(amount: int, total_price: int) -> int:
    """Back-derive the percentage an arbitrary refund amount represents (0 for a zero total)."""
    if total_price == 0:
        return 0
    return round_half_up(Decimal(amount) * 100 / Decimal(total_price))
