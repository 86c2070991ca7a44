"""
Money and Pay-Period Primitives

DESIGN DECISION: Money is always a Decimal quantized to cents.
Floats never enter the ledger; every amount is normalized at the model
boundary so sums compare exactly.

Pay periods are inclusive date ranges. Their storage key is derived
from the range itself, so the same range always maps to the same key.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, model_validator


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """
    Normalize a numeric value to a two-place Decimal.

    Floats are converted through their string form so 0.1 stays 0.10.
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, AfterValidator(to_money)]


def money_sum(amounts) -> Decimal:
    """Sum an iterable of amounts, returning ZERO for an empty iterable."""
    return to_money(sum(amounts, ZERO))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_key() -> str:
    """Short random identity key for stored documents."""
    return uuid4().hex[:12]


def period_key(start: date, end: date) -> str:
    """
    Deterministic pay period key.

    Example: 2024-01-01 .. 2024-01-14 -> "pp-20240101-20240114"
    """
    return f"pp-{start:%Y%m%d}-{end:%Y%m%d}"


class DateRange(BaseModel):
    """An inclusive range of calendar days."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode='after')
    def validate_order(self) -> 'DateRange':
        if self.end < self.start:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def key(self) -> str:
        return period_key(self.start, self.end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, other: 'DateRange') -> bool:
        return self.start <= other.end and other.start <= self.end

    def is_followed_by(self, other: 'DateRange') -> bool:
        """True when `other` begins the day after this range ends."""
        return other.start == self.end + timedelta(days=1)
