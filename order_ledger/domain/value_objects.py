"""
Value Objects - Immutable Domain Concepts

Value objects have no identity: two are equal if their values are equal.
They validate command input before any event is built, so a bad latitude or a
negative amount never reaches the event log.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CURRENCY = "CLP"


class Money(BaseModel):
    """
    Money value object with currency.

    Never use a raw Decimal for money: always carry the currency.
    CLP has no minor unit, so amounts are not quantized here.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(gt=0)
    currency: str = DEFAULT_CURRENCY

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"Currency must be a 3-letter ISO 4217 code, got {v!r}")
        return v

    def __lt__(self, other: Money) -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency} to {other.currency}")
        return self.amount < other.amount

    def __gt__(self, other: Money) -> bool:
        return other < self

    def __repr__(self) -> str:
        return f"Money({self.amount}, {self.currency})"


class GeoLocation(BaseModel):
    """A courier position in WGS84 degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
