"""
Payment lifecycle events.

State machine:
    pending → authorized → captured → refunded
                                   ↘ voided
    any non-terminal state → failed

Gateway calls (Stripe) happen outside the core; these events only record
the outcome and the gateway references.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator

from order_ledger.domain.events import DomainEvent, EventPayload, EventRecord, decode_event
from order_ledger.domain.value_objects import DEFAULT_CURRENCY

PAYMENT_AGGREGATE = "payment"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"
    VOIDED = "voided"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.REFUNDED, PaymentStatus.FAILED, PaymentStatus.VOIDED)


# ============================================================================
# PAYLOADS
# ============================================================================


class PaymentCreatedPayload(EventPayload):
    id: str
    order_id: str
    user_id: str
    amount: Decimal = Field(gt=0)
    currency: str = DEFAULT_CURRENCY
    payment_method: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def default_currency(cls, v: str | None) -> str:
        # Older streams stored an explicit null
        return v or DEFAULT_CURRENCY


class PaymentAuthorizedPayload(EventPayload):
    payment_intent_id: str = Field(min_length=1)


class PaymentCapturedPayload(EventPayload):
    charge_id: str = Field(min_length=1)


class PaymentRefundedPayload(EventPayload):
    refund_id: str = Field(min_length=1)
    amount: Decimal | None = Field(default=None, gt=0)  # partial refund


class PaymentFailedPayload(EventPayload):
    reason: str


class PaymentVoidedPayload(EventPayload):
    reason: str | None = None


# ============================================================================
# EVENTS
# ============================================================================


class PaymentEventBase(DomainEvent):
    aggregate_type: Literal["payment"] = PAYMENT_AGGREGATE


class PaymentCreated(PaymentEventBase):
    """First event of every payment stream."""

    type: Literal["PaymentCreatedEvent"] = "PaymentCreatedEvent"
    payload: PaymentCreatedPayload


class PaymentAuthorized(PaymentEventBase):
    """
    Gateway reserved the funds.

    Authorized is not captured: the money has not moved yet.
    """

    type: Literal["PaymentAuthorizedEvent"] = "PaymentAuthorizedEvent"
    payload: PaymentAuthorizedPayload


class PaymentCaptured(PaymentEventBase):
    """Money actually moved. The order becomes ``paid``."""

    type: Literal["PaymentCapturedEvent"] = "PaymentCapturedEvent"
    payload: PaymentCapturedPayload


class PaymentRefunded(PaymentEventBase):
    type: Literal["PaymentRefundedEvent"] = "PaymentRefundedEvent"
    payload: PaymentRefundedPayload


class PaymentFailed(PaymentEventBase):
    type: Literal["PaymentFailedEvent"] = "PaymentFailedEvent"
    payload: PaymentFailedPayload


class PaymentVoided(PaymentEventBase):
    type: Literal["PaymentVoidedEvent"] = "PaymentVoidedEvent"
    payload: PaymentVoidedPayload


PaymentEvent = Annotated[
    Union[
        PaymentCreated,
        PaymentAuthorized,
        PaymentCaptured,
        PaymentRefunded,
        PaymentFailed,
        PaymentVoided,
    ],
    Field(discriminator="type"),
]

_payment_adapter: TypeAdapter[PaymentEvent] = TypeAdapter(PaymentEvent)


def parse_payment_event(record: EventRecord) -> PaymentEvent:
    """Decode a stored payment event. Raises CorruptEventError on bad data."""
    return decode_event(record, _payment_adapter)
