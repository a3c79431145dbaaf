"""
Delivery lifecycle events.

State machine:
    pending → assigned → in_progress → completed
        ↓         ↓           ↓
                cancelled

The stored tags keep the ``...Event`` suffix used by existing event data.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from order_ledger.domain.events import (
    DomainEvent,
    EventPayload,
    EventRecord,
    decode_event,
    utc_now,
)

DELIVERY_AGGREGATE = "delivery"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED)


# ============================================================================
# PAYLOADS
# ============================================================================


class DeliveryCreatedPayload(EventPayload):
    id: str
    order_id: str
    pickup_address: str = Field(min_length=1)
    delivery_address: str = Field(min_length=1)
    estimated_delivery_time: datetime | None = None
    notes: str | None = None


class DeliveryAssignedPayload(EventPayload):
    delivery_person_id: str = Field(min_length=1)


class DeliveryStatusChangedPayload(EventPayload):
    status: DeliveryStatus


class DeliveryLocationUpdatedPayload(EventPayload):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timestamp: datetime = Field(default_factory=utc_now)


class DeliveryCompletedPayload(EventPayload):
    actual_delivery_time: datetime


class DeliveryCancelledPayload(EventPayload):
    reason: str | None = None


# ============================================================================
# EVENTS
# ============================================================================


class DeliveryEventBase(DomainEvent):
    aggregate_type: Literal["delivery"] = DELIVERY_AGGREGATE


class DeliveryCreated(DeliveryEventBase):
    """First event of every delivery stream."""

    type: Literal["DeliveryCreatedEvent"] = "DeliveryCreatedEvent"
    payload: DeliveryCreatedPayload


class DeliveryAssigned(DeliveryEventBase):
    type: Literal["DeliveryAssignedEvent"] = "DeliveryAssignedEvent"
    payload: DeliveryAssignedPayload


class DeliveryStatusChanged(DeliveryEventBase):
    """Direct status override."""

    type: Literal["DeliveryStatusChangedEvent"] = "DeliveryStatusChangedEvent"
    payload: DeliveryStatusChangedPayload


class DeliveryLocationUpdated(DeliveryEventBase):
    """
    Courier position ping.

    Folding one onto an ``assigned`` delivery promotes it to ``in_progress``.
    Each one also becomes a row in the location history read model.
    """

    type: Literal["DeliveryLocationUpdatedEvent"] = "DeliveryLocationUpdatedEvent"
    payload: DeliveryLocationUpdatedPayload


class DeliveryCompleted(DeliveryEventBase):
    type: Literal["DeliveryCompletedEvent"] = "DeliveryCompletedEvent"
    payload: DeliveryCompletedPayload


class DeliveryCancelled(DeliveryEventBase):
    type: Literal["DeliveryCancelledEvent"] = "DeliveryCancelledEvent"
    payload: DeliveryCancelledPayload


DeliveryEvent = Annotated[
    Union[
        DeliveryCreated,
        DeliveryAssigned,
        DeliveryStatusChanged,
        DeliveryLocationUpdated,
        DeliveryCompleted,
        DeliveryCancelled,
    ],
    Field(discriminator="type"),
]

_delivery_adapter: TypeAdapter[DeliveryEvent] = TypeAdapter(DeliveryEvent)


def parse_delivery_event(record: EventRecord) -> DeliveryEvent:
    """Decode a stored delivery event. Raises CorruptEventError on bad data."""
    return decode_event(record, _delivery_adapter)
