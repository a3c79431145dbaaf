"""
Domain Events - Immutable Facts About What Happened

Events are the source of truth, not read-model rows. A delivery's status is
whatever its ordered event stream folds to.

Two shapes live here:
- EventRecord: the persisted, wire-compatible envelope. The payload is plain
  JSON so any store can hold it without knowing the event vocabulary.
- DomainEvent: the typed view. Each event kind is one subclass with a Literal
  ``type`` tag and its own payload model, so every aggregate's vocabulary is a
  closed, discriminated union.

Payload keys are camelCase on the wire (``orderId``, ``pickupAddress``) and
snake_case in Python.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from order_ledger.domain.errors import CorruptEventError

E = TypeVar("E", bound="DomainEvent")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(v: datetime | str) -> datetime:
    """Naive timestamps are treated as UTC; aware ones are converted to UTC."""
    if isinstance(v, str):
        v = datetime.fromisoformat(v.replace("Z", "+00:00"))
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class EventRecord(BaseModel):
    """
    Persisted event envelope.

    Shape: {id, aggregate_id, aggregate_type, type, version, payload,
    metadata, created_at}. Versions start at 0 per aggregate id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    aggregate_id: str
    aggregate_type: str
    type: str
    version: int = Field(ge=0)
    payload: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: datetime | str) -> datetime:
        return _ensure_utc(v)


class EventPayload(BaseModel):
    """Base for tag-specific payloads. Unknown keys are ignored for forward compat."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DomainEvent(BaseModel):
    """
    Base class for all typed domain events.

    Design principle: events are IMMUTABLE and describe PAST FACTS.
    - Good: DeliveryAssigned (past tense)
    - Bad: AssignDelivery (that's a command)

    Subclasses pin ``aggregate_type`` and ``type`` with Literal defaults and
    declare a concrete ``payload`` model.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    aggregate_id: str
    aggregate_type: str
    type: str
    version: int = Field(ge=0)
    payload: EventPayload
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: datetime | str) -> datetime:
        return _ensure_utc(v)

    def to_record(self) -> EventRecord:
        """Flatten to the persisted envelope (payload becomes camelCase JSON)."""
        return EventRecord(
            id=self.id,
            aggregate_id=self.aggregate_id,
            aggregate_type=self.aggregate_type,
            type=self.type,
            version=self.version,
            payload=self.payload.model_dump(mode="json", by_alias=True, exclude_none=True),
            metadata=dict(self.metadata),
            created_at=self.created_at,
        )


def build_event(
    event_cls: type[E],
    aggregate_id: str,
    version: int,
    payload: EventPayload,
    correlation_id: str | None = None,
    causation_id: str | None = None,
) -> E:
    """
    Factory for new events with consistent tracing metadata.

    Metadata is opaque to the core; correlation and causation ids are
    carried only so callers can trace a command across services.
    """
    metadata: dict[str, Any] = {}
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    if causation_id:
        metadata["causation_id"] = causation_id
    return event_cls(
        aggregate_id=aggregate_id,
        version=version,
        payload=payload,
        metadata=metadata,
    )


def decode_event(record: EventRecord, adapter: TypeAdapter[Any]) -> Any:
    """
    Turn a stored envelope back into its typed event.

    Unknown tags and malformed payloads raise CorruptEventError; they are
    never dropped.
    """
    try:
        return adapter.validate_python(record.model_dump())
    except PydanticValidationError as e:
        raise CorruptEventError(
            f"Malformed {record.aggregate_type} event {record.type!r} "
            f"v{record.version} for {record.aggregate_id}: {e.error_count()} error(s)",
            aggregate_id=record.aggregate_id,
            version=record.version,
        ) from e
