"""
Aggregates - Consistency Boundaries

An aggregate's state is derived solely from its own ordered event stream.

Key concepts:
1. Fold: a pure function ``state × event → state``. No I/O, no clock.
2. Version: the version of the last folded event. Every fold adds exactly one.
3. Transitions: the tables below say which statuses a command may move to.
   They are checked by command handlers before appending, never by the fold,
   so streams written before the tables existed still replay.

The same fold functions are used by command handlers and by projectors.
There is exactly one definition of "what an event does".
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Generic, TypeVar, assert_never

from pydantic import BaseModel, ConfigDict

from order_ledger.domain.delivery_events import (
    DELIVERY_AGGREGATE,
    DeliveryAssigned,
    DeliveryCancelled,
    DeliveryCompleted,
    DeliveryCreated,
    DeliveryEvent,
    DeliveryLocationUpdated,
    DeliveryStatus,
    DeliveryStatusChanged,
)
from order_ledger.domain.errors import CorruptEventError, InvalidTransitionError
from order_ledger.domain.payment_events import (
    PAYMENT_AGGREGATE,
    PaymentAuthorized,
    PaymentCaptured,
    PaymentCreated,
    PaymentEvent,
    PaymentFailed,
    PaymentRefunded,
    PaymentStatus,
    PaymentVoided,
)
from order_ledger.domain.value_objects import DEFAULT_CURRENCY, GeoLocation

S = TypeVar("S", bound="AggregateState")
EV = TypeVar("EV")


DELIVERY_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.ASSIGNED: frozenset(
        {
            DeliveryStatus.PENDING,
            DeliveryStatus.IN_PROGRESS,
            DeliveryStatus.COMPLETED,
            DeliveryStatus.CANCELLED,
        }
    ),
    DeliveryStatus.IN_PROGRESS: frozenset({DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.COMPLETED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.AUTHORIZED, PaymentStatus.FAILED, PaymentStatus.VOIDED}
    ),
    PaymentStatus.AUTHORIZED: frozenset(
        {PaymentStatus.CAPTURED, PaymentStatus.FAILED, PaymentStatus.VOIDED}
    ),
    PaymentStatus.CAPTURED: frozenset(
        {PaymentStatus.REFUNDED, PaymentStatus.VOIDED, PaymentStatus.FAILED}
    ),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.VOIDED: frozenset(),
}


class AggregateState(BaseModel):
    """Folded, in-memory view. Never the system of record."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: int
    created_at: datetime
    updated_at: datetime


class DeliveryState(AggregateState):
    order_id: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    pickup_address: str
    delivery_address: str
    delivery_person_id: str | None = None
    current_location: GeoLocation | None = None
    estimated_delivery_time: datetime | None = None
    actual_delivery_time: datetime | None = None
    notes: str | None = None
    cancellation_reason: str | None = None


class PaymentState(AggregateState):
    order_id: str
    user_id: str
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING
    metadata: dict[str, Any] | None = None
    payment_intent_id: str | None = None
    charge_id: str | None = None
    refund_id: str | None = None
    refund_amount: Decimal | None = None
    failure_reason: str | None = None
    void_reason: str | None = None


# ============================================================================
# FOLDS
# ============================================================================


def _advance(state: S, event: Any, **changes: Any) -> S:
    """Copy ``state`` with ``changes`` and bump the version by one."""
    return state.model_copy(
        update={**changes, "version": state.version + 1, "updated_at": event.created_at}
    )


def _missing_creation(aggregate_type: str, event: Any) -> CorruptEventError:
    return CorruptEventError(
        f"{aggregate_type} stream {event.aggregate_id} does not start with a "
        f"creation event (got {event.type} at v{event.version})",
        aggregate_id=event.aggregate_id,
        version=event.version,
    )


def fold_delivery(state: DeliveryState | None, event: DeliveryEvent) -> DeliveryState:
    """
    Apply one delivery event.

    CRITICAL: This must be DETERMINISTIC. Same events → same state (always).
    """
    if isinstance(event, DeliveryCreated):
        if state is not None:
            raise CorruptEventError(
                f"Duplicate DeliveryCreated for {event.aggregate_id} at v{event.version}",
                aggregate_id=event.aggregate_id,
                version=event.version,
            )
        p = event.payload
        return DeliveryState(
            id=p.id,
            order_id=p.order_id,
            pickup_address=p.pickup_address,
            delivery_address=p.delivery_address,
            estimated_delivery_time=p.estimated_delivery_time,
            notes=p.notes,
            status=DeliveryStatus.PENDING,
            version=0,
            created_at=event.created_at,
            updated_at=event.created_at,
        )

    if state is None:
        raise _missing_creation(DELIVERY_AGGREGATE, event)

    if isinstance(event, DeliveryAssigned):
        return _advance(
            state,
            event,
            delivery_person_id=event.payload.delivery_person_id,
            status=DeliveryStatus.ASSIGNED,
        )
    elif isinstance(event, DeliveryStatusChanged):
        return _advance(state, event, status=event.payload.status)
    elif isinstance(event, DeliveryLocationUpdated):
        # A position ping means the courier is moving
        status = (
            DeliveryStatus.IN_PROGRESS
            if state.status == DeliveryStatus.ASSIGNED
            else state.status
        )
        return _advance(
            state,
            event,
            current_location=GeoLocation(
                latitude=event.payload.latitude, longitude=event.payload.longitude
            ),
            status=status,
        )
    elif isinstance(event, DeliveryCompleted):
        return _advance(
            state,
            event,
            status=DeliveryStatus.COMPLETED,
            actual_delivery_time=event.payload.actual_delivery_time,
        )
    elif isinstance(event, DeliveryCancelled):
        return _advance(
            state,
            event,
            status=DeliveryStatus.CANCELLED,
            cancellation_reason=event.payload.reason,
        )
    else:
        assert_never(event)


def fold_payment(state: PaymentState | None, event: PaymentEvent) -> PaymentState:
    """Apply one payment event. Pure and deterministic, like fold_delivery."""
    if isinstance(event, PaymentCreated):
        if state is not None:
            raise CorruptEventError(
                f"Duplicate PaymentCreated for {event.aggregate_id} at v{event.version}",
                aggregate_id=event.aggregate_id,
                version=event.version,
            )
        p = event.payload
        return PaymentState(
            id=p.id,
            order_id=p.order_id,
            user_id=p.user_id,
            amount=p.amount,
            currency=p.currency,
            payment_method=p.payment_method,
            metadata=p.metadata,
            status=PaymentStatus.PENDING,
            version=0,
            created_at=event.created_at,
            updated_at=event.created_at,
        )

    if state is None:
        raise _missing_creation(PAYMENT_AGGREGATE, event)

    if isinstance(event, PaymentAuthorized):
        return _advance(
            state,
            event,
            status=PaymentStatus.AUTHORIZED,
            payment_intent_id=event.payload.payment_intent_id,
        )
    elif isinstance(event, PaymentCaptured):
        return _advance(
            state, event, status=PaymentStatus.CAPTURED, charge_id=event.payload.charge_id
        )
    elif isinstance(event, PaymentRefunded):
        return _advance(
            state,
            event,
            status=PaymentStatus.REFUNDED,
            refund_id=event.payload.refund_id,
            refund_amount=event.payload.amount or state.amount,
        )
    elif isinstance(event, PaymentFailed):
        return _advance(
            state, event, status=PaymentStatus.FAILED, failure_reason=event.payload.reason
        )
    elif isinstance(event, PaymentVoided):
        return _advance(
            state, event, status=PaymentStatus.VOIDED, void_reason=event.payload.reason
        )
    else:
        assert_never(event)


def replay(
    events: Iterable[Any],
    fold: Callable[[Any, Any], S],
    initial: S | None = None,
) -> S | None:
    """
    Fold ``events`` in order, starting from ``initial`` (or empty).

    Versions must continue exactly where the state left off. A gap or a
    duplicate means the stream is corrupt, not that we should guess.
    """
    state = initial
    for event in events:
        expected = state.version + 1 if state is not None else 0
        if event.version != expected:
            raise CorruptEventError(
                f"Version gap in stream {event.aggregate_id}: "
                f"expected v{expected}, got v{event.version}",
                aggregate_id=event.aggregate_id,
                version=event.version,
            )
        state = fold(state, event)
    return state


# ============================================================================
# AGGREGATE ROOTS
# ============================================================================


class Aggregate(Generic[S, EV]):
    """
    Thin stateful wrapper around a fold.

    ``apply_event`` folds, ``get_state`` reads. Command handlers use it to
    hold the current state while they decide what to append next.
    """

    aggregate_type: ClassVar[str]
    state_model: ClassVar[type[AggregateState]]
    transitions: ClassVar[dict[Any, frozenset[Any]]]

    def __init__(self, state: S | None = None):
        self._state = state

    @staticmethod
    def fold(state: Any, event: Any) -> Any:
        raise NotImplementedError

    @classmethod
    def from_events(cls, events: Iterable[EV], initial: S | None = None) -> Aggregate[S, EV]:
        return cls(replay(events, cls.fold, initial))

    @classmethod
    def from_snapshot(cls, state: dict[str, Any]) -> S:
        return cls.state_model.model_validate(state)  # type: ignore[return-value]

    @property
    def exists(self) -> bool:
        return self._state is not None

    @property
    def version(self) -> int:
        return self._state.version if self._state is not None else -1

    @property
    def next_version(self) -> int:
        return self.version + 1

    def apply_event(self, event: EV) -> S:
        self._state = type(self).fold(self._state, event)
        return self._state

    def get_state(self) -> S:
        if self._state is None:
            raise LookupError(f"{self.aggregate_type} has no events yet")
        return self._state

    def can_transition(self, target: Any) -> bool:
        current = self.get_state().status  # type: ignore[attr-defined]
        return target in self.transitions[current]

    def ensure_transition(self, target: Any, action: str) -> None:
        """Raise InvalidTransitionError unless ``target`` is reachable from here."""
        if not self.can_transition(target):
            state: Any = self.get_state()
            raise InvalidTransitionError(self.aggregate_type, state.id, state.status.value, action)

    def ensure_active(self, action: str) -> None:
        """Raise InvalidTransitionError if the aggregate is in a terminal status."""
        state: Any = self.get_state()
        if state.status.is_terminal:
            raise InvalidTransitionError(self.aggregate_type, state.id, state.status.value, action)


class DeliveryAggregate(Aggregate[DeliveryState, DeliveryEvent]):
    aggregate_type = DELIVERY_AGGREGATE
    state_model = DeliveryState
    transitions = DELIVERY_TRANSITIONS
    fold = staticmethod(fold_delivery)


class PaymentAggregate(Aggregate[PaymentState, PaymentEvent]):
    aggregate_type = PAYMENT_AGGREGATE
    state_model = PaymentState
    transitions = PAYMENT_TRANSITIONS
    fold = staticmethod(fold_payment)
