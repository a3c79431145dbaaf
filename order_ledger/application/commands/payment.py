"""
Payment commands.

Lifecycle: pending → authorized → captured → {refunded | voided}, with
failed reachable from any non-terminal status. Amounts are Decimal; never
pass floats for money.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from order_ledger.application.commands.base import (
    build_model,
    command_handler,
    commit,
    load_aggregate,
    resolve_strict,
)
from order_ledger.config import Settings, get_settings
from order_ledger.domain.aggregates import PaymentAggregate, PaymentState
from order_ledger.domain.errors import ValidationError
from order_ledger.domain.events import build_event
from order_ledger.domain.payment_events import (
    PaymentAuthorized,
    PaymentAuthorizedPayload,
    PaymentCaptured,
    PaymentCapturedPayload,
    PaymentCreated,
    PaymentCreatedPayload,
    PaymentFailed,
    PaymentFailedPayload,
    PaymentRefunded,
    PaymentRefundedPayload,
    PaymentStatus,
    PaymentVoided,
    PaymentVoidedPayload,
)
from order_ledger.domain.value_objects import Money
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.snapshot_store import SnapshotStore


@command_handler("create_payment")
async def create_payment(
    event_store: EventStore,
    order_id: str,
    user_id: str,
    amount: Decimal | int | str,
    payment_method: str,
    currency: str | None = None,
    metadata: dict[str, Any] | None = None,
    *,
    settings: Settings | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    """
    Open a new payment stream at version 0.

    ``currency`` defaults to ``settings.default_currency`` (CLP).
    """
    settings = settings or get_settings()
    payment_id = str(uuid.uuid4())
    money = build_model(Money, amount=amount, currency=currency or settings.default_currency)
    payload = build_model(
        PaymentCreatedPayload,
        id=payment_id,
        order_id=order_id,
        user_id=user_id,
        amount=money.amount,
        currency=money.currency,
        payment_method=payment_method,
        metadata=metadata,
    )
    event = build_event(PaymentCreated, payment_id, 0, payload, correlation_id=correlation_id)
    return await commit(event_store, PaymentAggregate(), event)


@command_handler("authorize_payment")
async def authorize_payment(
    event_store: EventStore,
    payment_id: str,
    payment_intent_id: str,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(
        PaymentAuthorizedPayload, payment_id, payment_intent_id=payment_intent_id
    )
    payment = await load_aggregate(event_store, PaymentAggregate, payment_id, snapshot_store)
    if strict:
        payment.ensure_transition(PaymentStatus.AUTHORIZED, "authorize")

    event = build_event(
        PaymentAuthorized, payment_id, payment.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, payment, event, snapshot_store, settings)


@command_handler("capture_payment")
async def capture_payment(
    event_store: EventStore,
    payment_id: str,
    charge_id: str,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(PaymentCapturedPayload, payment_id, charge_id=charge_id)
    payment = await load_aggregate(event_store, PaymentAggregate, payment_id, snapshot_store)
    if strict:
        payment.ensure_transition(PaymentStatus.CAPTURED, "capture")

    event = build_event(
        PaymentCaptured, payment_id, payment.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, payment, event, snapshot_store, settings)


@command_handler("refund_payment")
async def refund_payment(
    event_store: EventStore,
    payment_id: str,
    refund_id: str,
    amount: Decimal | int | str | None = None,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    """
    Refund a captured payment.

    ``amount`` is a partial refund; omitted means the full amount.
    """
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(PaymentRefundedPayload, payment_id, refund_id=refund_id, amount=amount)
    payment = await load_aggregate(event_store, PaymentAggregate, payment_id, snapshot_store)
    state = payment.get_state()
    if strict:
        payment.ensure_transition(PaymentStatus.REFUNDED, "refund")
    if payload.amount is not None and payload.amount > state.amount:
        raise ValidationError(
            f"Refund amount {payload.amount} exceeds payment amount {state.amount}",
            aggregate_id=payment_id,
        )

    event = build_event(
        PaymentRefunded, payment_id, payment.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, payment, event, snapshot_store, settings)


@command_handler("fail_payment")
async def fail_payment(
    event_store: EventStore,
    payment_id: str,
    reason: str,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(PaymentFailedPayload, payment_id, reason=reason)
    payment = await load_aggregate(event_store, PaymentAggregate, payment_id, snapshot_store)
    if strict:
        payment.ensure_transition(PaymentStatus.FAILED, "fail")

    event = build_event(
        PaymentFailed, payment_id, payment.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, payment, event, snapshot_store, settings)


@command_handler("void_payment")
async def void_payment(
    event_store: EventStore,
    payment_id: str,
    reason: str | None = None,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> PaymentState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(PaymentVoidedPayload, payment_id, reason=reason)
    payment = await load_aggregate(event_store, PaymentAggregate, payment_id, snapshot_store)
    if strict:
        payment.ensure_transition(PaymentStatus.VOIDED, "void")

    event = build_event(
        PaymentVoided, payment_id, payment.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, payment, event, snapshot_store, settings)
