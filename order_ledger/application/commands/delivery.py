"""Delivery commands. Each takes the EventStore first and returns the new state."""

from __future__ import annotations

import uuid
from datetime import datetime

from order_ledger.application.commands.base import (
    build_model,
    command_handler,
    commit,
    load_aggregate,
    resolve_strict,
)
from order_ledger.config import Settings
from order_ledger.domain.aggregates import DeliveryAggregate, DeliveryState
from order_ledger.domain.delivery_events import (
    DeliveryAssigned,
    DeliveryAssignedPayload,
    DeliveryCancelled,
    DeliveryCancelledPayload,
    DeliveryCompleted,
    DeliveryCompletedPayload,
    DeliveryCreated,
    DeliveryCreatedPayload,
    DeliveryLocationUpdated,
    DeliveryLocationUpdatedPayload,
    DeliveryStatus,
    DeliveryStatusChanged,
    DeliveryStatusChangedPayload,
)
from order_ledger.domain.events import build_event, utc_now
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.snapshot_store import SnapshotStore


@command_handler("create_delivery")
async def create_delivery(
    event_store: EventStore,
    order_id: str,
    pickup_address: str,
    delivery_address: str,
    estimated_delivery_time: datetime | None = None,
    notes: str | None = None,
    *,
    correlation_id: str | None = None,
) -> DeliveryState:
    """Open a new delivery stream at version 0."""
    delivery_id = str(uuid.uuid4())
    payload = build_model(
        DeliveryCreatedPayload,
        id=delivery_id,
        order_id=order_id,
        pickup_address=pickup_address,
        delivery_address=delivery_address,
        estimated_delivery_time=estimated_delivery_time,
        notes=notes,
    )
    event = build_event(DeliveryCreated, delivery_id, 0, payload, correlation_id=correlation_id)
    return await commit(event_store, DeliveryAggregate(), event)


@command_handler("assign_delivery")
async def assign_delivery(
    event_store: EventStore,
    delivery_id: str,
    delivery_person_id: str,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> DeliveryState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(
        DeliveryAssignedPayload, delivery_id, delivery_person_id=delivery_person_id
    )
    delivery = await load_aggregate(event_store, DeliveryAggregate, delivery_id, snapshot_store)
    if strict:
        delivery.ensure_transition(DeliveryStatus.ASSIGNED, "assign")

    event = build_event(
        DeliveryAssigned, delivery_id, delivery.next_version, payload, correlation_id=correlation_id
    )
    return await commit(event_store, delivery, event, snapshot_store, settings)


@command_handler("update_delivery_status")
async def update_delivery_status(
    event_store: EventStore,
    delivery_id: str,
    status: DeliveryStatus | str,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> DeliveryState:
    """Record an explicit status change (e.g. the courier un-assigning)."""
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(DeliveryStatusChangedPayload, delivery_id, status=status)
    delivery = await load_aggregate(event_store, DeliveryAggregate, delivery_id, snapshot_store)
    if strict:
        delivery.ensure_transition(payload.status, f"change status to {payload.status.value}")

    event = build_event(
        DeliveryStatusChanged,
        delivery_id,
        delivery.next_version,
        payload,
        correlation_id=correlation_id,
    )
    return await commit(event_store, delivery, event, snapshot_store, settings)


@command_handler("update_delivery_location")
async def update_delivery_location(
    event_store: EventStore,
    delivery_id: str,
    latitude: float,
    longitude: float,
    timestamp: datetime | None = None,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> DeliveryState:
    """
    Record a courier position.

    The first ping on an assigned delivery moves it to in_progress (the fold
    does this, so replays agree).
    """
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(
        DeliveryLocationUpdatedPayload,
        delivery_id,
        latitude=latitude,
        longitude=longitude,
        timestamp=timestamp or utc_now(),
    )
    delivery = await load_aggregate(event_store, DeliveryAggregate, delivery_id, snapshot_store)
    if strict:
        delivery.ensure_active("update location of")

    event = build_event(
        DeliveryLocationUpdated,
        delivery_id,
        delivery.next_version,
        payload,
        correlation_id=correlation_id,
    )
    return await commit(event_store, delivery, event, snapshot_store, settings)


@command_handler("complete_delivery")
async def complete_delivery(
    event_store: EventStore,
    delivery_id: str,
    actual_delivery_time: datetime | None = None,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> DeliveryState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(
        DeliveryCompletedPayload,
        delivery_id,
        actual_delivery_time=actual_delivery_time or utc_now(),
    )
    delivery = await load_aggregate(event_store, DeliveryAggregate, delivery_id, snapshot_store)
    if strict:
        delivery.ensure_transition(DeliveryStatus.COMPLETED, "complete")

    event = build_event(
        DeliveryCompleted,
        delivery_id,
        delivery.next_version,
        payload,
        correlation_id=correlation_id,
    )
    return await commit(event_store, delivery, event, snapshot_store, settings)


@command_handler("cancel_delivery")
async def cancel_delivery(
    event_store: EventStore,
    delivery_id: str,
    reason: str | None = None,
    *,
    snapshot_store: SnapshotStore | None = None,
    settings: Settings | None = None,
    strict: bool | None = None,
    correlation_id: str | None = None,
) -> DeliveryState:
    settings, strict = resolve_strict(settings, strict)
    payload = build_model(DeliveryCancelledPayload, delivery_id, reason=reason)
    delivery = await load_aggregate(event_store, DeliveryAggregate, delivery_id, snapshot_store)
    if strict:
        delivery.ensure_transition(DeliveryStatus.CANCELLED, "cancel")

    event = build_event(
        DeliveryCancelled,
        delivery_id,
        delivery.next_version,
        payload,
        correlation_id=correlation_id,
    )
    return await commit(event_store, delivery, event, snapshot_store, settings)
