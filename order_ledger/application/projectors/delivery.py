"""Delivery projector: ``deliveries`` and ``delivery_locations`` rows plus order status."""

from __future__ import annotations

from collections.abc import Sequence

from order_ledger.application.projectors.base import ProjectionResult, cascade, run_projection
from order_ledger.domain.aggregates import DeliveryState, fold_delivery
from order_ledger.domain.delivery_events import (
    DELIVERY_AGGREGATE,
    DeliveryEvent,
    DeliveryLocationUpdated,
    DeliveryStatus,
    parse_delivery_event,
)
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.projection_store import ProjectionStore, Row

# Delivery status → order status. Other statuses leave the order alone.
ORDER_STATUS_CASCADE: dict[DeliveryStatus, str] = {
    DeliveryStatus.COMPLETED: "delivered",
    DeliveryStatus.CANCELLED: "cancelled",
}


def delivery_row(state: DeliveryState) -> Row:
    location = state.current_location
    return {
        "id": state.id,
        "order_id": state.order_id,
        "delivery_person_id": state.delivery_person_id,
        "status": state.status.value,
        "pickup_address": state.pickup_address,
        "delivery_address": state.delivery_address,
        "current_latitude": location.latitude if location else None,
        "current_longitude": location.longitude if location else None,
        "estimated_delivery_time": state.estimated_delivery_time,
        "actual_delivery_time": state.actual_delivery_time,
        "notes": state.notes,
        "cancellation_reason": state.cancellation_reason,
        "version": state.version,
        "created_at": state.created_at,
        "updated_at": state.updated_at,
    }


def location_rows(events: Sequence[DeliveryEvent]) -> list[Row]:
    """One row per position ping, keyed so re-projection overwrites in place."""
    return [
        {
            "id": f"{e.aggregate_id}_{e.version}",
            "delivery_id": e.aggregate_id,
            "latitude": e.payload.latitude,
            "longitude": e.payload.longitude,
            "timestamp": e.payload.timestamp,
            "created_at": e.created_at,
        }
        for e in events
        if isinstance(e, DeliveryLocationUpdated)
    ]


async def _write_delivery(
    projection_store: ProjectionStore,
    state: DeliveryState,
    events: Sequence[DeliveryEvent],
    result: ProjectionResult,
) -> None:
    await projection_store.upsert("deliveries", delivery_row(state))
    for row in location_rows(events):
        await projection_store.upsert("delivery_locations", row)

    order_status = ORDER_STATUS_CASCADE.get(state.status)
    if order_status is not None:
        await cascade(
            projection_store, result, state.order_id, "status", order_status, state.updated_at
        )


async def project_deliveries(
    event_store: EventStore, projection_store: ProjectionStore
) -> ProjectionResult:
    """Rebuild delivery read models from the full delivery stream."""
    return await run_projection(
        event_store,
        projection_store,
        DELIVERY_AGGREGATE,
        parse_delivery_event,
        fold_delivery,
        _write_delivery,
    )
