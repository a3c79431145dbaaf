"""
Event Store - The Append-Only Log Everything Else Is Derived From

What it does:
1. Stores every event that ever happened (append-only, immutable)
2. Returns one aggregate's events in version order (to rebuild state)
3. Returns one aggregate type's events in insertion order (for projectors)
4. Handles concurrency (optimistic locking prevents lost updates)

The version check and the write are ONE atomic operation inside the storage
backend. Computing "next version" from an earlier read and writing it
unconditionally is a race:

T0: Request A reads delivery (3 events) → next version 3
T0: Request B reads delivery (3 events) → next version 3
T1: A appends DeliveryAssigned at v3 ✓
T2: B appends DeliveryCancelled at v3 ✗ ConcurrencyConflictError

B must re-read (now 4 events) and decide again.

Architecture:
- EventStore: the gateway. Logging, metrics, input checks.
- EventStorageBackend: the atomic primitives (in-memory here, SQL in
  sql_event_store.py).
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from order_ledger.domain.errors import ConcurrencyConflictError, StoreUnavailableError
from order_ledger.domain.events import DomainEvent, EventRecord
from order_ledger.monitoring import metrics

logger = structlog.get_logger(__name__)


class EventStorageBackend(Protocol):
    """Interface for event storage (SQL, in-memory)."""

    async def append_event(self, record: EventRecord) -> EventRecord:
        """
        Append ``record`` iff ``record.version`` equals the number of events
        already stored for ``record.aggregate_id``.

        Raises ConcurrencyConflictError otherwise. Check and write must be
        atomic with respect to other writers.
        """
        ...

    async def get_events(
        self, aggregate_type: str, aggregate_id: str, from_version: int = 0
    ) -> list[EventRecord]:
        """Events for one aggregate, ascending by version."""
        ...

    async def get_events_by_aggregate_type(self, aggregate_type: str) -> list[EventRecord]:
        """All events for one aggregate type, in insertion order."""
        ...

    async def get_events_by_type(self, event_type: str) -> list[EventRecord]:
        """All events carrying one type tag, in insertion order."""
        ...

    async def count_events(self, aggregate_type: str, aggregate_id: str) -> int:
        """Number of events stored for one aggregate."""
        ...


class EventStore:
    """
    Event store gateway.

    All domain events flow through here. Command handlers and projectors
    receive an instance explicitly; there is no module-level store.
    """

    def __init__(self, storage: EventStorageBackend):
        self.storage = storage

    async def append(self, event: DomainEvent | EventRecord) -> EventRecord:
        """
        Append one event to its aggregate's stream.

        Raises:
            ConcurrencyConflictError: another writer already used this version.
            StoreUnavailableError: the backend could not be reached.
        """
        record = event.to_record() if isinstance(event, DomainEvent) else event

        logger.info(
            "event_store.append",
            aggregate_type=record.aggregate_type,
            aggregate_id=record.aggregate_id,
            event_type=record.type,
            version=record.version,
        )

        try:
            stored = await self.storage.append_event(record)
        except ConcurrencyConflictError as e:
            metrics.concurrency_conflicts_total.labels(
                aggregate_type=record.aggregate_type
            ).inc()
            logger.warning(
                "event_store.concurrency_conflict",
                aggregate_id=record.aggregate_id,
                expected_version=e.expected_version,
                actual_version=e.current_version,
            )
            raise
        except StoreUnavailableError as e:
            metrics.store_unavailable_total.labels(operation="append").inc()
            logger.error(
                "event_store.unavailable",
                operation="append",
                aggregate_id=record.aggregate_id,
                error=str(e),
            )
            raise

        metrics.events_appended_total.labels(
            aggregate_type=stored.aggregate_type, event_type=stored.type
        ).inc()
        return stored

    async def get_events_for_aggregate(
        self, aggregate_type: str, aggregate_id: str, from_version: int = 0
    ) -> list[EventRecord]:
        """
        All events for one aggregate, ascending by version.

        Repeated calls return a consistent, monotonically extending sequence.
        """
        return await self.storage.get_events(aggregate_type, aggregate_id, from_version)

    async def get_events_by_aggregate_type(self, aggregate_type: str) -> list[EventRecord]:
        """
        All events of one aggregate type (used by projectors).

        Order across aggregate ids is insertion order and carries no meaning.
        Order within one aggregate id is by version.
        """
        return await self.storage.get_events_by_aggregate_type(aggregate_type)

    async def get_events_by_type(self, event_type: str) -> list[EventRecord]:
        """
        All events of one type tag.

        Use cases:
        - Analytics: "every DeliveryCancelledEvent this week"
        - Monitoring: "how many PaymentFailedEvent in the last hour?"
        """
        return await self.storage.get_events_by_type(event_type)

    async def get_latest_version(self, aggregate_type: str, aggregate_id: str) -> int:
        """Version of the newest event, or -1 if the aggregate has none."""
        return await self.storage.count_events(aggregate_type, aggregate_id) - 1


# ============================================================================
# IN-MEMORY IMPLEMENTATION (for testing and local development)
# ============================================================================


class InMemoryEventStorage:
    """
    In-memory event storage.

    Production uses the SQL backend, but this is useful for:
    - Unit tests (fast, no DB required)
    - Local development (no infrastructure needed)

    An asyncio.Lock makes check-then-append one atomic step for every
    coroutine sharing this instance. Records are deep-copied in and out so
    callers never hold a reference into the log.
    """

    def __init__(self) -> None:
        self._streams: dict[str, list[EventRecord]] = {}
        self._global_events: list[EventRecord] = []
        self._lock = asyncio.Lock()

    async def append_event(self, record: EventRecord) -> EventRecord:
        async with self._lock:
            stream = self._streams.setdefault(record.aggregate_id, [])
            current_version = len(stream)

            if record.version != current_version:
                raise ConcurrencyConflictError(
                    record.aggregate_id, record.version, current_version
                )

            stored = record.model_copy(deep=True)
            stream.append(stored)
            self._global_events.append(stored)
            return record

    async def get_events(
        self, aggregate_type: str, aggregate_id: str, from_version: int = 0
    ) -> list[EventRecord]:
        return [
            e.model_copy(deep=True)
            for e in self._streams.get(aggregate_id, [])
            if e.aggregate_type == aggregate_type and e.version >= from_version
        ]

    async def get_events_by_aggregate_type(self, aggregate_type: str) -> list[EventRecord]:
        return [
            e.model_copy(deep=True)
            for e in self._global_events
            if e.aggregate_type == aggregate_type
        ]

    async def get_events_by_type(self, event_type: str) -> list[EventRecord]:
        return [e.model_copy(deep=True) for e in self._global_events if e.type == event_type]

    async def count_events(self, aggregate_type: str, aggregate_id: str) -> int:
        return sum(
            1 for e in self._streams.get(aggregate_id, []) if e.aggregate_type == aggregate_type
        )
