"""
Event store: append-only, contiguous versions, optimistic concurrency.

The same checks run against the in-memory backend and the SQL backend
(aiosqlite), since both must give identical guarantees.
"""
import asyncio

import pytest

from order_ledger.domain.errors import ConcurrencyConflictError
from order_ledger.domain.events import EventRecord


def record(
    aggregate_id: str, version: int, type_: str = "DeliveryAssignedEvent", **kw
) -> EventRecord:
    return EventRecord(
        aggregate_id=aggregate_id,
        aggregate_type=kw.pop("aggregate_type", "delivery"),
        type=type_,
        version=version,
        payload=kw.pop("payload", {"deliveryPersonId": "courier-7"}),
        **kw,
    )


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Parametrize over both backends."""
    if request.param == "sql":
        return request.getfixturevalue("sql_event_store")
    return request.getfixturevalue("event_store")


class TestAppend:
    @pytest.mark.asyncio
    async def test_versions_are_contiguous_from_zero(self, store):
        for version in range(3):
            await store.append(record("d-1", version))

        events = await store.get_events_for_aggregate("delivery", "d-1")

        assert [e.version for e in events] == [0, 1, 2]
        assert await store.get_latest_version("delivery", "d-1") == 2

    @pytest.mark.asyncio
    async def test_first_event_must_be_version_zero(self, store):
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await store.append(record("d-1", 1))

        assert exc_info.value.expected_version == 1
        assert exc_info.value.current_version == 0
        assert await store.get_events_for_aggregate("delivery", "d-1") == []

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, store):
        await store.append(record("d-1", 0))
        await store.append(record("d-1", 1))

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await store.append(record("d-1", 1))

        assert exc_info.value.aggregate_id == "d-1"
        assert exc_info.value.current_version == 2
        assert len(await store.get_events_for_aggregate("delivery", "d-1")) == 2

    @pytest.mark.asyncio
    async def test_streams_are_independent(self, store):
        await store.append(record("d-1", 0))
        await store.append(record("d-2", 0))

        assert await store.get_latest_version("delivery", "d-1") == 0
        assert await store.get_latest_version("delivery", "d-2") == 0

    @pytest.mark.asyncio
    async def test_stored_record_round_trips(self, store):
        original = record("d-1", 0, metadata={"correlation_id": "req-1"})
        await store.append(original)

        [stored] = await store.get_events_for_aggregate("delivery", "d-1")

        assert stored.id == original.id
        assert stored.payload == original.payload
        assert stored.metadata == {"correlation_id": "req-1"}
        assert stored.created_at == original.created_at


class TestReads:
    @pytest.mark.asyncio
    async def test_latest_version_of_unknown_aggregate(self, store):
        assert await store.get_latest_version("delivery", "missing") == -1

    @pytest.mark.asyncio
    async def test_from_version(self, store):
        for version in range(4):
            await store.append(record("d-1", version))

        tail = await store.get_events_for_aggregate("delivery", "d-1", from_version=2)

        assert [e.version for e in tail] == [2, 3]

    @pytest.mark.asyncio
    async def test_by_aggregate_type_keeps_insertion_order(self, store):
        await store.append(record("d-1", 0))
        await store.append(record("d-2", 0))
        await store.append(record("d-1", 1))
        await store.append(
            record(
                "p-1", 0, "PaymentFailedEvent", aggregate_type="payment", payload={"reason": "x"}
            )
        )

        events = await store.get_events_by_aggregate_type("delivery")

        assert [(e.aggregate_id, e.version) for e in events] == [("d-1", 0), ("d-2", 0), ("d-1", 1)]

    @pytest.mark.asyncio
    async def test_by_event_type(self, store):
        await store.append(record("d-1", 0, "DeliveryCreatedEvent"))
        await store.append(record("d-1", 1))
        await store.append(record("d-2", 0, "DeliveryCreatedEvent"))

        created = await store.get_events_by_type("DeliveryCreatedEvent")

        assert [e.aggregate_id for e in created] == ["d-1", "d-2"]

    @pytest.mark.asyncio
    async def test_reads_extend_monotonically(self, store):
        await store.append(record("d-1", 0))
        first = await store.get_events_for_aggregate("delivery", "d-1")
        await store.append(record("d-1", 1))
        second = await store.get_events_for_aggregate("delivery", "d-1")

        assert second[: len(first)] == first

    @pytest.mark.asyncio
    async def test_readers_cannot_rewrite_the_log(self, store):
        appended = record("d-1", 0, payload={"deliveryPersonId": "courier-7"})
        await store.append(appended)
        appended.payload["deliveryPersonId"] = "changed-after-append"

        read = await store.get_events_for_aggregate("delivery", "d-1")
        read[0].payload["deliveryPersonId"] = "changed-by-reader"
        (await store.get_events_by_aggregate_type("delivery"))[0].metadata["x"] = 1
        (await store.get_events_by_type("DeliveryAssignedEvent"))[0].payload.clear()

        stored = (await store.get_events_for_aggregate("delivery", "d-1"))[0]
        assert stored.payload == {"deliveryPersonId": "courier-7"}
        assert stored.metadata == {}


class TestConcurrency:
    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_appends_have_exactly_one_winner(self, store):
        """
        Ten writers all read version 1 and race to append it.

        Exactly one may succeed; the rest see ConcurrencyConflictError.
        """
        await store.append(record("d-1", 0))

        results = await asyncio.gather(
            *(store.append(record("d-1", 1)) for _ in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, EventRecord)]
        conflicts = [r for r in results if isinstance(r, ConcurrencyConflictError)]
        assert len(winners) == 1
        assert len(conflicts) == 9

        events = await store.get_events_for_aggregate("delivery", "d-1")
        assert [e.version for e in events] == [0, 1]
        assert events[1].id == winners[0].id
