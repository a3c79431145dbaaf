"""Scheduled projection: one run covers both aggregate types."""
import pytest

from order_ledger.application.commands import (
    authorize_payment,
    capture_payment,
    create_delivery,
    create_payment,
)
from order_ledger.workers.projection_worker import run_projections


class TestRunProjections:
    @pytest.mark.asyncio
    async def test_runs_every_projector(self, event_store, projection_store):
        await create_delivery(event_store, "o-1", "A", "B")
        payment = await create_payment(event_store, "o-1", "u-1", 1000, "card")
        await authorize_payment(event_store, payment.id, "pi_1")
        await capture_payment(event_store, payment.id, "ch_1")

        results = await run_projections(event_store, projection_store)

        assert [r.aggregate_type for r in results] == ["delivery", "payment"]
        assert [r.projected for r in results] == [1, 1]
        assert len(await projection_store.all("deliveries")) == 1
        assert (await projection_store.all("payments"))[0]["status"] == "captured"

    @pytest.mark.asyncio
    async def test_empty_log(self, event_store, projection_store):
        results = await run_projections(event_store, projection_store)

        assert all(r.projected == 0 and r.ok for r in results)
