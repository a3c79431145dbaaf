"""Projection store backends behave the same for the projectors."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

WHEN = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def payment_row(**overrides):
    row = {
        "id": "p-1",
        "order_id": "o-1",
        "user_id": "u-1",
        "amount": Decimal("15990.00"),
        "currency": "CLP",
        "payment_method": "credit_card",
        "status": "pending",
        "payment_intent_id": None,
        "charge_id": None,
        "refund_id": None,
        "refund_amount": None,
        "failure_reason": None,
        "void_reason": None,
        "metadata": {"channel": "app"},
        "version": 0,
        "created_at": WHEN,
        "updated_at": WHEN,
    }
    row.update(overrides)
    return row


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "sql":
        return request.getfixturevalue("sql_projection_store")
    return request.getfixturevalue("projection_store")


class TestProjectionStore:
    @pytest.mark.asyncio
    async def test_upsert_inserts_then_replaces(self, store):
        await store.upsert("payments", payment_row())
        await store.upsert("payments", payment_row(status="captured", version=2))

        rows = await store.all("payments")

        assert len(rows) == 1
        assert rows[0]["status"] == "captured"
        assert rows[0]["version"] == 2
        assert rows[0]["metadata"] == {"channel": "app"}
        assert rows[0]["amount"] == Decimal("15990")

    @pytest.mark.asyncio
    async def test_update_existing_row(self, store):
        await store.upsert("orders", {"id": "o-1", "status": "pending", "payment_status": None})

        written = await store.update("orders", "o-1", {"payment_status": "paid"})

        assert written is True
        row = await store.get("orders", "o-1")
        assert row["payment_status"] == "paid"
        assert row["status"] == "pending"

    @pytest.mark.asyncio
    async def test_update_missing_row_is_a_no_op(self, store):
        written = await store.update("orders", "o-404", {"status": "delivered"})

        assert written is False
        assert await store.get("orders", "o-404") is None
        assert await store.all("orders") == []

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, store):
        await store.upsert("payments", payment_row())

        row = await store.get("payments", "p-1")
        row["status"] = "tampered"

        assert (await store.get("payments", "p-1"))["status"] == "pending"


@pytest.mark.integration
class TestSqlProjectionStore:
    @pytest.mark.asyncio
    async def test_unknown_table(self, sql_projection_store):
        with pytest.raises(ValueError):
            await sql_projection_store.get("invoices", "i-1")
