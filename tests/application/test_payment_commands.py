"""Payment commands against the in-memory store."""
import asyncio
from decimal import Decimal

import pytest

from order_ledger.application.commands import (
    authorize_payment,
    capture_payment,
    create_payment,
    fail_payment,
    refund_payment,
    void_payment,
)
from order_ledger.domain.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from order_ledger.domain.payment_events import PaymentStatus
from order_ledger.infrastructure import EventStore, InMemoryEventStorage


class YieldingStorage(InMemoryEventStorage):
    """Hands control back to the loop after every read so commands interleave."""

    async def get_events(self, *args, **kwargs):
        events = await super().get_events(*args, **kwargs)
        await asyncio.sleep(0)
        return events


async def captured_payment(event_store, amount="15990"):
    payment = await create_payment(event_store, "o-1", "u-1", amount, "credit_card")
    await authorize_payment(event_store, payment.id, "pi_123")
    return await capture_payment(event_store, payment.id, "ch_456")


class TestPaymentLifecycle:
    @pytest.mark.asyncio
    async def test_create_defaults_to_clp(self, event_store, test_settings):
        payment = await create_payment(
            event_store,
            order_id="o-1",
            user_id="u-1",
            amount=Decimal("15990"),
            payment_method="credit_card",
            metadata={"channel": "app"},
            settings=test_settings,
        )

        assert payment.version == 0
        assert payment.status == PaymentStatus.PENDING
        assert payment.currency == "CLP"
        assert payment.amount == Decimal("15990")
        assert payment.metadata == {"channel": "app"}

    @pytest.mark.asyncio
    async def test_explicit_currency_is_normalized(self, event_store):
        payment = await create_payment(event_store, "o-1", "u-1", "19.99", "paypal", "usd")

        assert payment.currency == "USD"
        [event] = await event_store.get_events_for_aggregate("payment", payment.id)
        assert event.payload["amount"] == "19.99"
        assert event.payload["paymentMethod"] == "paypal"

    @pytest.mark.asyncio
    async def test_authorize_then_capture(self, event_store):
        payment = await captured_payment(event_store)

        assert payment.status == PaymentStatus.CAPTURED
        assert payment.payment_intent_id == "pi_123"
        assert payment.charge_id == "ch_456"
        assert payment.version == 2

    @pytest.mark.asyncio
    async def test_partial_refund(self, event_store):
        payment = await captured_payment(event_store)

        refunded = await refund_payment(event_store, payment.id, "re_1", Decimal("5000"))

        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.refund_amount == Decimal("5000")
        assert refunded.version == 3

    @pytest.mark.asyncio
    async def test_void_captured_payment(self, event_store):
        payment = await captured_payment(event_store)

        voided = await void_payment(event_store, payment.id, "order cancelled")

        assert voided.status == PaymentStatus.VOIDED
        assert voided.void_reason == "order cancelled"

    @pytest.mark.asyncio
    async def test_fail_from_pending(self, event_store):
        payment = await create_payment(event_store, "o-1", "u-1", 1000, "credit_card")

        failed = await fail_payment(event_store, payment.id, "card_declined")

        assert failed.status == PaymentStatus.FAILED
        assert failed.failure_reason == "card_declined"


class TestPaymentErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-10", "abc"])
    async def test_invalid_amount(self, event_store, amount):
        with pytest.raises(ValidationError):
            await create_payment(event_store, "o-1", "u-1", amount, "credit_card")

    @pytest.mark.asyncio
    async def test_invalid_currency(self, event_store):
        with pytest.raises(ValidationError):
            await create_payment(event_store, "o-1", "u-1", "10", "credit_card", "PESOS")

    @pytest.mark.asyncio
    async def test_unknown_payment(self, event_store):
        with pytest.raises(NotFoundError):
            await capture_payment(event_store, "missing", "ch_1")

    @pytest.mark.asyncio
    async def test_capture_requires_authorization(self, event_store):
        payment = await create_payment(event_store, "o-1", "u-1", 1000, "credit_card")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await capture_payment(event_store, payment.id, "ch_1")

        assert exc_info.value.attempted == "capture"
        assert await event_store.get_latest_version("payment", payment.id) == 0

    @pytest.mark.asyncio
    async def test_refund_cannot_exceed_amount(self, event_store):
        payment = await captured_payment(event_store, amount="1000")

        with pytest.raises(ValidationError):
            await refund_payment(event_store, payment.id, "re_1", "1000.01")

    @pytest.mark.asyncio
    async def test_failed_payment_is_terminal(self, event_store):
        payment = await create_payment(event_store, "o-1", "u-1", 1000, "credit_card")
        await fail_payment(event_store, payment.id, "card_declined")

        with pytest.raises(InvalidTransitionError):
            await authorize_payment(event_store, payment.id, "pi_1")
        with pytest.raises(InvalidTransitionError):
            await fail_payment(event_store, payment.id, "again")

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_racing_commands_one_wins(self):
        """Capture and void race from the same version; exactly one lands."""
        event_store = EventStore(YieldingStorage())
        payment = await create_payment(event_store, "o-1", "u-1", 1000, "credit_card")
        await authorize_payment(event_store, payment.id, "pi_1")

        results = await asyncio.gather(
            capture_payment(event_store, payment.id, "ch_1"),
            void_payment(event_store, payment.id, "changed mind"),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConcurrencyConflictError)]
        assert len(conflicts) == 1
        assert await event_store.get_latest_version("payment", payment.id) == 2
