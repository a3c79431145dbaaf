"""Payment projector: ``payments`` rows plus the order's payment_status."""

from __future__ import annotations

from collections.abc import Sequence

from order_ledger.application.projectors.base import ProjectionResult, cascade, run_projection
from order_ledger.domain.aggregates import PaymentState, fold_payment
from order_ledger.domain.payment_events import (
    PAYMENT_AGGREGATE,
    PaymentEvent,
    PaymentStatus,
    parse_payment_event,
)
from order_ledger.infrastructure.event_store import EventStore
from order_ledger.infrastructure.projection_store import ProjectionStore, Row

# pending and authorized make no cascade write
PAYMENT_STATUS_CASCADE: dict[PaymentStatus, str] = {
    PaymentStatus.CAPTURED: "paid",
    PaymentStatus.REFUNDED: "refunded",
    PaymentStatus.FAILED: "failed",
    PaymentStatus.VOIDED: "cancelled",
}


def payment_row(state: PaymentState) -> Row:
    return {
        "id": state.id,
        "order_id": state.order_id,
        "user_id": state.user_id,
        "amount": state.amount,
        "currency": state.currency,
        "payment_method": state.payment_method,
        "status": state.status.value,
        "payment_intent_id": state.payment_intent_id,
        "charge_id": state.charge_id,
        "refund_id": state.refund_id,
        "refund_amount": state.refund_amount,
        "failure_reason": state.failure_reason,
        "void_reason": state.void_reason,
        "metadata": state.metadata,
        "version": state.version,
        "created_at": state.created_at,
        "updated_at": state.updated_at,
    }


async def _write_payment(
    projection_store: ProjectionStore,
    state: PaymentState,
    events: Sequence[PaymentEvent],
    result: ProjectionResult,
) -> None:
    await projection_store.upsert("payments", payment_row(state))

    payment_status = PAYMENT_STATUS_CASCADE.get(state.status)
    if payment_status is not None:
        await cascade(
            projection_store,
            result,
            state.order_id,
            "payment_status",
            payment_status,
            state.updated_at,
        )


async def project_payments(
    event_store: EventStore, projection_store: ProjectionStore
) -> ProjectionResult:
    """Rebuild payment read models from the full payment stream."""
    return await run_projection(
        event_store,
        projection_store,
        PAYMENT_AGGREGATE,
        parse_payment_event,
        fold_payment,
        _write_payment,
    )
