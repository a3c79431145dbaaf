"""
Projection background worker.

Re-runs both projectors every ``interval`` seconds so read models catch up
with the event log. Each run is a full, idempotent rebuild.

    python -m order_ledger.workers.projection_worker --interval 30
"""
import argparse
import asyncio
import signal
from typing import Any

import structlog

from order_ledger.application.projectors import (
    ProjectionResult,
    project_deliveries,
    project_payments,
)
from order_ledger.config import Settings, get_settings
from order_ledger.database import create_engine, create_session_factory, init_db
from order_ledger.domain.errors import OrderLedgerError
from order_ledger.infrastructure import (
    EventStore,
    ProjectionStore,
    SqlEventStorage,
    SqlProjectionStore,
)
from order_ledger.monitoring import setup_logging

logger = structlog.get_logger(__name__)


async def run_projections(
    event_store: EventStore, projection_store: ProjectionStore
) -> list[ProjectionResult]:
    """Run every projector once, deliveries first."""
    logger.info("projection_run_started")
    results = [
        await project_deliveries(event_store, projection_store),
        await project_payments(event_store, projection_store),
    ]
    logger.info(
        "projection_run_completed",
        projected=sum(r.projected for r in results),
        failed=sum(r.failed for r in results),
    )
    return results


async def start_projection_worker(
    interval_seconds: float | None = None, settings: Settings | None = None
) -> None:
    """
    Start the projection worker.

    Args:
        interval_seconds: Pause between runs (default: settings.projection_interval_seconds)
        settings: Application settings (default: get_settings())
    """
    settings = settings or get_settings()
    interval = (
        interval_seconds
        if interval_seconds is not None
        else settings.projection_interval_seconds
    )
    setup_logging(settings)

    logger.info("projection_worker_starting", interval_seconds=interval)

    engine = create_engine(settings)
    await init_db(engine)
    session_factory = create_session_factory(engine)
    event_store = EventStore(SqlEventStorage(session_factory))
    projection_store = SqlProjectionStore(session_factory)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("projection_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            try:
                await run_projections(event_store, projection_store)
            except OrderLedgerError as e:
                # Next run starts from scratch anyway
                logger.error("projection_run_error", error=str(e))

            remaining = interval
            while remaining > 0 and running:
                sleep_time = min(remaining, 1.0)
                await asyncio.sleep(sleep_time)
                remaining -= sleep_time
    finally:
        await engine.dispose()
        logger.info("projection_worker_stopped")


def main() -> None:
    parser = argparse.ArgumentParser(description="Projection worker")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between projector runs (default: from settings)",
    )
    args = parser.parse_args()

    asyncio.run(start_projection_worker(interval_seconds=args.interval))


if __name__ == "__main__":
    main()
