"""
Pytest configuration and fixtures.
"""
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from order_ledger.config import Settings
from order_ledger.database import create_engine, create_session_factory, init_db
from order_ledger.infrastructure import (
    EventStore,
    InMemoryEventStorage,
    InMemoryProjectionStore,
    InMemorySnapshotStore,
    SqlEventStorage,
    SqlProjectionStore,
    SqlSnapshotStore,
)


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (aiosqlite)")
    config.addinivalue_line("markers", "race: mark test as race condition test")


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'order_ledger_test.db'}",
        app_name="order-ledger-test",
        app_env="test",
        log_level="DEBUG",
        snapshot_frequency=10,
        strict_transitions=True,
    )


# ============================================================================
# IN-MEMORY STORES
# ============================================================================


@pytest.fixture
def event_store() -> EventStore:
    return EventStore(InMemoryEventStorage())


@pytest.fixture
def projection_store() -> InMemoryProjectionStore:
    return InMemoryProjectionStore()


@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


# ============================================================================
# SQL STORES (aiosqlite)
# ============================================================================


@pytest_asyncio.fixture
async def sql_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, Any]:
    """Create a SQLite engine with all tables."""
    engine = create_engine(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sql_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(sql_engine)


@pytest.fixture
def sql_event_store(session_factory: async_sessionmaker[AsyncSession]) -> EventStore:
    return EventStore(SqlEventStorage(session_factory))


@pytest.fixture
def sql_projection_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlProjectionStore:
    return SqlProjectionStore(session_factory)


@pytest.fixture
def sql_snapshot_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlSnapshotStore:
    return SqlSnapshotStore(session_factory)
