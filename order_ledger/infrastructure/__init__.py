"""Storage: event log, snapshots and read-model rows."""
from .event_store import EventStorageBackend, EventStore, InMemoryEventStorage
from .projection_store import InMemoryProjectionStore, ProjectionStore, SqlProjectionStore
from .snapshot_store import InMemorySnapshotStore, Snapshot, SnapshotStore, SqlSnapshotStore
from .sql_event_store import SqlEventStorage

__all__ = [
    "EventStorageBackend",
    "EventStore",
    "InMemoryEventStorage",
    "InMemoryProjectionStore",
    "InMemorySnapshotStore",
    "ProjectionStore",
    "Snapshot",
    "SnapshotStore",
    "SqlEventStorage",
    "SqlProjectionStore",
    "SqlSnapshotStore",
]
