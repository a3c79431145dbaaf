"""
Error taxonomy for the event-sourcing core.

Command handlers propagate every one of these unchanged. Only the caller
decides whether a ConcurrencyConflictError is worth a retry.
"""

from __future__ import annotations


class OrderLedgerError(Exception):
    """Base class for all errors raised by the core."""


class ConcurrencyConflictError(OrderLedgerError):
    """
    Raised when the optimistic concurrency check fails at append time.

    Another writer appended at the same version first. The caller must
    re-read the stream before retrying; cached versions are stale.
    """

    def __init__(self, aggregate_id: str, expected: int, current: int):
        self.aggregate_id = aggregate_id
        self.expected_version = expected
        self.current_version = current
        super().__init__(
            f"Concurrency conflict for {aggregate_id}: "
            f"expected version {expected}, current version {current}"
        )


class NotFoundError(OrderLedgerError):
    """A command referenced an aggregate id with zero prior events."""

    def __init__(self, aggregate_type: str, aggregate_id: str):
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate_type} {aggregate_id} not found")


class ValidationError(OrderLedgerError):
    """Malformed command input."""

    def __init__(self, message: str, aggregate_id: str | None = None):
        self.aggregate_id = aggregate_id
        super().__init__(message)


class InvalidTransitionError(ValidationError):
    """The command is not allowed from the aggregate's current status."""

    def __init__(
        self,
        aggregate_type: str,
        aggregate_id: str,
        current_status: str,
        attempted: str,
    ):
        self.aggregate_type = aggregate_type
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {aggregate_type} {aggregate_id} "
            f"in status {current_status}",
            aggregate_id=aggregate_id,
        )


class CorruptEventError(OrderLedgerError):
    """
    A stored event could not be deserialized or does not fit its stream.

    Never silently skipped by command handlers. Projectors skip the whole
    aggregate group and report it in their result.
    """

    def __init__(
        self,
        message: str,
        aggregate_id: str | None = None,
        version: int | None = None,
    ):
        self.aggregate_id = aggregate_id
        self.version = version
        super().__init__(message)


class StoreUnavailableError(OrderLedgerError):
    """Transport or connectivity failure talking to a store. Not auto-retried."""
