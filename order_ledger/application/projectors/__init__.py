"""Projectors: rebuild read-model rows from the event log."""
from .base import ProjectionResult
from .delivery import project_deliveries
from .payment import project_payments

__all__ = ["ProjectionResult", "project_deliveries", "project_payments"]
