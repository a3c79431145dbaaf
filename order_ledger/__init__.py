"""
Order Ledger - Event-Sourced Core for Deliveries and Payments

This package holds the write and read sides of the order platform:
1. An append-only event store with optimistic concurrency
2. Delivery and Payment aggregates rebuilt by replaying events
3. Command handlers that validate before appending
4. Projectors that fold event streams into read-model tables

Everything else (HTTP, websockets, maps, dashboards) lives outside this package
and talks to it through the command functions and projector entry points.
"""

__version__ = "1.0.0"
