"""Command handlers: the only code that appends events."""
from .delivery import (
    assign_delivery,
    cancel_delivery,
    complete_delivery,
    create_delivery,
    update_delivery_location,
    update_delivery_status,
)
from .payment import (
    authorize_payment,
    capture_payment,
    create_payment,
    fail_payment,
    refund_payment,
    void_payment,
)

__all__ = [
    "assign_delivery",
    "authorize_payment",
    "cancel_delivery",
    "capture_payment",
    "complete_delivery",
    "create_delivery",
    "create_payment",
    "fail_payment",
    "refund_payment",
    "update_delivery_location",
    "update_delivery_status",
    "void_payment",
]
