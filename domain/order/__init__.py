"""Order domain exports."""
from .entity import (
    Order,
    OrderStatus,
    PaymentDetails,
    PaymentMethod,
    PaymentOutcome,
    PaymentStatus,
)
from .repository import OrderRepository

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentDetails",
    "PaymentMethod",
    "PaymentOutcome",
    "PaymentStatus",
    "OrderRepository",
]
