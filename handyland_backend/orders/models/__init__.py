# orders/models/__init__.py

"""
ORDERS MODELS PACKAGE EXPORTS
"""

from .order import Order
from .order_item import OrderItem
from .sequence import SequenceCounter
from .status_entry import OrderStatusEntry

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatusEntry",
    "SequenceCounter",
]
