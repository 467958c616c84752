# promotions/models/__init__.py

from .coupon import Coupon
from .shipping import ShippingMethod

__all__ = [
    "Coupon",
    "ShippingMethod",
]
