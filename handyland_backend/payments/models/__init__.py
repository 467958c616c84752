# payments/models/__init__.py

"""
PAYMENTS MODELS PACKAGE EXPORTS
"""

from .payment_event import PaymentEvent

__all__ = [
    "PaymentEvent",
]
