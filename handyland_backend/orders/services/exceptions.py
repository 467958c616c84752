# orders/services/exceptions.py

"""
ORDER SERVICE ERRORS

Centralized domain errors for order creation, numbering and status changes.
Stock and coupon errors are raised by their own apps and re-exported here
so callers have one import site.
"""

from catalog.services.stock import InsufficientStockError
from promotions.services.exceptions import CouponInvalid


class OrderServiceError(Exception):
    """Base exception for all order service failures."""


class OrderValidationError(OrderServiceError):
    """
    Malformed order input. Raised before any side effect.

    errors: {field: [messages]} in the DRF error shape.
    """

    def __init__(self, errors, message="Invalid order request"):
        super().__init__(message)
        if isinstance(errors, str):
            errors = {"non_field_errors": [errors]}
        self.errors = errors


class OrderIntegrityError(OrderServiceError):
    """Client-submitted total disagrees with the server-computed total."""

    code = "total_mismatch"

    def __init__(self, message, *, server_total, client_total):
        super().__init__(message)
        self.server_total = server_total
        self.client_total = client_total


class IdentifierExhausted(OrderServiceError):
    """Sequence allocation kept colliding past the retry budget."""


class StaleTransitionError(OrderServiceError):
    """
    Status change not allowed from the order's current status, either because
    the edge is illegal or because another writer moved the order first.
    """

    def __init__(self, message, *, current_status, requested_status):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


__all__ = [
    "CouponInvalid",
    "IdentifierExhausted",
    "InsufficientStockError",
    "OrderIntegrityError",
    "OrderServiceError",
    "OrderValidationError",
    "StaleTransitionError",
]
