# promotions/services/exceptions.py


class PromotionError(Exception):
    """Base exception for shipping and coupon lookups."""


class UnknownShippingMethod(PromotionError):
    pass


class CouponInvalid(PromotionError):
    """A code the customer explicitly claimed cannot be applied."""

    REASON_NOT_FOUND = "not_found"
    REASON_INACTIVE = "inactive"
    REASON_NOT_STARTED = "not_started"
    REASON_EXPIRED = "expired"
    REASON_EXHAUSTED = "usage_limit_reached"
    REASON_MIN_ORDER = "min_order_not_met"

    def __init__(self, message, *, code, reason):
        super().__init__(message)
        self.code = code
        self.reason = reason
