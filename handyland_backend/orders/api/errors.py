# orders/api/errors.py

"""
DOMAIN ERROR -> HTTP MAPPING

    OrderValidationError   400  {detail, errors}
    CouponInvalid          400  {detail, coupon_code, reason}
    OrderIntegrityError    400  {detail, code: "total_mismatch", server_total}
    InsufficientStockError 409  {detail, item}
    StaleTransitionError   409  {detail, current_status}
    IdentifierExhausted    503  {detail}
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.response import Response

from orders.services.exceptions import (
    CouponInvalid,
    IdentifierExhausted,
    InsufficientStockError,
    OrderIntegrityError,
    OrderValidationError,
    StaleTransitionError,
)

ORDER_ERRORS = (
    OrderValidationError,
    CouponInvalid,
    OrderIntegrityError,
    InsufficientStockError,
    StaleTransitionError,
    IdentifierExhausted,
)


def order_error_response(exc: Exception) -> Response:
    if isinstance(exc, OrderValidationError):
        return Response(
            {"detail": str(exc), "errors": exc.errors},
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, CouponInvalid):
        return Response(
            {"detail": str(exc), "coupon_code": exc.code, "reason": exc.reason},
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, OrderIntegrityError):
        return Response(
            {
                "detail": str(exc),
                "code": OrderIntegrityError.code,
                "server_total": str(exc.server_total),
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, InsufficientStockError):
        return Response(
            {
                "detail": str(exc),
                "item": {
                    "id": str(exc.item_id),
                    "name": exc.item_name,
                    "type": exc.kind,
                    "requested": exc.requested,
                    "available": exc.available,
                },
            },
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, StaleTransitionError):
        return Response(
            {"detail": str(exc), "current_status": exc.current_status},
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, IdentifierExhausted):
        return Response(
            {"detail": "Could not allocate an order number. Please retry."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    raise exc
