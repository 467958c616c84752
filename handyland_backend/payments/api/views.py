# payments/api/views.py

"""
======================================================
PATH: payments/api/views.py
======================================================
PAYMENT API

POST /api/payments/session/   start hosted checkout for an own pending order
POST /api/payments/webhook/   provider events (signed; no user auth)
POST /api/payments/refund/    staff: ask the provider to refund a paid order

Webhook contract: 400 for a bad signature, 503 when the event could not
be written to the PaymentEvent inbox (the provider redelivers). Everything
else is acknowledged with 200; anything that could not be applied is parked
in the inbox.
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle, ScopedRateThrottle
from rest_framework.views import APIView

from orders.api.permissions import IsOrderAdmin
from orders.models import Order
from orders.services.exceptions import StaleTransitionError
from payments.api.serializers import (
    PaymentSessionRequestSerializer,
    PaymentSessionSerializer,
    RefundRequestSerializer,
    RefundSerializer,
    WebhookAckSerializer,
)
from payments.services.checkout import start_checkout
from payments.services.exceptions import (
    AuthenticationError,
    InboxUnavailable,
    PaymentProviderError,
    RefundNotAllowed,
)
from payments.services.reconciler import process_webhook
from payments.services.refunds import request_refund

logger = logging.getLogger(__name__)


class WebhookThrottle(AnonRateThrottle):
    scope = "webhook"


@extend_schema(tags=["Payments"])
class PaymentSessionView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "order_write"

    @extend_schema(
        request=PaymentSessionRequestSerializer,
        responses={200: PaymentSessionSerializer},
        description="Create a provider checkout session for a pending order.",
    )
    def post(self, request):
        serializer = PaymentSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = get_object_or_404(
            Order, pk=serializer.validated_data["order_id"], user=request.user
        )

        try:
            session = start_checkout(order=order)
        except StaleTransitionError as exc:
            return Response(
                {"detail": str(exc), "current_status": exc.current_status},
                status=status.HTTP_409_CONFLICT,
            )
        except PaymentProviderError as exc:
            logger.error(
                "Checkout session creation failed",
                extra={"order_number": order.order_number, "error": str(exc)},
            )
            return Response(
                {"detail": "Payment provider unavailable. Please retry."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(PaymentSessionSerializer(session).data, status=status.HTTP_200_OK)


@extend_schema(tags=["Payments"])
class RefundRequestView(APIView):
    permission_classes = [IsOrderAdmin]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "order_write"

    @extend_schema(
        request=RefundRequestSerializer,
        responses={202: RefundSerializer},
        description=(
            "Request a full provider refund. The order moves to refunded when "
            "the provider confirms it through the webhook."
        ),
    )
    def post(self, request):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_object_or_404(Order, pk=data["order_id"])

        try:
            refund = request_refund(order=order, reason=data["reason"])
        except RefundNotAllowed as exc:
            return Response(
                {"detail": str(exc), "current_status": order.status},
                status=status.HTTP_409_CONFLICT,
            )
        except PaymentProviderError as exc:
            logger.error(
                "Refund request failed",
                extra={"order_number": order.order_number, "error": str(exc)},
            )
            return Response(
                {"detail": "Payment provider unavailable. Please retry."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(RefundSerializer(refund).data, status=status.HTTP_202_ACCEPTED)


@extend_schema(tags=["Payments"])
class StripeWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [WebhookThrottle]

    @extend_schema(
        request=None,
        responses={
            200: WebhookAckSerializer,
            400: WebhookAckSerializer,
            503: WebhookAckSerializer,
        },
        description="Stripe webhook receiver. Requires a valid Stripe-Signature header.",
    )
    def post(self, request, *args, **kwargs):
        raw_body = request.body or b""
        signature = request.headers.get("Stripe-Signature")

        try:
            result = process_webhook(raw_body=raw_body, signature=signature)
        except AuthenticationError as exc:
            logger.warning("Invalid Stripe signature", extra={"error": str(exc)})
            return Response(
                {"ok": False, "detail": "Invalid signature"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except InboxUnavailable as exc:
            logger.error("Webhook event not recorded", extra={"error": str(exc)})
            return Response(
                {"ok": False, "detail": "Event not recorded; retry"},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        except Exception:
            logger.exception("Unhandled webhook error")
            return Response(
                {"ok": True, "detail": "Unhandled error; logged"},
                status=status.HTTP_200_OK,
            )

        return Response(
            {"ok": True, "detail": result.outcome},
            status=status.HTTP_200_OK,
        )
