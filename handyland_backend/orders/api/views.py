# orders/api/views.py

"""
======================================================
PATH: orders/api/views.py
======================================================
CUSTOMER ORDER API

POST /api/orders/                   create (server-priced, stock reserved)
GET  /api/orders/                   own orders
GET  /api/orders/<uuid>/            own order (staff: any)
POST /api/orders/<uuid>/cancel/     cancel while still pending
"""

from __future__ import annotations

from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import ListAPIView, RetrieveAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from orders.api.errors import ORDER_ERRORS, order_error_response
from orders.api.serializers import OrderCreateSerializer, OrderSerializer
from orders.models import Order, OrderStatusEntry
from orders.services.order_lifecycle import transition_order
from orders.services.order_service import create_order


def order_queryset():
    return Order.objects.select_related("shipping_method", "user").prefetch_related(
        "items",
        Prefetch(
            "status_history",
            queryset=OrderStatusEntry.objects.select_related("actor").order_by("sequence"),
        ),
    )


def visible_orders_for(user):
    qs = order_queryset()
    if getattr(user, "is_staff", False):
        return qs
    return qs.filter(user=user)


@extend_schema(tags=["Orders"])
class OrderListCreateView(ListAPIView):
    """
    ORDER CREATION ENDPOINT (AUTHORITATIVE)

    GUARANTEES:
    - Total recomputed server-side from catalog prices
    - Stock reserved atomically (all lines or none)
    - Unique order number
    - Initial status history entry
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    throttle_scope = "order_write"

    def get_throttles(self):
        if self.request.method == "POST":
            return [ScopedRateThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        return order_queryset().filter(user=self.request.user)

    @extend_schema(
        request=OrderCreateSerializer,
        responses={201: OrderSerializer},
        description="Create a pending order; totals are always computed by the server.",
    )
    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = create_order(
                actor=request.user,
                items=[
                    {
                        "item_type": line["item_type"],
                        "item_id": line["item_id"],
                        "quantity": line["quantity"],
                    }
                    for line in data["items"]
                ],
                shipping_address=dict(data["shipping_address"]),
                payment_method=data["payment_method"],
                coupon_code=data.get("coupon_code"),
                shipping_method_id=data.get("shipping_method_id"),
                client_total=data.get("total"),
                notes=data.get("notes", ""),
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)

        order = order_queryset().get(pk=order.pk)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=["Orders"])
class OrderDetailView(RetrieveAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    lookup_field = "pk"

    def get_queryset(self):
        return visible_orders_for(self.request.user)


@extend_schema(tags=["Orders"])
class OrderCancelView(APIView):
    """Customer cancellation; only allowed while the order is still pending."""

    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={200: OrderSerializer})
    def post(self, request, pk):
        order = get_object_or_404(Order, pk=pk, user=request.user)

        if order.status != Order.STATUS_PENDING:
            return Response(
                {
                    "detail": "Only pending orders can be cancelled.",
                    "current_status": order.status,
                },
                status=status.HTTP_409_CONFLICT,
            )

        try:
            transition_order(
                order,
                Order.STATUS_CANCELLED,
                actor=request.user,
                expected_status=Order.STATUS_PENDING,
                note="Cancelled by customer",
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)

        return Response(OrderSerializer(order_queryset().get(pk=order.pk)).data)
