# orders/api/admin_views.py

"""
ADMIN ORDER API (STAFF ONLY)

GET   /api/orders/admin/                     all orders (filters, paginated)
GET   /api/orders/admin/stats/               counts per status + revenue
PATCH /api/orders/admin/<uuid>/status/       {status, tracking_number?, note?}
                                             (refunded only via /api/payments/refund/)
"""

from __future__ import annotations

from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.models import Transaction
from ledger.services.money import minor_to_decimal
from orders.api.errors import ORDER_ERRORS, order_error_response
from orders.api.filters import OrderFilter
from orders.api.permissions import IsOrderAdmin
from orders.api.serializers import AdminOrderSerializer, OrderStatusUpdateSerializer
from orders.api.views import order_queryset
from orders.models import Order
from orders.services.order_lifecycle import transition_order


@extend_schema(tags=["Orders (admin)"])
class AdminOrderListView(ListAPIView):
    permission_classes = [IsOrderAdmin]
    serializer_class = AdminOrderSerializer
    filterset_class = OrderFilter

    def get_queryset(self):
        return order_queryset().order_by("-created_at")


@extend_schema(tags=["Orders (admin)"])
class AdminOrderStatsView(APIView):
    permission_classes = [IsOrderAdmin]

    def get(self, request):
        by_status = {value: 0 for value, _label in Order.STATUS_CHOICES}
        for row in Order.objects.values("status").annotate(n=Count("id")):
            by_status[row["status"]] = row["n"]

        # Revenue is what the ledger says was collected, net of refunds.
        ledger = Transaction.objects.filter(
            status=Transaction.STATUS_COMPLETED, order__isnull=False
        )
        gross = (
            ledger.filter(type=Transaction.TYPE_PURCHASE)
            .aggregate(total=Sum("amount_minor"))
            .get("total")
            or 0
        )
        net = ledger.aggregate(total=Sum("amount_minor")).get("total") or 0

        return Response(
            {
                "total_orders": sum(by_status.values()),
                "by_status": by_status,
                "paid_orders": Order.objects.filter(
                    payment_status=Order.PAYMENT_PAID
                ).count(),
                "gross_revenue": str(minor_to_decimal(gross)),
                "net_revenue": str(minor_to_decimal(net)),
            }
        )


@extend_schema(tags=["Orders (admin)"])
class AdminOrderStatusView(APIView):
    permission_classes = [IsOrderAdmin]

    @extend_schema(
        request=OrderStatusUpdateSerializer,
        responses={200: AdminOrderSerializer},
        description="Move an order along its lifecycle. 409 with current_status when not allowed.",
    )
    def patch(self, request, pk):
        order = get_object_or_404(Order, pk=pk)

        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        extra = {}
        tracking = (data.get("tracking_number") or "").strip()
        if tracking:
            extra["tracking_number"] = tracking

        if data["status"] == Order.STATUS_REFUNDED:
            return Response(
                {
                    "detail": "Refunds are issued through the payment provider "
                    "(POST /api/payments/refund/).",
                    "current_status": order.status,
                },
                status=status.HTTP_409_CONFLICT,
            )

        try:
            transition_order(
                order,
                data["status"],
                actor=request.user,
                note=data.get("note") or None,
                extra_fields=extra,
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)

        return Response(
            AdminOrderSerializer(order_queryset().get(pk=order.pk)).data,
            status=status.HTTP_200_OK,
        )
