# orders/api/urls.py

"""
ORDERS API URLS

Base path (mounted in backend/urls.py):
    /api/orders/
"""

from django.urls import path

from orders.api.admin_views import (
    AdminOrderListView,
    AdminOrderStatsView,
    AdminOrderStatusView,
)
from orders.api.views import OrderCancelView, OrderDetailView, OrderListCreateView

app_name = "orders"

urlpatterns = [
    path("", OrderListCreateView.as_view(), name="order-list"),
    path("admin/", AdminOrderListView.as_view(), name="admin-order-list"),
    path("admin/stats/", AdminOrderStatsView.as_view(), name="admin-order-stats"),
    path(
        "admin/<uuid:pk>/status/",
        AdminOrderStatusView.as_view(),
        name="admin-order-status",
    ),
    path("<uuid:pk>/", OrderDetailView.as_view(), name="order-detail"),
    path("<uuid:pk>/cancel/", OrderCancelView.as_view(), name="order-cancel"),
]
