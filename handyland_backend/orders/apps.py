# orders/apps.py

"""
ORDERS APP CONFIG

Order aggregate, status state machine, order-number allocation
and the customer/admin order API.
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
