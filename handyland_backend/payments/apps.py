# payments/apps.py

"""
PAYMENTS APP CONFIG

Checkout sessions with the payment provider and the signed webhook
endpoint that reconciles provider events into order state + ledger rows.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
