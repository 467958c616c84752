# ledger/apps.py

"""
LEDGER APP CONFIG

Append-only monetary record for orders and wallets.
Amounts live in integer minor units; every read converts back to Decimal.
"""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ledger"
    verbose_name = "Transaction Ledger"
