# ledger/models/transaction.py

"""
======================================================
PATH: ledger/models/transaction.py
======================================================
TRANSACTION MODEL

Independent source of financial truth, decoupled from Order.status.

Guarantees:
- Immutable once created (no updates, no deletes)
- amount_minor is signed integer minor units:
    purchase / debit  -> positive
    refund / credit   -> negative
- At most one purchase and one refund row per order (DB constraint);
  corrections are new compensating credit/debit rows.
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from ledger.services.money import minor_to_decimal


class Transaction(models.Model):
    TYPE_PURCHASE = "purchase"
    TYPE_REFUND = "refund"
    TYPE_CREDIT = "credit"
    TYPE_DEBIT = "debit"

    TYPE_CHOICES = [
        (TYPE_PURCHASE, "Purchase"),
        (TYPE_REFUND, "Refund"),
        (TYPE_CREDIT, "Credit"),
        (TYPE_DEBIT, "Debit"),
    ]

    POSITIVE_TYPES = {TYPE_PURCHASE, TYPE_DEBIT}
    NEGATIVE_TYPES = {TYPE_REFUND, TYPE_CREDIT}
    ONE_PER_ORDER_TYPES = (TYPE_PURCHASE, TYPE_REFUND)

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )

    amount_minor = models.BigIntegerField(
        help_text="Signed amount in minor currency units (cents)",
    )
    currency = models.CharField(max_length=8, default="eur")

    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    status = models.CharField(
        max_length=16, choices=STATUS_CHOICES, default=STATUS_COMPLETED
    )

    payment_method = models.CharField(max_length=32, blank=True, default="")
    external_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Provider reference (payment intent / charge id)",
    )
    description = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["created_at"], name="ledger_tx_created_idx"),
            models.Index(fields=["order", "type"], name="ledger_tx_order_type_idx"),
            models.Index(fields=["user", "created_at"], name="ledger_tx_user_created_idx"),
            models.Index(fields=["external_ref"], name="ledger_tx_external_ref_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "type"],
                condition=Q(type__in=["purchase", "refund"]),
                name="ledger_one_purchase_refund_per_order",
            ),
        ]

    @property
    def amount(self):
        return minor_to_decimal(self.amount_minor)

    def __str__(self):
        return f"{self.type} {self.amount} {self.currency} ({self.external_ref or '-'})"

    def clean(self):
        if self.type not in dict(self.TYPE_CHOICES):
            raise ValidationError("Invalid transaction type")

        if self.amount_minor is None or self.amount_minor == 0:
            raise ValidationError("Transaction amount must be non-zero")

        if self.type in self.POSITIVE_TYPES and self.amount_minor < 0:
            raise ValidationError(f"{self.type} amounts must be positive")

        if self.type in self.NEGATIVE_TYPES and self.amount_minor > 0:
            raise ValidationError(f"{self.type} amounts must be negative")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(
                "Transaction records are immutable and cannot be modified"
            )

        self.full_clean(validate_unique=False, validate_constraints=False)
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Transaction records are immutable and cannot be deleted")
