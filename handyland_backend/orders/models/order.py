# orders/models/order.py

"""
======================================================
PATH: orders/models/order.py
======================================================
ORDER AGGREGATE

Key rules:
- Created `pending` by orders.services.order_service.create_order
- status moves ONLY through orders.services.order_lifecycle.transition_order
  (conditional UPDATE guarded by the expected current status)
- Money is server-authoritative and frozen at creation:
      total = subtotal + shipping_fee + tax - discount   (exact, minor units)
- Never hard-deleted (PROTECT everywhere, no delete endpoint)
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from ledger.services.money import minor_to_decimal


class Order(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_SHIPPED = "shipped"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"
    STATUS_REFUNDED = "refunded"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_SHIPPED, "Shipped"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_REFUNDED, "Refunded"),
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_PAID = "paid"
    PAYMENT_FAILED = "failed"
    PAYMENT_REFUNDED = "refunded"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]

    METHOD_CARD = "card"
    METHOD_PAYPAL = "paypal"
    METHOD_CASH = "cash"
    METHOD_STRIPE = "stripe"

    PAYMENT_METHOD_CHOICES = [
        (METHOD_CARD, "Card"),
        (METHOD_PAYPAL, "PayPal"),
        (METHOD_CASH, "Cash on delivery"),
        (METHOD_STRIPE, "Stripe"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_number = models.CharField(
        max_length=40,
        unique=True,
        help_text="PREFIX-YYYYMMDD-NNNN, allocated by the sequence service",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    shipping_address = models.JSONField(default=dict)
    payment_method = models.CharField(max_length=16, choices=PAYMENT_METHOD_CHOICES)

    subtotal_minor = models.BigIntegerField(default=0)
    tax_minor = models.BigIntegerField(default=0)
    shipping_fee_minor = models.BigIntegerField(default=0)
    discount_minor = models.BigIntegerField(default=0)
    total_minor = models.BigIntegerField(default=0)

    coupon_code = models.CharField(max_length=50, blank=True, default="")
    shipping_method = models.ForeignKey(
        "promotions.ShippingMethod",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    status = models.CharField(
        max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING
    )
    payment_status = models.CharField(
        max_length=16, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING
    )

    # Provisional checkout session ref, replaced by the durable payment
    # intent ref once the provider confirms payment.
    payment_id = models.CharField(max_length=255, blank=True, default="")
    checkout_session_id = models.CharField(max_length=255, blank=True, default="")

    tracking_number = models.CharField(max_length=120, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_status_created_idx"),
            models.Index(fields=["user", "created_at"], name="orders_user_created_idx"),
            models.Index(fields=["payment_id"], name="orders_payment_id_idx"),
            models.Index(
                fields=["checkout_session_id"], name="orders_checkout_session_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(subtotal_minor__gte=0)
                & Q(tax_minor__gte=0)
                & Q(shipping_fee_minor__gte=0)
                & Q(discount_minor__gte=0)
                & Q(total_minor__gte=0),
                name="orders_money_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(
                    total_minor=F("subtotal_minor")
                    + F("shipping_fee_minor")
                    + F("tax_minor")
                    - F("discount_minor")
                ),
                name="orders_total_matches_components",
            ),
        ]

    _IMMUTABLE_FIELDS = (
        "order_number",
        "user_id",
        "payment_method",
        "subtotal_minor",
        "tax_minor",
        "shipping_fee_minor",
        "discount_minor",
        "total_minor",
        "coupon_code",
        "created_at",
    )

    # ----------------------------
    # Decimal views
    # ----------------------------

    @property
    def subtotal(self):
        return minor_to_decimal(self.subtotal_minor)

    @property
    def tax(self):
        return minor_to_decimal(self.tax_minor)

    @property
    def shipping_fee(self):
        return minor_to_decimal(self.shipping_fee_minor)

    @property
    def discount(self):
        return minor_to_decimal(self.discount_minor)

    @property
    def total(self):
        return minor_to_decimal(self.total_minor)

    @property
    def customer_email(self) -> str:
        email = (self.shipping_address or {}).get("email") or ""
        if not email and self.user_id:
            email = getattr(self.user, "email", "") or ""
        return email

    def save(self, *args, **kwargs):
        if not self._state.adding:
            previous = Order.objects.filter(pk=self.pk).first()
            if previous is not None:
                if previous.status != self.status:
                    raise ValueError(
                        f"Order {self.order_number}: status changes must go through "
                        f"transition_order ({previous.status} -> {self.status})."
                    )
                for field in self._IMMUTABLE_FIELDS:
                    if getattr(self, field) != getattr(previous, field):
                        raise ValueError(
                            f"Order {self.order_number}: field '{field}' cannot be changed."
                        )

        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Orders are never deleted; cancel or refund instead.")

    def __str__(self):
        return f"{self.order_number} | {self.total} | {self.status}"
