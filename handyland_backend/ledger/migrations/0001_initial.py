# ledger/migrations/0001_initial.py

from __future__ import annotations

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Transaction",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_minor",
                    models.BigIntegerField(
                        help_text="Signed amount in minor currency units (cents)"
                    ),
                ),
                ("currency", models.CharField(default="eur", max_length=8)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("purchase", "Purchase"),
                            ("refund", "Refund"),
                            ("credit", "Credit"),
                            ("debit", "Debit"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="completed",
                        max_length=16,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(blank=True, default="", max_length=32),
                ),
                (
                    "external_ref",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider reference (payment intent / charge id)",
                        max_length=255,
                    ),
                ),
                (
                    "description",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="orders.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["created_at"], name="ledger_tx_created_idx"),
                    models.Index(
                        fields=["order", "type"], name="ledger_tx_order_type_idx"
                    ),
                    models.Index(
                        fields=["user", "created_at"],
                        name="ledger_tx_user_created_idx",
                    ),
                    models.Index(
                        fields=["external_ref"], name="ledger_tx_external_ref_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("type__in", ["purchase", "refund"])),
                        fields=("order", "type"),
                        name="ledger_one_purchase_refund_per_order",
                    )
                ],
            },
        ),
    ]
