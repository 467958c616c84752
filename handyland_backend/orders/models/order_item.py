# orders/models/order_item.py

import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from ledger.services.money import minor_to_decimal


class OrderItem(models.Model):
    """
    Immutable order line.

    Name and unit price are snapshotted from the catalog at creation;
    later catalog edits never change what the customer was charged.
    """

    TYPE_PRODUCT = "product"
    TYPE_ACCESSORY = "accessory"

    TYPE_CHOICES = [
        (TYPE_PRODUCT, "Product"),
        (TYPE_ACCESSORY, "Accessory"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )

    item_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    item_id = models.UUIDField(help_text="catalog Product/Accessory id")
    name = models.CharField(max_length=255)

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price_minor = models.BigIntegerField()
    line_total_minor = models.BigIntegerField()

    class Meta:
        ordering = ["order", "name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=1), name="orders_item_quantity_positive"
            ),
            models.CheckConstraint(
                condition=Q(unit_price_minor__gte=0),
                name="orders_item_price_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(line_total_minor=F("unit_price_minor") * F("quantity")),
                name="orders_item_line_total_matches",
            ),
        ]

    @property
    def unit_price(self):
        return minor_to_decimal(self.unit_price_minor)

    @property
    def line_total(self):
        return minor_to_decimal(self.line_total_minor)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Order items are immutable once created")

        self.line_total_minor = int(self.unit_price_minor) * int(self.quantity)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Order items cannot be deleted")

    def __str__(self):
        return f"{self.name} x {self.quantity}"
