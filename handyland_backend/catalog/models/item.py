# catalog/models/item.py

"""
CATALOG ITEMS

Products (devices) and accessories are both sellable, priced and stocked.
Browsing/search lives elsewhere; orders only need:
- current selling price (snapshotted onto the order line at creation)
- stock counter (mutated ONLY via catalog.services.stock)
"""

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


class CatalogItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255, db_index=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    stock = models.PositiveIntegerField(default=0)
    image = models.URLField(blank=True, default="")

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.price})"


class Product(CatalogItem):
    condition = models.CharField(max_length=64, blank=True, default="")
    storage = models.CharField(max_length=64, blank=True, default="")
    color = models.CharField(max_length=64, blank=True, default="")

    class Meta(CatalogItem.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(stock__gte=0), name="catalog_product_stock_non_negative"
            ),
        ]


class Accessory(CatalogItem):
    category = models.CharField(max_length=120, blank=True, default="")

    class Meta(CatalogItem.Meta):
        verbose_name_plural = "accessories"
        constraints = [
            models.CheckConstraint(
                condition=Q(stock__gte=0), name="catalog_accessory_stock_non_negative"
            ),
        ]
