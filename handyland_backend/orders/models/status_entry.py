# orders/models/status_entry.py

"""
ORDER STATUS HISTORY (APPEND-ONLY)

- sequence is 1-based and unique per order
- the highest-sequence entry always carries the order's current status
- rows are written only by orders.services.order_lifecycle
"""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone


class OrderStatusEntry(models.Model):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=16)
    timestamp = models.DateTimeField(default=timezone.now)
    note = models.TextField(blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_status_changes",
    )

    class Meta:
        ordering = ["order", "sequence"]
        verbose_name_plural = "order status entries"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"], name="orders_status_entry_unique_seq"
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Status history is append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Status history is append-only")

    def __str__(self):
        return f"#{self.sequence} {self.status}"
