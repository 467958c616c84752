# orders/models/sequence.py

from django.db import models


class SequenceCounter(models.Model):
    """
    One row per (entity_type, scope_key), e.g. ("order", "HL-20250101").
    value is the last identifier handed out for that scope.
    """

    entity_type = models.CharField(max_length=32)
    scope_key = models.CharField(max_length=64)
    value = models.BigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["entity_type", "scope_key"],
                name="orders_sequence_counter_unique",
            ),
        ]

    def __str__(self):
        return f"{self.entity_type}:{self.scope_key}={self.value}"
