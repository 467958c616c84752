# payments/models/payment_event.py

import uuid

from django.db import models


class PaymentEvent(models.Model):
    """
    Inbox row for one provider webhook event.

    Idempotency rule:
    - external_id is unique (provider event id)
    - a redelivered event finds its row and is not applied twice
    - events that could not be applied safely stay visible as
      unmatched / needs_review for manual reconciliation
    """

    STATUS_RECEIVED = "received"
    STATUS_PROCESSED = "processed"
    STATUS_IGNORED = "ignored"
    STATUS_UNMATCHED = "unmatched"
    STATUS_NEEDS_REVIEW = "needs_review"

    STATUS_CHOICES = [
        (STATUS_RECEIVED, "Received"),
        (STATUS_PROCESSED, "Processed"),
        (STATUS_IGNORED, "Ignored"),
        (STATUS_UNMATCHED, "Unmatched"),
        (STATUS_NEEDS_REVIEW, "Needs review"),
    ]

    # Rows in these states are final and are not re-applied on redelivery.
    SETTLED_STATUSES = (STATUS_PROCESSED, STATUS_IGNORED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    external_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider event id. Must be unique for idempotency.",
    )
    event_type = models.CharField(max_length=100)
    payload = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_RECEIVED)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_events",
    )

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["status", "received_at"], name="payments_event_status_idx"),
            models.Index(fields=["event_type"], name="payments_event_type_idx"),
        ]

    @property
    def is_settled(self) -> bool:
        return self.status in self.SETTLED_STATUSES

    def __str__(self):
        return f"{self.event_type}:{self.external_id} | {self.status}"
