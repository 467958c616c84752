# ledger/api/serializers.py

from __future__ import annotations

from rest_framework import serializers

from ledger.models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    """
    Read-only ledger row.
    amount is the signed decimal view of amount_minor.
    """

    amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    order_number = serializers.CharField(
        source="order.order_number", read_only=True, default=None
    )

    class Meta:
        model = Transaction
        fields = [
            "id",
            "order",
            "order_number",
            "type",
            "status",
            "amount",
            "currency",
            "payment_method",
            "external_ref",
            "description",
            "created_at",
        ]
        read_only_fields = fields
