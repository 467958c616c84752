# payments/api/serializers.py

from rest_framework import serializers

from payments.services.refunds import REFUND_REASONS


class PaymentSessionRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class PaymentSessionSerializer(serializers.Serializer):
    session_id = serializers.CharField()
    url = serializers.URLField()


class WebhookAckSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    detail = serializers.CharField()


class RefundRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    reason = serializers.ChoiceField(
        choices=REFUND_REASONS,
        default="requested_by_customer",
    )


class RefundSerializer(serializers.Serializer):
    refund_id = serializers.CharField()
    status = serializers.CharField()
