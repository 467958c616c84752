# orders/api/serializers.py

from __future__ import annotations

from rest_framework import serializers

from orders.models import Order, OrderItem, OrderStatusEntry
from orders.services.order_lifecycle import allowed_next_states

MONEY = {"max_digits": 14, "decimal_places": 2, "read_only": True}


# -----------------------------
# Input serializers
# -----------------------------


class OrderItemInputSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    item_type = serializers.ChoiceField(
        choices=[OrderItem.TYPE_PRODUCT, OrderItem.TYPE_ACCESSORY],
        default=OrderItem.TYPE_PRODUCT,
    )
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        help_text="Display only; the server always re-prices from the catalog.",
    )


class ShippingAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=120)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32)
    street = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=120)
    zip_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=80)


class OrderCreateSerializer(serializers.Serializer):
    """
    Documents ONLY what the client is allowed to send.
    `total` is compared against the server total; it never sets it.
    """

    items = OrderItemInputSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.ChoiceField(
        choices=[value for value, _label in Order.PAYMENT_METHOD_CHOICES]
    )
    coupon_code = serializers.CharField(
        max_length=50, required=False, allow_blank=True, allow_null=True
    )
    shipping_method_id = serializers.IntegerField(required=False, allow_null=True)
    total = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[value for value, _label in Order.STATUS_CHOICES]
    )
    tracking_number = serializers.CharField(
        max_length=120, required=False, allow_blank=True
    )
    note = serializers.CharField(required=False, allow_blank=True, default="")


# -----------------------------
# Read serializers
# -----------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    unit_price = serializers.DecimalField(**MONEY)
    line_total = serializers.DecimalField(**MONEY)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "item_type",
            "item_id",
            "name",
            "quantity",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class OrderStatusEntrySerializer(serializers.ModelSerializer):
    actor = serializers.SerializerMethodField()

    class Meta:
        model = OrderStatusEntry
        fields = ["sequence", "status", "timestamp", "note", "actor"]
        read_only_fields = fields

    def get_actor(self, obj):
        actor = getattr(obj, "actor", None)
        if actor is None:
            return None
        return getattr(actor, "email", None) or getattr(actor, "username", None)


class OrderSerializer(serializers.ModelSerializer):
    """Order with lines and full status history (read-only)."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusEntrySerializer(many=True, read_only=True)

    subtotal = serializers.DecimalField(**MONEY)
    shipping_fee = serializers.DecimalField(**MONEY)
    tax = serializers.DecimalField(**MONEY)
    discount = serializers.DecimalField(**MONEY)
    total = serializers.DecimalField(**MONEY)

    shipping_method = serializers.CharField(
        source="shipping_method.name", read_only=True, default=None
    )
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_status",
            "payment_method",
            "items",
            "shipping_address",
            "subtotal",
            "shipping_fee",
            "tax",
            "discount",
            "total",
            "coupon_code",
            "shipping_method",
            "tracking_number",
            "notes",
            "allowed_transitions",
            "status_history",
            "created_at",
            "updated_at",
            "paid_at",
        ]
        read_only_fields = fields

    def get_allowed_transitions(self, obj):
        return allowed_next_states(obj.status)


class AdminOrderSerializer(OrderSerializer):
    customer = serializers.SerializerMethodField()

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["customer", "payment_id"]
        read_only_fields = fields

    def get_customer(self, obj):
        user = getattr(obj, "user", None)
        if user is None:
            return {"id": None, "email": obj.customer_email}
        return {"id": user.pk, "email": getattr(user, "email", "")}
