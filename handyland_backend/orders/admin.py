# orders/admin.py

from django.contrib import admin

from orders.models import Order, OrderItem, OrderStatusEntry, SequenceCounter


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = (
        "item_type",
        "item_id",
        "name",
        "quantity",
        "unit_price",
        "line_total",
    )
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


class OrderStatusEntryInline(admin.TabularInline):
    model = OrderStatusEntry
    extra = 0
    can_delete = False
    readonly_fields = ("sequence", "status", "timestamp", "note", "actor")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


# ======================================================
# ORDER ADMIN
# ======================================================
# Status and money are read-only; status changes go through transition_order.


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "status",
        "payment_status",
        "total",
        "payment_method",
        "user",
        "created_at",
    )
    list_filter = ("status", "payment_status", "payment_method", "created_at")
    search_fields = ("order_number", "payment_id", "checkout_session_id", "user__email")
    readonly_fields = (
        "id",
        "order_number",
        "user",
        "status",
        "payment_status",
        "payment_method",
        "subtotal",
        "shipping_fee",
        "tax",
        "discount",
        "total",
        "coupon_code",
        "shipping_method",
        "payment_id",
        "checkout_session_id",
        "created_at",
        "updated_at",
        "paid_at",
    )
    exclude = (
        "subtotal_minor",
        "tax_minor",
        "shipping_fee_minor",
        "discount_minor",
        "total_minor",
    )
    inlines = [OrderItemInline, OrderStatusEntryInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SequenceCounter)
class SequenceCounterAdmin(admin.ModelAdmin):
    list_display = ("entity_type", "scope_key", "value", "updated_at")
    list_filter = ("entity_type",)
    readonly_fields = ("entity_type", "scope_key", "value", "updated_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
