# promotions/admin.py

from django.contrib import admin

from promotions.models import Coupon, ShippingMethod


@admin.register(ShippingMethod)
class ShippingMethodAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "duration", "is_express", "is_active")
    list_filter = ("is_active", "is_express")


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_type",
        "discount_value",
        "min_order_value",
        "used_count",
        "usage_limit",
        "valid_until",
        "is_active",
    )
    list_filter = ("is_active", "discount_type")
    search_fields = ("code",)
    readonly_fields = ("used_count", "created_at")
