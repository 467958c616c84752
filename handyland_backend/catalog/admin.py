# catalog/admin.py

from django.contrib import admin

from catalog.models import Accessory, Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "stock", "condition", "is_active", "updated_at")
    list_filter = ("is_active", "condition")
    search_fields = ("name",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(Accessory)
class AccessoryAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "stock", "category", "is_active", "updated_at")
    list_filter = ("is_active", "category")
    search_fields = ("name",)
    readonly_fields = ("created_at", "updated_at")
