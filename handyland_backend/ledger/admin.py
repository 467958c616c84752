# ledger/admin.py

from django.contrib import admin

from ledger.models import Transaction


# ======================================================
# TRANSACTION ADMIN (APPEND-ONLY)
# ======================================================


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "type",
        "amount",
        "currency",
        "order",
        "user",
        "external_ref",
    )
    list_filter = ("type", "status", "currency", "created_at")
    search_fields = ("external_ref", "order__order_number", "user__email")
    readonly_fields = [f.name for f in Transaction._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
