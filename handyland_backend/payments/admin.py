# payments/admin.py

from django.contrib import admin

from payments.models import PaymentEvent


# ======================================================
# PAYMENT EVENT INBOX
# ======================================================
# Read-only: rows are written by the reconciler and re-applied with
# `manage.py replay_payment_events`.


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = (
        "external_id",
        "event_type",
        "status",
        "order",
        "attempts",
        "received_at",
        "processed_at",
    )
    list_filter = ("status", "event_type", "received_at")
    search_fields = ("external_id", "order__order_number", "last_error")
    readonly_fields = (
        "id",
        "external_id",
        "event_type",
        "payload",
        "status",
        "attempts",
        "last_error",
        "order",
        "received_at",
        "processed_at",
    )
    ordering = ("-received_at",)

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
