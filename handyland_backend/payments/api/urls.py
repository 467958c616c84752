# payments/api/urls.py

"""
PAYMENTS API URLS

Base path (mounted in backend/urls.py):
    /api/payments/
"""

from django.urls import path

from payments.api.views import PaymentSessionView, RefundRequestView, StripeWebhookView

app_name = "payments"

urlpatterns = [
    path("session/", PaymentSessionView.as_view(), name="payment-session"),
    path("webhook/", StripeWebhookView.as_view(), name="stripe-webhook"),
    path("refund/", RefundRequestView.as_view(), name="payment-refund"),
]
