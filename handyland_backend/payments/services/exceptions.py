# payments/services/exceptions.py

"""
PAYMENT SERVICE ERRORS

Centralized domain errors for provider calls and webhook reconciliation.
"""


class PaymentsError(Exception):
    """Base exception for all payment failures."""


class AuthenticationError(PaymentsError):
    """Webhook signature missing, malformed, stale or not matching."""


class MalformedEvent(PaymentsError):
    """Signed body could not be read as a provider event."""


class PaymentProviderError(PaymentsError):
    """Provider API rejected a request or could not be reached."""


class InboxUnavailable(PaymentsError):
    """Webhook event could not be recorded; the delivery must not be acknowledged."""


class RefundNotAllowed(PaymentsError):
    """Order has no purchase to refund, or a refund is already recorded."""
