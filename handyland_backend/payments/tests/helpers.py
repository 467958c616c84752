# payments/tests/helpers.py

"""
Signed webhook deliveries for reconciler tests.
"""

from __future__ import annotations

import json
import time

from payments.services.provider import compute_signature

WEBHOOK_SECRET = "whsec_test_handyland"


def signed(payload, *, secret=WEBHOOK_SECRET, timestamp=None):
    body = json.dumps(payload).encode("utf-8")
    ts = int(time.time()) if timestamp is None else timestamp
    return body, f"t={ts},v1={compute_signature(secret, ts, body)}"


def checkout_completed(event_id, *, session_id, amount_total, payment_intent="pi_test_1", metadata=None):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_intent": payment_intent,
                "amount_total": amount_total,
                "currency": "eur",
                "metadata": metadata or {},
            }
        },
    }


def payment_failed(event_id, *, payment_intent, metadata=None, message="Your card was declined."):
    return {
        "id": event_id,
        "type": "payment_intent.payment_failed",
        "data": {
            "object": {
                "id": payment_intent,
                "object": "payment_intent",
                "metadata": metadata or {},
                "last_payment_error": {"message": message},
            }
        },
    }


def charge_refunded(event_id, *, payment_intent, amount_refunded, charge="ch_test_1"):
    return {
        "id": event_id,
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": charge,
                "object": "charge",
                "payment_intent": payment_intent,
                "amount_refunded": amount_refunded,
                "currency": "eur",
                "refunded": True,
            }
        },
    }
