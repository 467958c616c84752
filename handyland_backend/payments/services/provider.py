# payments/services/provider.py

"""
======================================================
PATH: payments/services/provider.py
======================================================
STRIPE CLIENT

Two concerns only:
- Create a hosted checkout session for a pending order
- Verify webhook signatures

Signature scheme (header `Stripe-Signature`):
    t=<unix ts>,v1=<hex hmac>[,v1=<hex hmac>...]
    hmac = HMAC-SHA256(webhook_secret, f"{t}.{raw_body}")
A signature is accepted when any v1 matches and |now - t| is within
PAYMENTS["STRIPE"]["WEBHOOK_TOLERANCE"] seconds.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from django.conf import settings

from payments.services.exceptions import AuthenticationError, PaymentProviderError

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"
REQUEST_TIMEOUT = 25


# ============================================================
# CONFIG
# ============================================================


def _stripe_cfg() -> dict:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("STRIPE") if isinstance(payments, dict) else None
    return cfg if isinstance(cfg, dict) else {}


def _get_secret_key() -> str:
    sk = (_stripe_cfg().get("SECRET_KEY") or "").strip()
    if not sk:
        raise PaymentProviderError(
            "Stripe SECRET_KEY is not configured (settings.PAYMENTS['STRIPE']['SECRET_KEY'])."
        )
    return sk


def _get_webhook_secret() -> str:
    secret = (_stripe_cfg().get("WEBHOOK_SECRET") or "").strip()
    if not secret:
        raise AuthenticationError("Stripe WEBHOOK_SECRET is not configured")
    return secret


def _api_base() -> str:
    return (_stripe_cfg().get("API_BASE") or STRIPE_API_BASE).rstrip("/")


def webhook_tolerance() -> int:
    try:
        return max(0, int(_stripe_cfg().get("WEBHOOK_TOLERANCE", 300)))
    except (TypeError, ValueError):
        return 300


def payment_currency() -> str:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    return str(payments.get("CURRENCY") or "eur").lower()


# ============================================================
# HTTP
# ============================================================


def _flatten(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Stripe form encoding: nested dicts/lists become key[sub][0] pairs."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            pairs.extend(_flatten(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                entry = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(_flatten(item, entry))
                else:
                    pairs.append((entry, str(item)))
        elif value is not None:
            pairs.append((name, str(value)))
    return pairs


def _safe_preview(text: str, limit: int = 800) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + " ...(truncated)"


def _request_json(method: str, path: str, *, params: dict | None = None) -> dict[str, Any]:
    sk = _get_secret_key()
    data = urlencode(_flatten(params)).encode("utf-8") if params else None

    req = Request(
        f"{_api_base()}{path}",
        data=data,
        headers={
            "Authorization": f"Bearer {sk}",
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        },
        method=method,
    )

    try:
        with urlopen(req, timeout=REQUEST_TIMEOUT) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except HTTPError as e:
        raw = e.read().decode("utf-8", errors="replace") if e.fp else ""
        try:
            message = (json.loads(raw).get("error") or {}).get("message")
        except (ValueError, AttributeError):
            message = None
        raise PaymentProviderError(
            f"Stripe HTTPError: {e.code} {message or _safe_preview(raw) or e.reason}"
        ) from e
    except URLError as e:
        raise PaymentProviderError(f"Stripe URLError: {e.reason}") from e
    except (TimeoutError, OSError) as e:
        raise PaymentProviderError(f"Stripe request failed: {e}") from e

    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise PaymentProviderError(f"Stripe returned non-JSON: {_safe_preview(raw)}") from e

    if not isinstance(parsed, dict):
        raise PaymentProviderError("Stripe returned an unexpected payload")
    return parsed


# ============================================================
# CHECKOUT SESSION
# ============================================================


def create_checkout_session(order) -> dict:
    """
    Hosted checkout for the whole order as a single line item.

    The server-side total is the only amount sent; client figures never
    reach the provider. Returns {"id", "url"}.
    """
    frontend = (getattr(settings, "FRONTEND_BASE_URL", "") or "").rstrip("/")
    metadata = {"order_id": str(order.pk), "order_number": order.order_number}

    params = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": payment_currency(),
                    "product_data": {"name": f"Order {order.order_number}"},
                    "unit_amount": order.total_minor,
                },
                "quantity": 1,
            }
        ],
        "client_reference_id": str(order.pk),
        "customer_email": order.customer_email or None,
        "success_url": f"{frontend}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{frontend}/checkout?cancelled=1&order={order.order_number}",
        "metadata": metadata,
        "payment_intent_data": {"metadata": metadata},
    }

    session = _request_json("POST", "/checkout/sessions", params=params)

    session_id = str(session.get("id") or "").strip()
    url = str(session.get("url") or "").strip()
    if not session_id or not url:
        raise PaymentProviderError("Stripe session response missing id or url")

    logger.info(
        "Checkout session created",
        extra={"order_number": order.order_number, "session_id": session_id},
    )
    return {"id": session_id, "url": url}


def create_refund(
    *, payment_intent_id: str, reason: str = "requested_by_customer", metadata: dict | None = None
) -> dict:
    """Full refund of a payment intent. Returns {"id", "status"}."""
    params = {
        "payment_intent": payment_intent_id,
        "reason": reason,
        "metadata": metadata or {},
    }
    refund = _request_json("POST", "/refunds", params=params)

    refund_id = str(refund.get("id") or "").strip()
    if not refund_id:
        raise PaymentProviderError("Stripe refund response missing id")

    logger.info(
        "Refund requested",
        extra={"payment_intent": payment_intent_id, "refund_id": refund_id},
    )
    return {"id": refund_id, "status": str(refund.get("status") or "pending")}


# ============================================================
# WEBHOOK SIGNATURE
# ============================================================


def compute_signature(secret: str, timestamp: int | str, raw_body: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + (raw_body or b"")
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    candidates: list[str] = []

    for part in (header or "").split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as exc:
                raise AuthenticationError("Signature timestamp is not an integer") from exc
        elif key == "v1":
            candidates.append(value.strip())

    if timestamp is None or not candidates:
        raise AuthenticationError("Signature header missing t or v1")
    return timestamp, candidates


def verify_stripe_signature(*, raw_body: bytes, signature: str | None, now: float | None = None) -> None:
    """Raises AuthenticationError unless the body carries a fresh valid signature."""
    if not signature:
        raise AuthenticationError("Missing Stripe-Signature header")

    timestamp, candidates = _parse_signature_header(signature)

    now = time.time() if now is None else now
    tolerance = webhook_tolerance()
    if tolerance and abs(now - timestamp) > tolerance:
        raise AuthenticationError("Signature timestamp outside tolerance")

    expected = compute_signature(_get_webhook_secret(), timestamp, raw_body)
    if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
        raise AuthenticationError("Signature does not match payload")
