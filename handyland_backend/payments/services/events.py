# payments/services/events.py

"""
PROVIDER EVENT PARSING

Verified webhook bodies are turned into one of a closed set of event
records before anything touches the database:

    checkout.session.completed     -> CheckoutCompleted
    payment_intent.payment_failed  -> PaymentFailed
    charge.refunded                -> ChargeRefunded
    anything else                  -> UnknownEvent

Amounts stay in provider minor units (int).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from payments.services.exceptions import MalformedEvent

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: str
    payment_intent_id: str
    amount_total: int
    currency: str = ""
    metadata: dict = field(default_factory=dict)
    event_type: str = CHECKOUT_COMPLETED


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    payment_intent_id: str
    session_id: str = ""
    reason: str = ""
    metadata: dict = field(default_factory=dict)
    event_type: str = PAYMENT_FAILED


@dataclass(frozen=True)
class ChargeRefunded:
    event_id: str
    charge_id: str
    payment_intent_id: str
    amount_refunded: int
    currency: str = ""
    event_type: str = CHARGE_REFUNDED


@dataclass(frozen=True)
class UnknownEvent:
    event_id: str
    event_type: str


PaymentEventRecord = CheckoutCompleted | PaymentFailed | ChargeRefunded | UnknownEvent


def _text(value) -> str:
    return str(value or "").strip()


def _minor(value, *, name: str) -> int:
    if isinstance(value, bool):
        raise MalformedEvent(f"{name} must be an integer amount")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent(f"{name} must be an integer amount") from exc


def _metadata(obj: dict) -> dict:
    meta = obj.get("metadata")
    return dict(meta) if isinstance(meta, dict) else {}


def decode_payload(raw_body: bytes) -> dict:
    try:
        payload = json.loads((raw_body or b"").decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedEvent("Event body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent("Event body must be a JSON object")
    return payload


def parse_event(payload: dict) -> PaymentEventRecord:
    event_id = _text(payload.get("id"))
    event_type = _text(payload.get("type"))
    if not event_id or not event_type:
        raise MalformedEvent("Event is missing id or type")

    obj = (payload.get("data") or {}).get("object")
    if not isinstance(obj, dict):
        obj = {}

    if event_type == CHECKOUT_COMPLETED:
        session_id = _text(obj.get("id"))
        if not session_id:
            raise MalformedEvent("Checkout event is missing the session id")
        return CheckoutCompleted(
            event_id=event_id,
            session_id=session_id,
            payment_intent_id=_text(obj.get("payment_intent")),
            amount_total=_minor(obj.get("amount_total"), name="amount_total"),
            currency=_text(obj.get("currency")).lower(),
            metadata=_metadata(obj),
        )

    if event_type == PAYMENT_FAILED:
        metadata = _metadata(obj)
        error = obj.get("last_payment_error") or {}
        return PaymentFailed(
            event_id=event_id,
            payment_intent_id=_text(obj.get("id")),
            session_id=_text(metadata.get("session_id")),
            reason=_text(error.get("message") if isinstance(error, dict) else ""),
            metadata=metadata,
        )

    if event_type == CHARGE_REFUNDED:
        payment_intent_id = _text(obj.get("payment_intent"))
        if not payment_intent_id:
            raise MalformedEvent("Refund event is missing the payment intent")
        return ChargeRefunded(
            event_id=event_id,
            charge_id=_text(obj.get("id")),
            payment_intent_id=payment_intent_id,
            amount_refunded=_minor(obj.get("amount_refunded"), name="amount_refunded"),
            currency=_text(obj.get("currency")).lower(),
        )

    return UnknownEvent(event_id=event_id, event_type=event_type)
