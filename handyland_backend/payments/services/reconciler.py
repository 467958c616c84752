# payments/services/reconciler.py

"""
======================================================
PATH: payments/services/reconciler.py
======================================================
PAYMENT EVENT RECONCILER

Turns verified provider events into order transitions + ledger rows.

Pipeline:
    verify signature -> parse -> record in inbox -> dispatch

Guarantees:
- Nothing is read or written before the signature verifies
- Each provider event id is applied at most once (PaymentEvent inbox)
- Every order write is conditional on the expected current status
- A paid order always has exactly one purchase entry; a refunded order
  exactly one refund entry equal in magnitude
- Events that cannot be applied safely are acknowledged and parked as
  unmatched / needs_review, never guessed at
- Transient store errors are retried with backoff, then parked
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F, Q
from django.utils import timezone

from ledger.models import Transaction
from ledger.services.exceptions import DuplicateLedgerEntry, LedgerError
from ledger.services.ledger_service import append_transaction, purchase_for, refund_for
from ledger.services.money import minor_to_decimal
from orders.models import Order
from orders.services.exceptions import StaleTransitionError
from orders.services.order_lifecycle import can_transition, transition_order
from orders.services.sequence import backoff
from payments.models import PaymentEvent
from payments.services.events import (
    ChargeRefunded,
    CheckoutCompleted,
    PaymentFailed,
    UnknownEvent,
    decode_payload,
    parse_event,
)
from payments.services.exceptions import InboxUnavailable, MalformedEvent
from payments.services.provider import verify_stripe_signature
from promotions.services.coupons import record_coupon_use

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"
OUTCOME_UNMATCHED = "unmatched"
OUTCOME_NEEDS_REVIEW = "needs_review"
OUTCOME_MALFORMED = "malformed"

INBOX_STATUS_FOR = {
    OUTCOME_PROCESSED: PaymentEvent.STATUS_PROCESSED,
    OUTCOME_DUPLICATE: PaymentEvent.STATUS_PROCESSED,
    OUTCOME_IGNORED: PaymentEvent.STATUS_IGNORED,
    OUTCOME_UNMATCHED: PaymentEvent.STATUS_UNMATCHED,
    OUTCOME_NEEDS_REVIEW: PaymentEvent.STATUS_NEEDS_REVIEW,
}


@dataclass(frozen=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: str
    detail: str = ""
    order_number: str = ""


def max_retries() -> int:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    try:
        return max(0, int(payments.get("WEBHOOK_MAX_RETRIES", 3)))
    except (TypeError, ValueError):
        return 3


# ============================================================
# ORDER LOOKUP
# ============================================================


def _lock(order_id) -> Order | None:
    return Order.objects.select_for_update().filter(pk=order_id).first()


def _order_from_metadata(metadata: dict) -> Order | None:
    order_number = str((metadata or {}).get("order_number") or "").strip()
    if order_number:
        return Order.objects.filter(order_number=order_number).first()
    return None


def _order_for_session(event: CheckoutCompleted) -> Order | None:
    order = Order.objects.filter(
        Q(checkout_session_id=event.session_id) | Q(payment_id=event.session_id)
    ).first()
    return order or _order_from_metadata(event.metadata)


def _order_for_failure(event: PaymentFailed) -> Order | None:
    refs = [ref for ref in (event.payment_intent_id, event.session_id) if ref]
    order = None
    if refs:
        order = Order.objects.filter(
            Q(payment_id__in=refs) | Q(checkout_session_id__in=refs)
        ).first()
    return order or _order_from_metadata(event.metadata)


# ============================================================
# HANDLERS
# ============================================================
# Each handler runs inside the caller's transaction and returns
# (outcome, detail, order).


def _handle_checkout_completed(event: CheckoutCompleted):
    found = _order_for_session(event)
    if found is None:
        return OUTCOME_UNMATCHED, "No order for checkout session", None

    order = _lock(found.pk)

    if order.status != Order.STATUS_PENDING:
        if order.status == Order.STATUS_CANCELLED:
            logger.error(
                "Payment completed for a cancelled order",
                extra={"order_number": order.order_number, "session_id": event.session_id},
            )
            return OUTCOME_NEEDS_REVIEW, "Payment completed for a cancelled order", order
        return OUTCOME_DUPLICATE, f"Order already {order.status}", order

    if event.amount_total <= 0 or order.total_minor <= 0:
        logger.error(
            "Payment with no chargeable amount",
            extra={"order_number": order.order_number, "paid_minor": event.amount_total},
        )
        return OUTCOME_NEEDS_REVIEW, "Payment amount must be greater than zero", order

    if event.amount_total != order.total_minor:
        logger.error(
            "Payment amount mismatch",
            extra={
                "order_number": order.order_number,
                "paid_minor": event.amount_total,
                "expected_minor": order.total_minor,
            },
        )
        return (
            OUTCOME_NEEDS_REVIEW,
            f"Paid {minor_to_decimal(event.amount_total)}, expected {order.total}",
            order,
        )

    payment_ref = event.payment_intent_id or event.session_id

    try:
        order = transition_order(
            order,
            Order.STATUS_PROCESSING,
            expected_status=Order.STATUS_PENDING,
            note="Payment confirmed",
            extra_fields={
                "payment_id": payment_ref,
                "checkout_session_id": event.session_id,
                "payment_status": Order.PAYMENT_PAID,
                "paid_at": timezone.now(),
            },
        )
    except StaleTransitionError as exc:
        return OUTCOME_DUPLICATE, f"Order already {exc.current_status}", order

    try:
        append_transaction(
            order=order,
            type=Transaction.TYPE_PURCHASE,
            amount=minor_to_decimal(event.amount_total),
            payment_method=order.payment_method,
            external_ref=payment_ref,
            user=order.user,
            currency=event.currency or None,
            description=f"Payment for order {order.order_number}",
        )
    except DuplicateLedgerEntry:
        logger.info(
            "Purchase entry already recorded",
            extra={"order_number": order.order_number},
        )

    if order.coupon_code and not record_coupon_use(order.coupon_code):
        logger.warning(
            "Paid order coupon use not counted",
            extra={"order_number": order.order_number, "coupon_code": order.coupon_code},
        )

    return OUTCOME_PROCESSED, "Order paid", order


def _handle_payment_failed(event: PaymentFailed):
    found = _order_for_failure(event)
    if found is None:
        return OUTCOME_UNMATCHED, "No order for payment intent", None

    order = _lock(found.pk)
    if order.status != Order.STATUS_PENDING:
        return OUTCOME_DUPLICATE, f"Order already {order.status}", order

    note = "Payment failed"
    if event.reason:
        note = f"Payment failed: {event.reason}"

    try:
        order = transition_order(
            order,
            Order.STATUS_CANCELLED,
            expected_status=Order.STATUS_PENDING,
            note=note,
            extra_fields={"payment_status": Order.PAYMENT_FAILED},
        )
    except StaleTransitionError as exc:
        return OUTCOME_DUPLICATE, f"Order already {exc.current_status}", order

    return OUTCOME_PROCESSED, "Order cancelled", order


def _handle_charge_refunded(event: ChargeRefunded):
    found = Order.objects.filter(payment_id=event.payment_intent_id).first()
    if found is None:
        return OUTCOME_UNMATCHED, "No order for payment intent", None

    order = _lock(found.pk)

    if refund_for(order) is not None:
        return OUTCOME_DUPLICATE, "Refund already recorded", order

    purchase = purchase_for(order)
    if purchase is None:
        logger.error(
            "Refund for an order without a purchase entry",
            extra={"order_number": order.order_number, "charge_id": event.charge_id},
        )
        return OUTCOME_NEEDS_REVIEW, "No purchase entry to refund", order

    if event.amount_refunded != purchase.amount_minor:
        logger.warning(
            "Partial or mismatched refund",
            extra={
                "order_number": order.order_number,
                "refunded_minor": event.amount_refunded,
                "purchase_minor": purchase.amount_minor,
            },
        )
        return (
            OUTCOME_NEEDS_REVIEW,
            f"Refunded {minor_to_decimal(event.amount_refunded)} of {purchase.amount}",
            order,
        )

    try:
        append_transaction(
            order=order,
            type=Transaction.TYPE_REFUND,
            amount=-purchase.amount,
            payment_method=purchase.payment_method,
            external_ref=event.charge_id or event.payment_intent_id,
            user=order.user,
            currency=purchase.currency,
            description=f"Refund for order {order.order_number}",
        )
    except DuplicateLedgerEntry:
        return OUTCOME_DUPLICATE, "Refund already recorded", order

    if not can_transition(from_status=order.status, to_status=Order.STATUS_REFUNDED):
        logger.error(
            "Refund recorded but order cannot move to refunded",
            extra={"order_number": order.order_number, "current_status": order.status},
        )
        return (
            OUTCOME_NEEDS_REVIEW,
            f"Refund recorded; order is {order.status} and was not moved",
            order,
        )

    try:
        order = transition_order(
            order,
            Order.STATUS_REFUNDED,
            expected_status=order.status,
            note="Payment refunded",
            extra_fields={"payment_status": Order.PAYMENT_REFUNDED},
        )
    except StaleTransitionError as exc:
        return (
            OUTCOME_NEEDS_REVIEW,
            f"Refund recorded; order is {exc.current_status} and was not moved",
            order,
        )

    return OUTCOME_PROCESSED, "Order refunded", order


def _handle_unknown(event: UnknownEvent):
    return OUTCOME_IGNORED, f"Unhandled event type {event.event_type}", None


HANDLERS = {
    CheckoutCompleted: _handle_checkout_completed,
    PaymentFailed: _handle_payment_failed,
    ChargeRefunded: _handle_charge_refunded,
    UnknownEvent: _handle_unknown,
}


# ============================================================
# INBOX
# ============================================================


def _record(event, payload) -> PaymentEvent:
    defaults = {"event_type": event.event_type, "payload": payload or {}}
    try:
        with transaction.atomic():
            inbox, _created = PaymentEvent.objects.get_or_create(
                external_id=event.event_id, defaults=defaults
            )
    except IntegrityError:
        inbox = PaymentEvent.objects.get(external_id=event.event_id)
    return inbox


def _apply(event, inbox_id):
    """Run the handler and settle the inbox row in one transaction."""
    with transaction.atomic():
        inbox = PaymentEvent.objects.select_for_update().get(pk=inbox_id)
        if inbox.is_settled:
            return OUTCOME_DUPLICATE, "Event already applied", inbox.order

        outcome, detail, order = HANDLERS[type(event)](event)

        status = INBOX_STATUS_FOR[outcome]
        if outcome == OUTCOME_DUPLICATE and inbox.status == PaymentEvent.STATUS_NEEDS_REVIEW:
            status = inbox.status

        PaymentEvent.objects.filter(pk=inbox.pk).update(
            status=status,
            attempts=F("attempts") + 1,
            last_error="" if status == PaymentEvent.STATUS_PROCESSED else detail,
            order=order if order is not None else inbox.order,
            processed_at=timezone.now(),
        )
        return outcome, detail, order


def _park(inbox_id, *, error: str) -> None:
    try:
        PaymentEvent.objects.filter(pk=inbox_id).update(
            status=PaymentEvent.STATUS_NEEDS_REVIEW,
            last_error=error[:2000],
        )
    except OperationalError:
        logger.exception("Could not park payment event", extra={"inbox_id": str(inbox_id)})


# ============================================================
# ENTRY POINTS
# ============================================================


def _record_with_retry(event, payload) -> PaymentEvent:
    attempts = max_retries() + 1
    for attempt in range(1, attempts + 1):
        try:
            return _record(event, payload)
        except OperationalError as exc:
            if attempt >= attempts:
                logger.exception(
                    "Payment event could not be recorded",
                    extra={"event_id": event.event_id, "attempts": attempt},
                )
                raise InboxUnavailable(
                    f"Could not record event {event.event_id} after {attempt} attempts"
                ) from exc
            logger.warning(
                "Transient store error while recording payment event",
                extra={"event_id": event.event_id, "attempt": attempt},
            )
            backoff(attempt)


def process_event(event, *, payload: dict | None = None) -> ReconcileResult:
    """
    Record `event` in the inbox and apply it.

    Raises InboxUnavailable when the inbox row itself cannot be written;
    callers must not acknowledge the delivery in that case.
    """
    inbox = _record_with_retry(event, payload)

    if inbox.is_settled:
        logger.info(
            "Duplicate payment event ignored",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return ReconcileResult(
            event_id=event.event_id,
            event_type=event.event_type,
            outcome=OUTCOME_DUPLICATE,
            detail="Event already applied",
            order_number=inbox.order.order_number if inbox.order_id else "",
        )

    attempts = max_retries() + 1
    for attempt in range(1, attempts + 1):
        try:
            outcome, detail, order = _apply(event, inbox.pk)
            break
        except LedgerError as exc:
            logger.error(
                "Ledger refused payment event",
                extra={"event_id": event.event_id, "error": str(exc)},
            )
            PaymentEvent.objects.filter(pk=inbox.pk).update(attempts=F("attempts") + 1)
            _park(inbox.pk, error=str(exc))
            return ReconcileResult(
                event_id=event.event_id,
                event_type=event.event_type,
                outcome=OUTCOME_NEEDS_REVIEW,
                detail=str(exc),
            )
        except OperationalError as exc:
            PaymentEvent.objects.filter(pk=inbox.pk).update(
                attempts=F("attempts") + 1, last_error=str(exc)[:2000]
            )
            if attempt >= attempts:
                logger.exception(
                    "Payment event parked after retries",
                    extra={"event_id": event.event_id, "attempts": attempt},
                )
                _park(inbox.pk, error=str(exc))
                return ReconcileResult(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    outcome=OUTCOME_NEEDS_REVIEW,
                    detail="Store unavailable; parked for review",
                )
            logger.warning(
                "Transient store error while applying payment event",
                extra={"event_id": event.event_id, "attempt": attempt},
            )
            backoff(attempt)

    logger.info(
        "Payment event reconciled",
        extra={
            "event_id": event.event_id,
            "event_type": event.event_type,
            "outcome": outcome,
            "order_number": getattr(order, "order_number", None),
        },
    )
    return ReconcileResult(
        event_id=event.event_id,
        event_type=event.event_type,
        outcome=outcome,
        detail=detail,
        order_number=getattr(order, "order_number", "") or "",
    )


def process_webhook(*, raw_body: bytes, signature: str | None) -> ReconcileResult:
    """
    Verify, parse and apply one webhook delivery.

    Raises AuthenticationError on a bad signature (nothing is touched).
    Every other outcome is returned as a ReconcileResult.
    """
    verify_stripe_signature(raw_body=raw_body, signature=signature)

    try:
        payload = decode_payload(raw_body)
        event = parse_event(payload)
    except MalformedEvent as exc:
        logger.error("Malformed payment event", extra={"error": str(exc)})
        return ReconcileResult(
            event_id="",
            event_type="",
            outcome=OUTCOME_MALFORMED,
            detail=str(exc),
        )

    return process_event(event, payload=payload)
