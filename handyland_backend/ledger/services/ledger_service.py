# ledger/services/ledger_service.py

"""
======================================================
PATH: ledger/services/ledger_service.py
======================================================
LEDGER SERVICE

This module is the ONLY place allowed to create Transaction rows.

It enforces:
- Integer minor-unit storage (decimal_to_minor at the write boundary)
- Sign discipline per transaction type
- One purchase + one refund per order (clear error before DB constraint race)
- Order money invariant:
      0 <= sum(order entries) <= sum(order purchases)
  i.e. an order can never be refunded/credited beyond what was paid.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum

from ledger.models import Transaction
from ledger.services.exceptions import (
    DuplicateLedgerEntry,
    InvalidLedgerEntryError,
    LedgerInvariantError,
)
from ledger.services.money import decimal_to_minor, minor_to_decimal

logger = logging.getLogger(__name__)


def _default_currency() -> str:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    return str(payments.get("CURRENCY") or "eur").lower()


def _check_sign(tx_type: str, amount_minor: int) -> None:
    if tx_type not in dict(Transaction.TYPE_CHOICES):
        raise InvalidLedgerEntryError(f"Unknown transaction type: {tx_type!r}")

    if amount_minor == 0:
        raise InvalidLedgerEntryError("Transaction amount must be non-zero")

    if tx_type in Transaction.POSITIVE_TYPES and amount_minor < 0:
        raise InvalidLedgerEntryError(f"{tx_type} amount must be positive")

    if tx_type in Transaction.NEGATIVE_TYPES and amount_minor > 0:
        raise InvalidLedgerEntryError(f"{tx_type} amount must be negative")


def _order_sums(order) -> tuple[int, int]:
    qs = Transaction.objects.filter(order=order, status=Transaction.STATUS_COMPLETED)
    net = qs.aggregate(total=Sum("amount_minor")).get("total") or 0
    paid = (
        qs.filter(type=Transaction.TYPE_PURCHASE)
        .aggregate(total=Sum("amount_minor"))
        .get("total")
        or 0
    )
    return int(net), int(paid)


def _assert_order_invariant(*, order, tx_type: str, amount_minor: int) -> None:
    net, paid = _order_sums(order)

    net_after = net + amount_minor
    paid_after = paid + (amount_minor if tx_type == Transaction.TYPE_PURCHASE else 0)

    if net_after < 0:
        raise LedgerInvariantError(
            f"Order {order.pk}: entry of {minor_to_decimal(amount_minor)} would take "
            f"the balance below zero (paid {minor_to_decimal(paid_after)})"
        )

    if net_after > paid_after:
        raise LedgerInvariantError(
            f"Order {order.pk}: balance {minor_to_decimal(net_after)} would exceed "
            f"the amount actually paid ({minor_to_decimal(paid_after)})"
        )


@transaction.atomic
def append_transaction(
    *,
    order,
    type: str,
    amount,
    payment_method: str = "",
    external_ref: str = "",
    user=None,
    currency: str | None = None,
    description: str = "",
) -> Transaction:
    """
    Append one completed ledger row.

    `amount` is a signed decimal (refunds negative); it is persisted as
    integer minor units.
    """
    amount_minor = decimal_to_minor(amount)
    _check_sign(type, amount_minor)

    if order is not None:
        # Serialize appends for one order on the order row lock.
        list(
            order.__class__.objects.select_for_update()
            .filter(pk=order.pk)
            .values_list("pk", flat=True)
        )

        if (
            type in Transaction.ONE_PER_ORDER_TYPES
            and Transaction.objects.filter(order=order, type=type).exists()
        ):
            raise DuplicateLedgerEntry(
                f"A {type} transaction already exists for order {order.pk}"
            )

        _assert_order_invariant(order=order, tx_type=type, amount_minor=amount_minor)

    try:
        with transaction.atomic():
            tx = Transaction.objects.create(
                order=order,
                user=user,
                type=type,
                amount_minor=amount_minor,
                currency=(currency or _default_currency()).lower(),
                status=Transaction.STATUS_COMPLETED,
                payment_method=(payment_method or "").strip(),
                external_ref=(external_ref or "").strip(),
                description=(description or "").strip()[:255],
            )
    except IntegrityError as exc:
        if order is not None and Transaction.objects.filter(order=order, type=type).exists():
            raise DuplicateLedgerEntry(
                f"A {type} transaction already exists for order {order.pk}"
            ) from exc
        raise

    logger.info(
        "Ledger entry appended",
        extra={
            "transaction_id": str(tx.id),
            "order_id": str(order.pk) if order is not None else None,
            "type": type,
            "amount_minor": amount_minor,
            "external_ref": tx.external_ref,
        },
    )
    return tx


def purchase_for(order) -> Transaction | None:
    return Transaction.objects.filter(
        order=order, type=Transaction.TYPE_PURCHASE
    ).first()


def refund_for(order) -> Transaction | None:
    return Transaction.objects.filter(order=order, type=Transaction.TYPE_REFUND).first()


def order_balance(order) -> Decimal:
    net, _paid = _order_sums(order)
    return minor_to_decimal(net)
