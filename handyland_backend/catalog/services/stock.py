# catalog/services/stock.py

"""
STOCK RESERVATION ENGINE

Purpose:
- Reserve stock for order lines with a single conditional decrement per line:
      UPDATE ... SET stock = stock - qty WHERE id = ? AND stock >= qty
  (never read-then-write; concurrent workers cannot oversell).
- Multi-line reservations are all-or-nothing: when line N fails, lines
  1..N-1 are explicitly re-incremented before InsufficientStockError is raised.
- Release (re-increment) on order cancellation.

HARD RULE: quantities are integer units.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from django.db.models import F

from catalog.models import Accessory, Product

logger = logging.getLogger(__name__)

KIND_PRODUCT = "product"
KIND_ACCESSORY = "accessory"

CATALOG_MODELS = {
    KIND_PRODUCT: Product,
    KIND_ACCESSORY: Accessory,
}


# ============================================================
# DOMAIN ERRORS
# ============================================================


class InsufficientStockError(Exception):
    def __init__(self, message, *, kind, item_id, item_name, requested, available):
        super().__init__(message)
        self.kind = kind
        self.item_id = item_id
        self.item_name = item_name
        self.requested = requested
        self.available = available


class UnknownCatalogItem(Exception):
    pass


@dataclass(frozen=True)
class Reservation:
    kind: str
    item_id: uuid.UUID
    quantity: int
    name: str = ""


def _model_for(kind: str):
    model = CATALOG_MODELS.get(str(kind or "").strip().lower())
    if model is None:
        raise UnknownCatalogItem(f"Unknown catalog item type: {kind!r}")
    return model


def _to_int_qty(value) -> int:
    if isinstance(value, bool):
        raise ValueError("quantity must be a whole integer unit")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError("quantity must be a whole integer unit")


def get_active_item(*, kind: str, item_id):
    """Active catalog item or UnknownCatalogItem."""
    model = _model_for(kind)
    try:
        pk = item_id if isinstance(item_id, uuid.UUID) else uuid.UUID(str(item_id))
    except (ValueError, TypeError, AttributeError) as exc:
        raise UnknownCatalogItem(f"Invalid {kind} id: {item_id!r}") from exc

    item = model.objects.filter(pk=pk, is_active=True).first()
    if item is None:
        raise UnknownCatalogItem(f"{kind.capitalize()} not found: {item_id}")
    return item


def reserve_stock(*, kind: str, item_id, quantity) -> bool:
    """Atomic conditional decrement. True if reserved."""
    qty = _to_int_qty(quantity)
    if qty <= 0:
        raise ValueError("quantity must be >= 1")

    model = _model_for(kind)
    updated = model.objects.filter(pk=item_id, stock__gte=qty).update(
        stock=F("stock") - qty
    )
    return updated == 1


def release_stock(*, kind: str, item_id, quantity) -> None:
    qty = _to_int_qty(quantity)
    if qty <= 0:
        return

    model = _model_for(kind)
    model.objects.filter(pk=item_id).update(stock=F("stock") + qty)


def release_all(reservations: list[Reservation]) -> None:
    for r in reversed(reservations):
        release_stock(kind=r.kind, item_id=r.item_id, quantity=r.quantity)

    if reservations:
        logger.info(
            "Stock reservations released",
            extra={"lines": [(r.kind, str(r.item_id), r.quantity) for r in reservations]},
        )


def reserve_all(lines: list[Reservation]) -> list[Reservation]:
    """
    Reserve every line or none.

    On the first failing line, earlier reservations are compensated and
    InsufficientStockError names the offending item.
    """
    reserved: list[Reservation] = []

    for line in lines:
        if reserve_stock(kind=line.kind, item_id=line.item_id, quantity=line.quantity):
            reserved.append(line)
            continue

        release_all(reserved)

        available = (
            _model_for(line.kind)
            .objects.filter(pk=line.item_id)
            .values_list("stock", flat=True)
            .first()
        ) or 0
        name = line.name or str(line.item_id)

        logger.warning(
            "Stock reservation failed",
            extra={
                "kind": line.kind,
                "item_id": str(line.item_id),
                "requested": line.quantity,
                "available": available,
            },
        )
        raise InsufficientStockError(
            f"Insufficient stock for {name}. Requested: {line.quantity}, Available: {available}",
            kind=line.kind,
            item_id=line.item_id,
            item_name=name,
            requested=line.quantity,
            available=available,
        )

    return reserved
