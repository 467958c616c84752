# orders/services/sequence.py

"""
======================================================
PATH: orders/services/sequence.py
======================================================
SEQUENCE ALLOCATOR

Collision-free, strictly increasing identifiers per (entity_type, scope_key).

Algorithm:
1) UPDATE counter SET value = value + 1 WHERE entity_type=? AND scope_key=?
   (the row stays locked until the surrounding transaction commits)
2) read the value back inside the same savepoint
3) no row yet -> INSERT it seeded from the highest identifier already in use
   for the scope; a concurrent INSERT of the same row fails on the unique
   constraint and the loser retries
4) bounded attempts with randomized exponential backoff, then
   IdentifierExhausted

Order numbers: "{PREFIX}-{YYYYMMDD}-{NNNN}", NNNN zero-padded to 4 digits.
"""

from __future__ import annotations

import logging
import random
import re
import time

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from orders.models import Order, SequenceCounter
from orders.services.exceptions import IdentifierExhausted

logger = logging.getLogger(__name__)

ENTITY_ORDER = "order"

BACKOFF_BASE_SECONDS = 0.01
BACKOFF_MAX_SECONDS = 0.5


def _orders_settings() -> dict:
    return getattr(settings, "ORDERS", {}) or {}


def max_attempts() -> int:
    try:
        return max(1, int(_orders_settings().get("SEQUENCE_MAX_ATTEMPTS", 5)))
    except (TypeError, ValueError):
        return 5


def order_number_prefix() -> str:
    prefix = str(_orders_settings().get("NUMBER_PREFIX") or "HL").strip().upper()
    return prefix or "HL"


def backoff(attempt: int) -> None:
    """Full-jitter exponential backoff before retry `attempt + 1`."""
    ceiling = min(BACKOFF_MAX_SECONDS, BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)))
    time.sleep(random.uniform(0, ceiling))


def _resolve_seed(seed) -> int:
    if seed is None:
        return 0
    value = seed() if callable(seed) else seed
    return max(0, int(value or 0))


def allocate_next(entity_type: str, scope_key: str, *, seed=None) -> int:
    """
    Next identifier for the scope.

    `seed` (int or zero-arg callable) is the highest identifier already in
    use; it is only consulted when the counter row does not exist yet.
    """
    attempts = max_attempts()
    last_exc: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                counter = SequenceCounter.objects.filter(
                    entity_type=entity_type, scope_key=scope_key
                )
                updated = counter.update(value=F("value") + 1, updated_at=timezone.now())

                if updated:
                    return int(counter.values_list("value", flat=True).get())

                value = _resolve_seed(seed) + 1
                SequenceCounter.objects.create(
                    entity_type=entity_type, scope_key=scope_key, value=value
                )
                return value

        except (IntegrityError, OperationalError) as exc:
            last_exc = exc
            logger.warning(
                "Sequence allocation collided; retrying",
                extra={
                    "entity_type": entity_type,
                    "scope_key": scope_key,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "error": str(exc),
                },
            )
            if attempt < attempts:
                backoff(attempt)

    logger.error(
        "Sequence allocation exhausted",
        extra={"entity_type": entity_type, "scope_key": scope_key, "attempts": attempts},
    )
    raise IdentifierExhausted(
        f"Could not allocate a {entity_type} identifier for {scope_key} "
        f"after {attempts} attempts"
    ) from last_exc


# ============================================================
# ORDER NUMBERS
# ============================================================


def format_order_number(prefix: str, day: str, value: int) -> str:
    return f"{prefix}-{day}-{value:04d}"


def _scope_for(now=None) -> tuple[str, str]:
    now = now or timezone.now()
    if timezone.is_aware(now):
        now = timezone.localtime(now)
    return order_number_prefix(), now.strftime("%Y%m%d")


def highest_order_suffix(prefix: str, day: str) -> int:
    """Highest NNNN already used for the day (rows predating the counter)."""
    pattern = re.compile(rf"^{re.escape(prefix)}-{day}-(\d+)$")
    highest = 0
    numbers = Order.objects.filter(
        order_number__startswith=f"{prefix}-{day}-"
    ).values_list("order_number", flat=True)

    for number in numbers.iterator():
        match = pattern.match(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def next_order_number(now=None) -> str:
    prefix, day = _scope_for(now)
    value = allocate_next(
        ENTITY_ORDER,
        f"{prefix}-{day}",
        seed=lambda: highest_order_suffix(prefix, day),
    )
    return format_order_number(prefix, day, value)
