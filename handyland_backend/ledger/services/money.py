# ledger/services/money.py

"""
MONEY CONVERSION

Every monetary value crosses a boundary through this module:
- Storage is integer minor units (cents).
- External reads/writes are two-place Decimals.

Floats are accepted only by way of their shortest repr (Decimal(str(x))),
never by their binary value.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ledger.services.exceptions import InvalidMoneyError

TWOPLACES = Decimal("0.01")
MINOR_PER_MAJOR = 100


def _to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise InvalidMoneyError(f"Invalid money value: {value!r}")

    if isinstance(value, Decimal):
        amt = value
    else:
        try:
            amt = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise InvalidMoneyError(f"Invalid money value: {value!r}") from exc

    if not amt.is_finite():
        raise InvalidMoneyError(f"Invalid money value: {value!r}")
    return amt


def money(value) -> Decimal:
    """Quantize to two places (half-up). None/"" read as zero."""
    if value is None or value == "":
        return Decimal("0.00")
    return _to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def decimal_to_minor(value) -> int:
    """round(value × 100), half-up, as int."""
    if value is None or value == "":
        return 0
    amt = _to_decimal(value)
    minor = (amt * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def minor_to_decimal(minor) -> Decimal:
    if isinstance(minor, bool):
        raise InvalidMoneyError(f"Invalid minor-unit value: {minor!r}")
    try:
        as_int = int(minor)
    except (ValueError, TypeError) as exc:
        raise InvalidMoneyError(f"Invalid minor-unit value: {minor!r}") from exc
    if as_int != minor:
        raise InvalidMoneyError(f"Minor-unit value must be integral: {minor!r}")

    return (Decimal(as_int) / MINOR_PER_MAJOR).quantize(TWOPLACES)
