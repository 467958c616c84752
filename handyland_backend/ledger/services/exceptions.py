# ledger/services/exceptions.py

"""
LEDGER SERVICE ERRORS

Centralized domain errors for the transaction ledger.
"""


class LedgerError(Exception):
    """Base exception for all ledger failures."""


class InvalidMoneyError(LedgerError, ValueError):
    """Raised when a value cannot be interpreted as a monetary amount."""


class InvalidLedgerEntryError(LedgerError):
    """Raised when an entry's type, sign or references are inconsistent."""


class DuplicateLedgerEntry(LedgerError):
    """Raised on a second purchase or refund entry for the same order."""


class LedgerInvariantError(LedgerError):
    """Raised when an entry would refund more than was paid for an order."""
