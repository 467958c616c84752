# ledger/models/__init__.py

"""
LEDGER MODELS PACKAGE EXPORTS
"""

from .transaction import Transaction

__all__ = [
    "Transaction",
]
