"""
Token Ledger

This package provides:
- Immutable ledger entries carrying a balance snapshot
- Credit and debit appends serialized per account
- Idempotent appends keyed by a client-supplied request id, unique across accounts
- Balance resolution from the newest snapshot with an account fallback
"""

from .models import (
    Direction,
    TransactionType,
    Account,
    Transaction,
    ADMIN_CREDIT,
    ADMIN_DEBIT,
)
from .service import LedgerService

__all__ = [
    "Direction",
    "TransactionType",
    "Account",
    "Transaction",
    "ADMIN_CREDIT",
    "ADMIN_DEBIT",
    "LedgerService",
]
