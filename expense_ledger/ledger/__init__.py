"""Ledger package."""

from expense_ledger.ledger.service import (
    LedgerService,
    receipts_total,
    share_percentage,
    summarize_categories,
)

__all__ = [
    "LedgerService",
    "receipts_total",
    "share_percentage",
    "summarize_categories",
]
