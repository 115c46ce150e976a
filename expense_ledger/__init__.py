"""
Expense Ledger - Source Package

The data core of a personal expense-tracking app: a local, device-only
ledger of receipts with per-category aggregates, filtering and reports.

DESIGN PRINCIPLES:
1. Persist first, then commit in memory
2. Reject bad input before it reaches the ledger
3. Amounts are derived from line items, never trusted
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Ledger Team"
