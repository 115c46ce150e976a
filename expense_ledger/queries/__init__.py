"""Receipt filtering package."""

from expense_ledger.queries.filters import (
    ALL_SENTINEL,
    ReceiptFilter,
    filter_receipts,
    is_all,
    parse_date_bound,
)

__all__ = [
    "ALL_SENTINEL",
    "ReceiptFilter",
    "filter_receipts",
    "is_all",
    "parse_date_bound",
]
