"""Report generation package."""

from expense_ledger.reports.aggregator import (
    build_report,
    generate_report,
    toggle_category,
)

__all__ = ["build_report", "generate_report", "toggle_category"]
