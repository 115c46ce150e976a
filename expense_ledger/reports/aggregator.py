"""
Report Aggregator

DESIGN DECISION: Reports are computed, never stored.
The aggregator only sees the receipts it is given; the caller filters
first (usually with the same date range it passes in here) so the
figures and the period label always describe the same set.

Unlike the dashboard category list (fixed order, zero rows included),
a report lists only the categories present in the set, largest first.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

import structlog

from expense_ledger.ledger.service import receipts_total, share_percentage
from expense_ledger.models.receipt import Receipt, category_color
from expense_ledger.models.report import CategoryExpense, Report
from expense_ledger.queries.filters import (
    ALL_SENTINEL,
    ReceiptFilter,
    parse_date_bound,
)
from expense_ledger.validation.validator import (
    FormValidationError,
    validate_report_period,
)


logger = structlog.get_logger(__name__)


def _calendar_date(value: Any) -> Optional[date]:
    bound = parse_date_bound(value)
    return bound.date() if isinstance(bound, datetime) else bound


def build_report(
    receipts: Iterable[Receipt],
    start_date: Any = None,
    end_date: Any = None,
) -> Report:
    """
    Summarize an already-filtered set of receipts.

    Args:
        receipts: The receipts to summarize
        start_date: Start of the period the set was filtered on
        end_date: End of that period

    Returns:
        Report with totals, average and the per-category breakdown
    """
    receipts = list(receipts)
    total_spent = receipts_total(receipts)
    entries = len(receipts)

    by_category: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for receipt in receipts:
        by_category[receipt.category.value] += receipt.amount

    expenses = [
        CategoryExpense(
            category=category,
            color=category_color(category),
            amount=amount,
            percentage=share_percentage(amount, total_spent),
        )
        for category, amount in by_category.items()
    ]
    expenses.sort(key=lambda expense: expense.amount, reverse=True)

    return Report(
        total_spent=total_spent,
        entries=entries,
        deposits=Decimal("0"),
        average=total_spent / entries if entries else Decimal("0"),
        expenses_by_category=expenses,
        start_date=_calendar_date(start_date),
        end_date=_calendar_date(end_date),
    )


def generate_report(
    receipts: Iterable[Receipt],
    start_date: Any,
    end_date: Any,
    categories: Optional[Sequence[str]] = None,
) -> Report:
    """
    Filter ``receipts`` the way the report screen does and summarize them.

    Both dates are required. ``categories`` is the multi-select; None or
    a selection containing "Todas" includes every category.

    Raises:
        FormValidationError: If a date is missing or the range is reversed
        ValueError: If a date string can't be read
    """
    start = parse_date_bound(start_date)
    end = parse_date_bound(end_date)

    result = validate_report_period(start, end)
    if not result.is_valid:
        raise FormValidationError(result)

    criteria = ReceiptFilter(
        date_start=start,
        date_end=end,
        categories=list(categories) if categories is not None else None,
    )
    report = build_report(criteria.apply(receipts), start, end)

    logger.info(
        "report_generated",
        entries=report.entries,
        total_spent=str(report.total_spent),
        period=report.period_label,
    )
    return report


def toggle_category(selected: Sequence[str], category: str) -> list[str]:
    """
    Next state of the report screen's category multi-select.

    Picking "Todas" resets the selection. Picking a category while
    "Todas" is selected replaces it. Deselecting the last category falls
    back to "Todas".
    """
    if category == ALL_SENTINEL:
        return [ALL_SENTINEL]

    if ALL_SENTINEL in selected:
        updated = [category]
    elif category in selected:
        updated = [c for c in selected if c != category]
    else:
        updated = [*selected, category]

    return updated or [ALL_SENTINEL]
