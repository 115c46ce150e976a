"""
Report Models

A Report is a derived, read-only summary of a filtered set of receipts
over a date range. Reports are rebuilt on demand and never persisted.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from expense_ledger.models.receipt import utcnow


class CategoryExpense(BaseModel):
    """Spending of one category inside a report."""

    category: str
    color: str = Field(description="Chart colour of the category")
    amount: Decimal = Field(ge=0)
    percentage: int = Field(ge=0, le=100)


class Report(BaseModel):
    """
    Summary statistics for a period.

    ``expenses_by_category`` only lists categories that appear in the
    filtered set, largest amount first.
    """

    total_spent: Decimal = Decimal("0")
    entries: int = Field(default=0, ge=0)
    deposits: Decimal = Field(
        default=Decimal("0"),
        description="Always zero: no receipt type marks a deposit"
    )
    average: Decimal = Decimal("0")
    expenses_by_category: list[CategoryExpense] = Field(default_factory=list)

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    generated_at: datetime = Field(default_factory=utcnow)

    @property
    def period_label(self) -> str:
        """Human-readable period, e.g. '01 Mar - 31 Mar 2024'."""
        return describe_period(self.start_date, self.end_date)


def describe_period(
    start: Optional[date],
    end: Optional[date],
) -> str:
    """Format a date range for descriptions."""
    if start and end:
        if start == end:
            return f"on {start.strftime('%d %b %Y')}"
        if start.year == end.year:
            return f"{start.strftime('%d %b')} - {end.strftime('%d %b %Y')}"
        return f"{start.strftime('%d %b %Y')} - {end.strftime('%d %b %Y')}"
    elif start:
        return f"from {start.strftime('%d %b %Y')}"
    elif end:
        return f"until {end.strftime('%d %b %Y')}"
    return ""
