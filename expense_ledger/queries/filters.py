"""
Receipt Filter Engine

DESIGN DECISION: Filtering is a PURE function of (receipts, criteria).
It never talks to storage and never reorders: the result keeps the
relative order of the input, so the newest-first order of the ledger
survives every filter.

All criteria are optional and combined with AND. A criterion that is
absent, empty or set to the "all" sentinel does not filter anything.
The listing screen and the report screen share this engine.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from expense_ledger.models.receipt import (
    Receipt,
    ReceiptType,
    as_local_naive,
    range_end,
    range_start,
)
from expense_ledger.models.report import describe_period
from expense_ledger.validation.validator import parse_amount, parse_entry_date


ALL_SENTINEL = "Todas"
_ALL_VALUES = frozenset({"todas", "all"})


def is_all(value: Optional[str]) -> bool:
    """True for values that mean "don't filter on this"."""
    return not value or value.strip().lower() in _ALL_VALUES


DateBound = Union[datetime, date]


def parse_date_bound(value: Any) -> Optional[DateBound]:
    """
    Coerce a date-range bound.

    Accepts date, datetime, ISO strings and dd/mm/yyyy strings.
    Plain dates stay dates and cover their whole day. Datetimes keep
    their time of day and are converted to local naive time.
    Empty input means no bound.

    Raises:
        ValueError: If a non-empty string can't be read as a date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_local_naive(value)
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if "/" in text:
        return parse_entry_date(text).date()
    try:
        return date.fromisoformat(text)
    except ValueError:
        return as_local_naive(datetime.fromisoformat(text))


class ReceiptFilter(BaseModel):
    """
    Criteria for filtering receipts.

    Bounds are inclusive. ``date_end`` covers its whole day.
    Unreadable amount bounds (e.g. an empty text box) are dropped, never
    read as zero.
    """
    model_config = ConfigDict(extra="forbid")

    search_text: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the receipt name"
    )
    category: Optional[str] = None
    receipt_type: Optional[str] = None
    date_start: Optional[DateBound] = None
    date_end: Optional[DateBound] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    categories: Optional[list[str]] = Field(
        default=None,
        description="Multi-select used by the report screen"
    )

    @field_validator('category', 'receipt_type', mode='before')
    @classmethod
    def enum_to_value(cls, v):
        return v.value if isinstance(v, Enum) else v

    @field_validator('categories', mode='before')
    @classmethod
    def enums_to_values(cls, v):
        if v is None:
            return None
        return [item.value if isinstance(item, Enum) else item for item in v]

    @field_validator('date_start', 'date_end', mode='before')
    @classmethod
    def coerce_date(cls, v):
        return parse_date_bound(v)

    @field_validator('amount_min', 'amount_max', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return parse_amount(v)

    def matches(self, receipt: Receipt) -> bool:
        """Check one receipt against every active criterion."""
        if self.search_text and self.search_text.lower() not in receipt.name.lower():
            return False

        if not is_all(self.category) and receipt.category.value != self.category:
            return False

        if not is_all(self.receipt_type):
            receipt_type = receipt.type or ReceiptType.MANUAL
            if receipt_type.value != self.receipt_type:
                return False

        if self.date_start and receipt.date < range_start(self.date_start):
            return False
        if self.date_end and receipt.date > range_end(self.date_end):
            return False

        if self.amount_min is not None and receipt.amount < self.amount_min:
            return False
        if self.amount_max is not None and receipt.amount > self.amount_max:
            return False

        if self.categories is not None and not any(is_all(c) for c in self.categories):
            if receipt.category.value not in self.categories:
                return False

        return True

    def apply(self, receipts: Iterable[Receipt]) -> list[Receipt]:
        return [receipt for receipt in receipts if self.matches(receipt)]

    def describe(self) -> str:
        """Readable summary of the active criteria."""
        desc_parts = ["Listing receipts"]
        if self.search_text:
            desc_parts.append(f"name contains '{self.search_text}'")
        if not is_all(self.category):
            desc_parts.append(f"category: {self.category}")
        if not is_all(self.receipt_type):
            desc_parts.append(f"type: {self.receipt_type}")
        if self.categories is not None and not any(is_all(c) for c in self.categories):
            desc_parts.append(f"categories: {', '.join(self.categories)}")
        if self.date_start or self.date_end:
            desc_parts.append(describe_period(self.date_start, self.date_end))
        if self.amount_min is not None and self.amount_max is not None:
            desc_parts.append(f"amount {self.amount_min} - {self.amount_max}")
        elif self.amount_min is not None:
            desc_parts.append(f"amount >= {self.amount_min}")
        elif self.amount_max is not None:
            desc_parts.append(f"amount <= {self.amount_max}")
        return " | ".join(desc_parts)


def filter_receipts(
    receipts: Iterable[Receipt],
    criteria: Union[ReceiptFilter, dict, None] = None,
) -> list[Receipt]:
    """
    Receipts matching ``criteria``, in their original order.

    ``criteria`` may be a ReceiptFilter or a plain dict of its fields.
    No criteria returns everything.
    """
    if criteria is None:
        return list(receipts)
    if not isinstance(criteria, ReceiptFilter):
        criteria = ReceiptFilter.model_validate(criteria)
    return criteria.apply(receipts)
