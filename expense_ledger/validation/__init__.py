"""Form validation package."""

from expense_ledger.validation.validator import (
    FormValidationError,
    ManualEntryForm,
    ProductLine,
    ReceiptEntryValidator,
    form_from_receipt,
    format_entry_date,
    parse_amount,
    parse_entry_date,
    validate_login,
    validate_report_period,
)

__all__ = [
    "FormValidationError",
    "ManualEntryForm",
    "ProductLine",
    "ReceiptEntryValidator",
    "form_from_receipt",
    "format_entry_date",
    "parse_amount",
    "parse_entry_date",
    "validate_login",
    "validate_report_period",
]
