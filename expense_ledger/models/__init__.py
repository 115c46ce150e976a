"""
Data Models Package

This package contains all Pydantic models used in the Expense Ledger.
All data flowing through the system must conform to these schemas.
"""

from expense_ledger.models.receipt import (
    CATEGORY_COLORS,
    CategorySummary,
    DashboardSummary,
    LedgerSnapshot,
    PaymentMethod,
    Product,
    Receipt,
    ReceiptCategory,
    ReceiptInput,
    ReceiptPatch,
    ReceiptStatus,
    ReceiptType,
    ValidationIssue,
    ValidationResult,
    category_color,
    line_items_total,
)
from expense_ledger.models.report import CategoryExpense, Report
from expense_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Receipt models
    "CATEGORY_COLORS",
    "CategorySummary",
    "DashboardSummary",
    "LedgerSnapshot",
    "PaymentMethod",
    "Product",
    "Receipt",
    "ReceiptCategory",
    "ReceiptInput",
    "ReceiptPatch",
    "ReceiptStatus",
    "ReceiptType",
    "ValidationIssue",
    "ValidationResult",
    "category_color",
    "line_items_total",
    # Report models
    "CategoryExpense",
    "Report",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
