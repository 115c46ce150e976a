"""
Core Data Models for Expense Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for local storage and logging
4. Keep the amount/line-item invariant in one place

DESIGN DECISION: Amounts are Decimal, never float.
Category totals must add up to the ledger total exactly; only the
rounded percentages are allowed to drift.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ReceiptCategory(str, Enum):
    """
    Expense categories offered by the entry and filter screens.

    DESIGN DECISION: Declaration order is the display order of the
    dashboard category list.
    """
    FOOD = "Alimentos"
    TRANSPORT = "Transporte"
    OFFICE_EQUIPMENT = "Equipo de oficina"
    SERVICES = "Servicios"
    OTHER = "Otros"


CATEGORY_COLORS: dict[ReceiptCategory, str] = {
    ReceiptCategory.FOOD: "#6B7FED",
    ReceiptCategory.TRANSPORT: "#A855F7",
    ReceiptCategory.OFFICE_EQUIPMENT: "#EC4899",
    ReceiptCategory.SERVICES: "#F59E0B",
    ReceiptCategory.OTHER: "#10B981",
}
DEFAULT_CATEGORY_COLOR = "#6B7280"


def category_color(category: str) -> str:
    """Display colour for a category name, grey for unknown names."""
    try:
        return CATEGORY_COLORS[ReceiptCategory(category)]
    except ValueError:
        return DEFAULT_CATEGORY_COLOR


class PaymentMethod(str, Enum):
    """How the expense was paid."""
    CASH = "Efectivo"
    CREDIT_CARD = "Tarjeta de crédito"
    DEBIT_CARD = "Tarjeta de débito"
    TRANSFER = "Transferencia"
    OTHER = "Otro"


class ReceiptType(str, Enum):
    """
    Origin of a receipt.

    Only MANUAL is produced today; INVOICE is kept so stored data and
    filters can carry it.
    """
    MANUAL = "Manual"
    INVOICE = "Factura"


class ReceiptStatus(str, Enum):
    """Processing status. Set on creation, never transitioned."""
    PROCESSED = "Procesado"


def as_local_naive(value: datetime) -> datetime:
    # Stored blobs written by other clients carry a UTC offset
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def range_start(value: Union[date, datetime]) -> datetime:
    """First moment covered by a range bound; midnight for a plain date."""
    if isinstance(value, datetime):
        return as_local_naive(value)
    return datetime.combine(value, time.min)


def range_end(value: Union[date, datetime]) -> datetime:
    """Last moment covered by a range bound; end of day for a plain date."""
    if isinstance(value, datetime):
        return as_local_naive(value)
    return datetime.combine(value, time.max)


NAME_MAX_LENGTH = 200
_CLEARABLE_FIELDS = frozenset({"payment_method", "image_uri"})


# =============================================================================
# CORE RECEIPT MODEL
# =============================================================================

class Product(BaseModel):
    """A single line item of a receipt."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=NAME_MAX_LENGTH,
        description="Product or service name"
    )
    price: Decimal = Field(
        ...,
        ge=0,
        description="Unit price"
    )
    quantity: Decimal = Field(
        default=Decimal("1"),
        ge=1,
        description="Units bought"
    )

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


def line_items_total(products: Iterable[Product]) -> Decimal:
    """Sum of price x quantity over line items."""
    return sum((product.subtotal for product in products), Decimal("0"))


class Receipt(BaseModel):
    """
    A recorded expense. The only entity that is persisted.

    CRITICAL: Receipts are built by the ledger, never by callers.
    Callers hand in a ReceiptInput (create) or a ReceiptPatch (update).

    Persisted field names follow the original storage layout
    (``paymentMethod``, ``imageUri``); dump with ``by_alias=True``.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    # Identity
    id: int = Field(
        ...,
        ge=0,
        description="Unique receipt ID, increasing with creation order"
    )

    name: str = Field(
        ...,
        min_length=1,
        max_length=NAME_MAX_LENGTH,
        description="Merchant/vendor name"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Receipt total"
    )
    date: datetime = Field(
        ...,
        description="Purchase date (local time)"
    )
    category: ReceiptCategory
    payment_method: Optional[PaymentMethod] = Field(
        default=None,
        alias="paymentMethod",
    )
    type: ReceiptType = ReceiptType.MANUAL
    status: ReceiptStatus = ReceiptStatus.PROCESSED
    products: list[Product] = Field(default_factory=list)

    # Original image reference
    image_uri: Optional[str] = Field(
        default=None,
        alias="imageUri",
        description="Reference to a captured receipt image"
    )

    @field_validator('type', mode='before')
    @classmethod
    def default_type(cls, v):
        """Receipts stored without a type are manual entries."""
        return ReceiptType.MANUAL if v is None else v

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return as_local_naive(v)

    @property
    def line_items_total(self) -> Decimal:
        return line_items_total(self.products)

    def apply_patch(self, patch: "ReceiptPatch") -> "Receipt":
        """
        Shallow-merge the fields set on ``patch`` over this receipt.

        Identity is kept. If the merged receipt has line items, its
        amount is recomputed from them.
        """
        data = self.model_dump()
        for key, value in patch.model_dump(exclude_unset=True).items():
            # Explicit None only clears optional fields
            if value is None and key not in _CLEARABLE_FIELDS:
                continue
            data[key] = value
        merged = Receipt.model_validate(data)
        if merged.products:
            merged = merged.model_copy(update={"amount": merged.line_items_total})
        return merged


class ReceiptInput(BaseModel):
    """
    Data supplied by the caller to create a receipt.

    The ledger assigns ``id`` and ``status``; ``date`` defaults to now.
    When products are given the amount is ALWAYS their total, whatever
    the caller put in ``amount``.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(
        ...,
        min_length=1,
        max_length=NAME_MAX_LENGTH,
    )
    category: ReceiptCategory
    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Only used for receipts without line items"
    )
    date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    type: ReceiptType = ReceiptType.MANUAL
    products: list[Product] = Field(default_factory=list)
    image_uri: Optional[str] = None

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_local_naive(v) if v is not None else None

    @model_validator(mode='after')
    def derive_amount(self) -> 'ReceiptInput':
        """Amount comes from line items when there are any."""
        if self.products:
            self.amount = line_items_total(self.products)
        elif self.amount is None:
            raise ValueError("Amount is required for a receipt without products")
        return self


class ReceiptPatch(BaseModel):
    """
    Partial update of a receipt.

    Only the fields listed here can change; unknown keys are rejected.
    Fields left unset are not touched.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    date: Optional[datetime] = None
    category: Optional[ReceiptCategory] = None
    payment_method: Optional[PaymentMethod] = None
    type: Optional[ReceiptType] = None
    status: Optional[ReceiptStatus] = None
    products: Optional[list[Product]] = None
    image_uri: Optional[str] = None

    @field_validator('date')
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_local_naive(v) if v is not None else None

    @property
    def changed_fields(self) -> list[str]:
        return sorted(self.model_fields_set)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class CategorySummary(BaseModel):
    """Aggregate of one category over the whole ledger. Never persisted."""
    model_config = ConfigDict(frozen=True)

    name: ReceiptCategory
    color: str
    amount: Decimal = Decimal("0")
    percentage: int = Field(default=0, ge=0, le=100)


class LedgerSnapshot(BaseModel):
    """What listeners and readers see after each commit."""
    model_config = ConfigDict(frozen=True)

    receipts: tuple[Receipt, ...] = ()
    categories: tuple[CategorySummary, ...] = ()
    is_loading: bool = False


class DashboardSummary(BaseModel):
    """Figures shown on the dashboard."""

    total_expenses: Decimal
    average_per_receipt: Decimal
    receipt_count: int = Field(ge=0)
    categories: list[CategorySummary]
    recent_receipts: list[Receipt]


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'invalid_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Result of validating one form submission."""

    form: str = Field(
        ...,
        description="Which form was validated (e.g. 'manual_entry', 'login')"
    )
    validated_at: datetime = Field(
        default_factory=utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self.issues if i.severity == "error"), None)
