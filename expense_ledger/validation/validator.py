"""
Form Validation

DESIGN DECISION: Input from the screens is validated HERE, before any
ledger call. The ledger only ever receives well-formed ReceiptInput /
ReceiptPatch objects; a rejected form never reaches storage.

Forms covered:
- manual receipt entry (new and edit)
- login
- report period

Validation collects every issue it finds rather than stopping at the
first, so a screen can highlight all bad fields at once. The messages
are the ones shown to the user.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the form is rejected.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from expense_ledger.models.receipt import (
    NAME_MAX_LENGTH,
    PaymentMethod,
    Product,
    Receipt,
    ReceiptCategory,
    ReceiptInput,
    ReceiptType,
    ValidationIssue,
    ValidationResult,
    line_items_total,
    range_end,
    range_start,
)


ENTRY_DATE_FORMAT = "%d/%m/%Y"
_ENTRY_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

NumberInput = Union[str, int, float, Decimal, None]


class FormValidationError(Exception):
    """A form was rejected. ``result`` holds every issue found."""

    def __init__(self, result: ValidationResult):
        self.result = result
        first = result.first_error
        super().__init__(first.message if first else f"Invalid {result.form} form")


# =============================================================================
# PARSING HELPERS
# =============================================================================

def parse_amount(value: NumberInput) -> Optional[Decimal]:
    """
    Parse a number typed by the user.

    Returns None for empty or unparsable input; callers decide what
    "no number" means for them.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_entry_date(text: str) -> datetime:
    """
    Parse a ``dd/mm/yyyy`` date into local midnight of that day.

    Raises:
        ValueError: If the text isn't in that format or isn't a real date
    """
    match = _ENTRY_DATE_PATTERN.match(text.strip())
    if not match:
        raise ValueError(f"Expected dd/mm/yyyy, got: {text!r}")
    day, month, year = (int(part) for part in match.groups())
    return datetime(year, month, day)


def format_entry_date(value: Union[date, datetime]) -> str:
    """Inverse of parse_entry_date, used to prefill the edit form."""
    return value.strftime(ENTRY_DATE_FORMAT)


# =============================================================================
# FORM MODELS (raw screen input)
# =============================================================================

class ProductLine(BaseModel):
    """One line of the product table, as typed."""

    name: str = ""
    price: NumberInput = 0
    quantity: NumberInput = 1


class ManualEntryForm(BaseModel):
    """The manual entry screen's fields, as typed."""

    merchant: str = ""
    date: str = Field(
        default="",
        description="Purchase date as dd/mm/yyyy"
    )
    category: Optional[str] = None
    payment_method: Optional[str] = None
    products: list[ProductLine] = Field(
        default_factory=lambda: [ProductLine()]
    )


def form_from_receipt(receipt: Receipt) -> ManualEntryForm:
    """Prefill the entry form to edit an existing receipt."""
    return ManualEntryForm(
        merchant=receipt.name,
        date=format_entry_date(receipt.date),
        category=receipt.category.value,
        payment_method=receipt.payment_method.value if receipt.payment_method else None,
        products=[
            ProductLine(name=p.name, price=p.price, quantity=p.quantity)
            for p in receipt.products
        ] or [ProductLine()],
    )


# =============================================================================
# MANUAL ENTRY
# =============================================================================

class ReceiptEntryValidator:
    """
    Validates the manual entry form and turns it into a ReceiptInput.

    Lines without a product name are dropped before anything else
    (they are the empty rows the screen always offers). The total is
    computed from the remaining lines only.
    """

    FORM = "manual_entry"

    def _parse_products(
        self,
        lines: list[ProductLine],
    ) -> tuple[list[Product], list[ValidationIssue]]:
        products = []
        issues = []

        for line in lines:
            name = line.name.strip()
            if not name:
                continue
            if len(name) > NAME_MAX_LENGTH:
                issues.append(ValidationIssue(
                    field="products",
                    issue_type="too_long",
                    message=f"El nombre del producto no puede exceder {NAME_MAX_LENGTH} caracteres",
                ))
                continue

            price = parse_amount(line.price) or Decimal("0")
            quantity = parse_amount(line.quantity) or Decimal("1")

            if price < 0:
                issues.append(ValidationIssue(
                    field="products",
                    issue_type="invalid_value",
                    message=f"El precio de '{name}' no puede ser negativo",
                ))
                continue
            if quantity < 1:
                issues.append(ValidationIssue(
                    field="products",
                    issue_type="invalid_value",
                    message=f"La cantidad de '{name}' debe ser al menos 1",
                ))
                continue

            products.append(Product(name=name, price=price, quantity=quantity))

        return products, issues

    def compute_total(self, form: ManualEntryForm) -> Decimal:
        """Running total shown under the product table."""
        products, _ = self._parse_products(form.products)
        return line_items_total(products)

    def validate(self, form: ManualEntryForm) -> ValidationResult:
        """
        Check every field of the form.

        Returns:
            ValidationResult with all issues found
        """
        issues = []

        if not form.merchant.strip():
            issues.append(ValidationIssue(
                field="merchant",
                issue_type="missing",
                message="Por favor ingrese el nombre del comerciante/empresa",
            ))
        elif len(form.merchant.strip()) > NAME_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="merchant",
                issue_type="too_long",
                message=f"El nombre del comerciante no puede exceder {NAME_MAX_LENGTH} caracteres",
            ))

        if not form.date.strip():
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Por favor ingrese la fecha",
            ))
        else:
            try:
                parse_entry_date(form.date)
            except ValueError:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="invalid_format",
                    message="La fecha debe tener el formato dd/mm/aaaa",
                ))

        if not form.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Por favor seleccione una categoría",
            ))
        elif form.category not in {c.value for c in ReceiptCategory}:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"Categoría no válida: {form.category}",
            ))

        if form.payment_method and form.payment_method not in {m.value for m in PaymentMethod}:
            issues.append(ValidationIssue(
                field="payment_method",
                issue_type="invalid_value",
                message=f"Método de pago no válido: {form.payment_method}",
            ))

        products, product_issues = self._parse_products(form.products)
        issues.extend(product_issues)

        if not products and not product_issues:
            issues.append(ValidationIssue(
                field="products",
                issue_type="missing",
                message="Por favor ingrese al menos un producto",
            ))
        elif products and line_items_total(products) <= 0:
            issues.append(ValidationIssue(
                field="total",
                issue_type="invalid_value",
                message="El monto total debe ser mayor a 0",
            ))

        return ValidationResult(form=self.FORM, issues=issues)

    def to_receipt_input(self, form: ManualEntryForm) -> ReceiptInput:
        """
        Validate and convert the form.

        Raises:
            FormValidationError: If the form has any error
        """
        result = self.validate(form)
        if not result.is_valid:
            raise FormValidationError(result)

        products, _ = self._parse_products(form.products)
        try:
            return ReceiptInput(
                name=form.merchant,
                category=ReceiptCategory(form.category),
                date=parse_entry_date(form.date),
                payment_method=PaymentMethod(form.payment_method) if form.payment_method else None,
                type=ReceiptType.MANUAL,
                products=products,
            )
        except ValidationError as e:
            # Model constraints the checks above don't cover still reject the form
            issues = [
                ValidationIssue(
                    field=str(error["loc"][0]) if error["loc"] else "form",
                    issue_type="invalid_value",
                    message=error["msg"],
                )
                for error in e.errors()
            ]
            raise FormValidationError(ValidationResult(form=self.FORM, issues=issues))

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Text shown to the user when a form is rejected."""
        if result.is_valid:
            return "✅ Todo listo para guardar."

        lines = ["❌ Revise los siguientes datos:"]
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(f"   • {issue.message}")
        return "\n".join(lines)


# =============================================================================
# LOGIN AND REPORT PERIOD
# =============================================================================

def validate_login(email: str, password: str) -> ValidationResult:
    """Presence and format checks of the login screen."""
    issues = []

    if not email.strip():
        issues.append(ValidationIssue(
            field="email",
            issue_type="missing",
            message="Por favor ingrese su correo electrónico",
        ))

    if not password:
        issues.append(ValidationIssue(
            field="password",
            issue_type="missing",
            message="Por favor ingrese su contraseña",
        ))

    if email.strip() and not _EMAIL_PATTERN.match(email.strip()):
        issues.append(ValidationIssue(
            field="email",
            issue_type="invalid_format",
            message="Por favor ingrese un correo electrónico válido",
        ))

    return ValidationResult(form="login", issues=issues)


def validate_report_period(
    start: Optional[Union[date, datetime]],
    end: Optional[Union[date, datetime]],
) -> ValidationResult:
    """A report needs both ends of its date range."""
    issues = []
    if not start or not end:
        issues.append(ValidationIssue(
            field="date_range",
            issue_type="missing",
            message="Por favor seleccione un rango de fechas",
        ))
    elif range_start(start) > range_end(end):
        issues.append(ValidationIssue(
            field="date_range",
            issue_type="inconsistent",
            message="La fecha inicial no puede ser posterior a la final",
        ))
    return ValidationResult(form="report", issues=issues)
