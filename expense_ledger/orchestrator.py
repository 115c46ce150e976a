"""
Main Orchestrator for Expense Ledger

This module ties together all the components and defines the
end-to-end flows the screens call:
1. Manual entry (form → validate → create or update → save)
2. Receipt list (criteria → filter the committed collection)
3. Report (date range + categories → validate → filter → aggregate)
4. Login (email/password → validate → remember the username)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No form reaches the ledger before it validates
- Screens only ever hold the ledger handle, never a copy of its data
- Every rejected form and every generated report is audited

This is the "glue" the presentation layer talks to.
"""

import logging
from decimal import Decimal
from typing import Any, NamedTuple, Optional, Sequence, Union
from uuid import UUID

from expense_ledger.audit import AuditLogger, create_correlation_id
from expense_ledger.config import Settings, get_settings
from expense_ledger.ledger import LedgerService
from expense_ledger.models.receipt import (
    Receipt,
    ReceiptPatch,
    ValidationResult,
)
from expense_ledger.models.report import Report
from expense_ledger.queries import ReceiptFilter, filter_receipts
from expense_ledger.reports import generate_report
from expense_ledger.services.session import SessionStore
from expense_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    KeyValueRecordStore,
)
from expense_ledger.validation import (
    FormValidationError,
    ManualEntryForm,
    ReceiptEntryValidator,
    form_from_receipt,
    validate_login,
)


async def _audit_rejected_form(
    audit_logger: Optional[AuditLogger],
    result: ValidationResult,
    correlation_id: Optional[UUID],
) -> None:
    if audit_logger:
        issues = [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in result.issues
        ]
        await audit_logger.log_validation_failed(
            form=result.form,
            issues=issues,
            correlation_id=correlation_id,
        )


class ManualEntryFlow:
    """
    Orchestrates the manual entry screen, for new and edited receipts.

    Flow:
    1. Validate → every field of the form
    2. Convert → ReceiptInput, amount computed from the products
    3. Save → ledger create (new) or update (edit)

    A form that fails validation never reaches the ledger.
    """

    def __init__(
        self,
        ledger: LedgerService,
        validator: Optional[ReceiptEntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._validator = validator or ReceiptEntryValidator()
        self._audit_logger = audit_logger

    def validate(self, form: ManualEntryForm) -> tuple[ValidationResult, str]:
        """
        Check the form without saving.

        Returns:
            (validation_result, user_message)
        """
        result = self._validator.validate(form)
        return result, self._validator.get_user_friendly_summary(result)

    def total(self, form: ManualEntryForm) -> Decimal:
        return self._validator.compute_total(form)

    def edit_form(self, receipt_id: int) -> Optional[ManualEntryForm]:
        """The form prefilled with an existing receipt, or None if unknown."""
        receipt = self._ledger.get(receipt_id)
        return form_from_receipt(receipt) if receipt else None

    async def save(
        self,
        form: ManualEntryForm,
        receipt_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Receipt]:
        """
        Validate the form and store it.

        Args:
            form: The screen's input
            receipt_id: Receipt being edited; None creates a new one

        Returns:
            The stored receipt. None when editing an id the ledger
            doesn't know.

        Raises:
            FormValidationError: If the form is rejected
            PersistenceError: If the ledger could not be saved
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            data = self._validator.to_receipt_input(form)
        except FormValidationError as e:
            await _audit_rejected_form(self._audit_logger, e.result, correlation_id)
            raise

        if receipt_id is None:
            return await self._ledger.create(data, correlation_id=correlation_id)

        patch = ReceiptPatch(
            name=data.name,
            date=data.date,
            category=data.category,
            payment_method=data.payment_method,
            products=data.products,
        )
        return await self._ledger.update(receipt_id, patch, correlation_id=correlation_id)


class ReceiptListFlow:
    """Listing, detail and delete actions of the receipts screens."""

    def __init__(self, ledger: LedgerService):
        self._ledger = ledger

    def list(
        self,
        criteria: Union[ReceiptFilter, dict, None] = None,
    ) -> list[Receipt]:
        """Committed receipts matching ``criteria``, newest first."""
        return filter_receipts(self._ledger.receipts, criteria)

    def get(self, receipt_id: int) -> Optional[Receipt]:
        return self._ledger.get(receipt_id)

    async def delete(
        self,
        receipt_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        return await self._ledger.delete(receipt_id, correlation_id=correlation_id)


class ReportFlow:
    """
    Orchestrates the report screen.

    Both dates are required; the categories multi-select defaults to all.
    """

    def __init__(
        self,
        ledger: LedgerService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._audit_logger = audit_logger

    async def generate(
        self,
        start_date: Any,
        end_date: Any,
        categories: Optional[Sequence[str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Report:
        """
        Build the report over the committed receipts.

        Raises:
            FormValidationError: If a date is missing or the range is reversed
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            report = generate_report(
                self._ledger.receipts, start_date, end_date, categories
            )
        except FormValidationError as e:
            await _audit_rejected_form(self._audit_logger, e.result, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_report_generated(
                entries=report.entries,
                total_spent=str(report.total_spent),
                period=report.period_label,
                correlation_id=correlation_id,
            )
        return report


class LoginFlow:
    """
    Orchestrates the login screen.

    There is no account backend: a well-formed email and a non-empty
    password sign the user in. Only the username is kept.
    """

    def __init__(
        self,
        session: SessionStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._session = session
        self._audit_logger = audit_logger

    async def login(self, email: str, password: str) -> str:
        """
        Sign in.

        Returns:
            The username shown on the dashboard

        Raises:
            FormValidationError: If the email or password is rejected
        """
        result = validate_login(email, password)
        if not result.is_valid:
            await _audit_rejected_form(self._audit_logger, result, None)
            raise FormValidationError(result)

        username = await self._session.login(email)
        if self._audit_logger:
            await self._audit_logger.log_user_logged_in(username)
        return username

    async def logout(self) -> None:
        await self._session.logout()
        if self._audit_logger:
            await self._audit_logger.log_user_logged_out()

    async def is_logged_in(self) -> bool:
        return await self._session.is_logged_in()

    async def display_name(self) -> str:
        return await self._session.display_name()


class AppComponents(NamedTuple):
    """Everything the presentation layer needs, built once at startup."""

    ledger: LedgerService
    session: SessionStore
    audit_logger: AuditLogger
    manual_entry: ManualEntryFlow
    receipts: ReceiptListFlow
    reports: ReportFlow
    login: LoginFlow


def create_app_components(
    settings: Optional[Settings] = None,
    use_file_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration; defaults to get_settings()
        use_file_storage: Whether to keep data in the local data directory.
                    Set to False for testing without touching disk.

    Returns:
        AppComponents. Call ``await components.ledger.initialize()``
        before first use.
    """
    settings = settings or get_settings()
    storage_settings = settings.storage

    if settings.app.debug_mode:
        logging.basicConfig(level=logging.DEBUG)

    if use_file_storage:
        kv = JsonFileKeyValueStore(storage_settings.store_path)
        audit_storage = (
            JsonLinesAuditStorage(storage_settings.audit_path)
            if storage_settings.audit_enabled
            else None
        )
    else:
        kv = InMemoryKeyValueStore()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    ledger = LedgerService(
        KeyValueRecordStore(kv, key=storage_settings.receipts_key),
        audit_logger=audit_logger,
        settings=settings.ledger,
    )
    session = SessionStore(kv, key=storage_settings.session_key)

    return AppComponents(
        ledger=ledger,
        session=session,
        audit_logger=audit_logger,
        manual_entry=ManualEntryFlow(ledger, audit_logger=audit_logger),
        receipts=ReceiptListFlow(ledger),
        reports=ReportFlow(ledger, audit_logger=audit_logger),
        login=LoginFlow(session, audit_logger=audit_logger),
    )
