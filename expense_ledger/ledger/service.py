"""
Ledger Service

DESIGN DECISION: The ledger is the ONLY owner of the receipt collection.
Screens read snapshots from it and ask it to change; they never hold
their own copy.

Every mutation follows the same order:
1. Build the new collection (nothing is touched yet)
2. Persist it to the record store
3. Only if that succeeded: swap it in, recompute categories
4. Notify listeners, write the audit event

A failed save leaves the in-memory state exactly as it was and the
error reaches the caller.

Mutations are serialized with an asyncio.Lock. Each one reads the whole
collection and writes it back, so two in flight at once would lose one
of the updates.
"""

import asyncio
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_ledger.audit import AuditLogger
from expense_ledger.config import LedgerSettings, get_settings
from expense_ledger.models.receipt import (
    CATEGORY_COLORS,
    CategorySummary,
    DashboardSummary,
    LedgerSnapshot,
    Receipt,
    ReceiptCategory,
    ReceiptInput,
    ReceiptPatch,
    ReceiptStatus,
    range_end,
    range_start,
)
from expense_ledger.services.storage import (
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

Listener = Callable[[LedgerSnapshot], None]
DateBound = Union[date, datetime]


def share_percentage(amount: Decimal, total: Decimal) -> int:
    """
    Integer share of ``amount`` in ``total``, rounded half up.

    Returns 0 when total is not positive.
    """
    if total <= 0:
        return 0
    share = (Decimal(amount) * 100 / Decimal(total))
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def receipts_total(receipts: Iterable[Receipt]) -> Decimal:
    return sum((r.amount for r in receipts), Decimal("0"))


def summarize_categories(receipts: Iterable[Receipt]) -> list[CategorySummary]:
    """
    Per-category totals over the fixed category list.

    Categories without receipts are listed with amount 0 and percentage 0.
    Percentages are rounded one by one and may not add up to exactly 100.
    """
    totals: dict[ReceiptCategory, Decimal] = {}
    total = Decimal("0")
    for receipt in receipts:
        totals[receipt.category] = totals.get(receipt.category, Decimal("0")) + receipt.amount
        total += receipt.amount

    return [
        CategorySummary(
            name=category,
            color=CATEGORY_COLORS[category],
            amount=totals.get(category, Decimal("0")),
            percentage=share_percentage(totals.get(category, Decimal("0")), total),
        )
        for category in ReceiptCategory
    ]


class LedgerService:
    """
    In-memory authority over the receipt collection, mirrored to a
    record store.

    Create one per application, call ``initialize()`` once at startup
    and pass the instance to whoever needs it.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            store: Durable copy of the collection
            audit_logger: Where committed changes are audited (optional)
            settings: Ledger behaviour; defaults to the configured settings
            clock: Source of "now" for ids and default dates
        """
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._clock = clock

        self._receipts: list[Receipt] = []
        self._categories: list[CategorySummary] = summarize_categories([])
        self._is_loading = True
        self._initialized = False
        self._last_id = 0

        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Reactive state
    # ------------------------------------------------------------------

    @property
    def receipts(self) -> tuple[Receipt, ...]:
        """Committed receipts, most recently created first."""
        return tuple(self._receipts)

    @property
    def categories(self) -> tuple[CategorySummary, ...]:
        return tuple(self._categories)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            receipts=tuple(self._receipts),
            categories=tuple(self._categories),
            is_loading=self._is_loading,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` to receive a snapshot after every commit.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # Already committed; keep notifying the rest
                logger.exception("ledger_listener_failed", listener=repr(listener))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Load the persisted collection. Runs once; later calls are no-ops.

        A load failure leaves the ledger empty. The loading flag is
        cleared whatever happens.
        """
        if self._initialized:
            return
        self._initialized = True
        async with self._lock:
            await self._load()

    async def refresh(self) -> None:
        """Reload the collection from the record store."""
        async with self._lock:
            self._is_loading = True
            await self._load()

    async def _load(self) -> None:
        loaded: list[Receipt] = []
        try:
            loaded = await self._store.load()
        except StorageError as e:
            logger.error("ledger_load_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_ledger_load_failed(str(e))
        else:
            rejected = self._store.rejected_records
            if rejected:
                logger.warning("ledger_records_rejected", count=len(rejected))
            if self._audit_logger:
                if rejected:
                    await self._audit_logger.log_error(
                        error_type="receipts_rejected",
                        error_message=f"{len(rejected)} stored records could not be read",
                        details={"errors": rejected},
                    )
                await self._audit_logger.log_ledger_loaded(len(loaded))
        finally:
            self._is_loading = False

        self._receipts = list(loaded)
        self._categories = summarize_categories(self._receipts)
        self._last_id = max([self._last_id, *(r.id for r in self._receipts)])
        self._notify()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        # Millisecond timestamps, bumped when two receipts land in the same ms
        candidate = int(self._clock().timestamp() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return self._last_id

    async def _commit(
        self,
        receipts: list[Receipt],
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Persist ``receipts`` and, only on success, make them current."""
        try:
            await self._store.save(receipts)
        except StorageError as e:
            logger.error("ledger_save_failed", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        self._receipts = receipts
        self._categories = summarize_categories(receipts)
        self._notify()

    async def create(
        self,
        data: ReceiptInput,
        correlation_id: Optional[UUID] = None,
    ) -> Receipt:
        """
        Add a new receipt at the head of the collection.

        Returns:
            The stored receipt with its assigned id

        Raises:
            PersistenceError: If the collection could not be saved
        """
        async with self._lock:
            now = self._clock()
            purchase_date = data.date if (data.date and self._settings.honor_supplied_date) else now

            receipt = Receipt(
                id=self._next_id(),
                name=data.name,
                amount=data.amount,
                date=purchase_date,
                category=data.category,
                payment_method=data.payment_method,
                type=data.type,
                status=ReceiptStatus.PROCESSED,
                products=data.products,
                image_uri=data.image_uri,
            )

            await self._commit([receipt, *self._receipts], "create", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_receipt_created(
                receipt_id=receipt.id,
                name=receipt.name,
                amount=str(receipt.amount),
                correlation_id=correlation_id,
            )
        return receipt

    async def update(
        self,
        receipt_id: int,
        patch: ReceiptPatch,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Receipt]:
        """
        Merge ``patch`` onto the receipt with ``receipt_id``.

        Position in the collection doesn't change.

        Returns:
            The updated receipt, or None if no receipt has that id
            (nothing is persisted in that case)

        Raises:
            NotFoundError: Unknown id while ``strict_not_found`` is on
            PersistenceError: If the collection could not be saved
        """
        async with self._lock:
            index = self._index_of(receipt_id)
            if index is None:
                await self._handle_missing("update", receipt_id, correlation_id)
                return None

            updated = self._receipts[index].apply_patch(patch)
            receipts = list(self._receipts)
            receipts[index] = updated

            await self._commit(receipts, "update", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_receipt_updated(
                receipt_id=receipt_id,
                fields=patch.changed_fields,
                correlation_id=correlation_id,
            )
        return updated

    async def delete(
        self,
        receipt_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Remove the receipt with ``receipt_id``.

        Returns:
            True if a receipt was removed, False if the id was unknown

        Raises:
            NotFoundError: Unknown id while ``strict_not_found`` is on
            PersistenceError: If the collection could not be saved
        """
        async with self._lock:
            if self._index_of(receipt_id) is None:
                await self._handle_missing("delete", receipt_id, correlation_id)
                return False

            receipts = [r for r in self._receipts if r.id != receipt_id]
            await self._commit(receipts, "delete", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_receipt_deleted(
                receipt_id=receipt_id,
                correlation_id=correlation_id,
            )
        return True

    async def clear_all(self) -> None:
        """Remove every receipt."""
        async with self._lock:
            removed = len(self._receipts)
            await self._commit([], "clear_all")

        if self._audit_logger:
            await self._audit_logger.log_receipts_cleared(removed)

    def _index_of(self, receipt_id: int) -> Optional[int]:
        for index, receipt in enumerate(self._receipts):
            if receipt.id == receipt_id:
                return index
        return None

    async def _handle_missing(
        self,
        operation: str,
        receipt_id: int,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.info("receipt_not_found", operation=operation, receipt_id=receipt_id)
        if self._audit_logger:
            await self._audit_logger.log_receipt_not_found(
                operation=operation,
                receipt_id=receipt_id,
                correlation_id=correlation_id,
            )
        if self._settings.strict_not_found:
            raise NotFoundError(f"Receipt not found: {receipt_id}")

    # ------------------------------------------------------------------
    # Queries (never suspend, read the committed collection)
    # ------------------------------------------------------------------

    def get(self, receipt_id: int) -> Optional[Receipt]:
        index = self._index_of(receipt_id)
        return self._receipts[index] if index is not None else None

    def total_expenses(self) -> Decimal:
        return receipts_total(self._receipts)

    def average_per_receipt(self) -> Decimal:
        """Mean receipt amount; 0 for an empty ledger."""
        if not self._receipts:
            return Decimal("0")
        return self.total_expenses() / len(self._receipts)

    def by_category(self, category: Union[ReceiptCategory, str]) -> list[Receipt]:
        return [r for r in self._receipts if r.category == category]

    def by_date_range(self, start: DateBound, end: DateBound) -> list[Receipt]:
        """
        Receipts dated within [start, end], both ends included.

        A plain date as ``end`` covers that whole day.
        """
        start_at, end_at = range_start(start), range_end(end)
        return [r for r in self._receipts if start_at <= r.date <= end_at]

    def recent(self, limit: Optional[int] = None) -> list[Receipt]:
        """The most recently created receipts."""
        if limit is None:
            limit = self._settings.recent_receipts_limit
        return self._receipts[:limit]

    def dashboard_summary(self) -> DashboardSummary:
        return DashboardSummary(
            total_expenses=self.total_expenses(),
            average_per_receipt=self.average_per_receipt(),
            receipt_count=len(self._receipts),
            categories=list(self._categories),
            recent_receipts=self.recent(),
        )

    def __len__(self) -> int:
        return len(self._receipts)

    def __iter__(self):
        return iter(tuple(self._receipts))
