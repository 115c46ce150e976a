"""Shared fixtures: in-memory stores, a fixed clock and an async runner."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from expense_ledger.audit import AuditLogger
from expense_ledger.config import LedgerSettings
from expense_ledger.ledger import LedgerService
from expense_ledger.models.receipt import Product, Receipt, ReceiptCategory
from expense_ledger.services.storage import (
    InMemoryAuditStorage,
    PersistenceError,
    RecordStoreInterface,
)


def run_async(coro):
    """Run a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


class RecordingStore(RecordStoreInterface):
    """Record store that counts saves and can be told to fail."""

    def __init__(self, initial: Optional[list[Receipt]] = None):
        self.saved: list[Receipt] = list(initial or [])
        self.save_calls = 0
        self.load_calls = 0
        self.fail_saves = False

    async def load(self) -> list[Receipt]:
        self.load_calls += 1
        return list(self.saved)

    async def save(self, receipts) -> None:
        self.save_calls += 1
        if self.fail_saves:
            raise PersistenceError("disk full")
        self.saved = list(receipts)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = datetime(2024, 3, 15, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_receipt(
    receipt_id: int,
    name: str,
    amount: str,
    category: ReceiptCategory = ReceiptCategory.FOOD,
    date: datetime = datetime(2024, 3, 1, 10, 0),
    **kwargs,
) -> Receipt:
    return Receipt(
        id=receipt_id,
        name=name,
        amount=Decimal(amount),
        date=date,
        category=category,
        **kwargs,
    )


def make_product(name: str, price: str, quantity: str = "1") -> Product:
    return Product(name=name, price=Decimal(price), quantity=Decimal(quantity))


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        strict_not_found=False,
        honor_supplied_date=True,
        recent_receipts_limit=3,
    )


@pytest.fixture
def ledger(store, audit_storage, ledger_settings, clock):
    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
        clock=clock,
    )
