"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger independent of where bytes end up
2. Use in-memory storage for testing
3. Share one device-local key-value store between receipts and session data
4. Keep business logic decoupled from storage implementation

The receipt collection is stored as ONE blob and replaced wholesale on
every save. There is no append or partial update.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from expense_ledger.models.receipt import Receipt
from expense_ledger.models.audit import AuditEvent


class KeyValueStoreInterface(ABC):
    """
    Abstract device-local key-value storage of string values.

    Implementations raise PersistenceError when the backend can't be
    read or written.
    """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """
        Read the value stored under ``key``.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """
        Store ``value`` under ``key``, replacing any previous value.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove ``key``. Removing an absent key is not an error."""
        pass


class RecordStoreInterface(ABC):
    """
    Abstract interface for durable receipt persistence.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def load(self) -> list[Receipt]:
        """
        Load the persisted receipt collection.

        Returns:
            The stored receipts in stored order. An empty list if nothing
            is stored OR if the stored data can't be read; that failure is
            logged, never raised. Single unreadable records are left out
            and reported through ``rejected_records``.
        """
        pass

    @property
    def rejected_records(self) -> list[str]:
        """
        Problems found by the last ``load``, one entry per record left out
        (or one for a blob that couldn't be read at all).
        """
        return []

    @abstractmethod
    async def save(self, receipts: Sequence[Receipt]) -> None:
        """
        Replace the persisted collection with ``receipts``.

        Raises:
            PersistenceError: If serialization or the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[dict]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events as log dicts (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PersistenceError(StorageError):
    """Stored data could not be read, serialized or written."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass
