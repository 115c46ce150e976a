"""Services package."""

from expense_ledger.services.session import SessionStore, username_from_email
from expense_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    KeyValueRecordStore,
    KeyValueStoreInterface,
    NotFoundError,
    PersistenceError,
    RecordStoreInterface,
    StorageError,
)

__all__ = [
    # Session
    "SessionStore",
    "username_from_email",
    # Storage services
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "JsonLinesAuditStorage",
    "KeyValueRecordStore",
    "KeyValueStoreInterface",
    "NotFoundError",
    "PersistenceError",
    "RecordStoreInterface",
    "StorageError",
]
