"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a local JSON file as the backend, plus in-memory
stores for tests.
"""

from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    NotFoundError,
    PersistenceError,
    RecordStoreInterface,
    StorageError,
)
from expense_ledger.services.storage.local import (
    RECEIPTS_SCHEMA_VERSION,
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    DecodedReceipts,
    KeyValueRecordStore,
    deserialize_receipts,
    serialize_receipts,
)
from expense_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    "RecordStoreInterface",
    # Exceptions
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    # Local file implementation
    "RECEIPTS_SCHEMA_VERSION",
    "JsonFileKeyValueStore",
    "JsonLinesAuditStorage",
    "DecodedReceipts",
    "KeyValueRecordStore",
    "deserialize_receipts",
    "serialize_receipts",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
]
