"""
In-Memory Storage

Process-local implementations of the storage interfaces, used in tests
and for throwaway sessions.
"""

from typing import Optional

from expense_ledger.models.audit import AuditEvent
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
)


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Dict-backed key-value store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit store."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[dict]:
        return [event.to_log_dict() for event in reversed(self.events[-limit:])]
