"""
Local Device Storage Implementation

DESIGN DECISION: All state lives on the device in a single JSON file
of key -> string values, the same shape as the app's original
key-value storage. Receipts and the session username share the file
under different keys.

TRADEOFFS:
- The whole receipt collection is rewritten on every mutation
  (fine for a personal ledger, a few thousand receipts at most)
- Writes go through a temp file + os.replace so a crash never leaves
  a half-written file behind
- Blocking file I/O runs in a worker thread so the event loop stays free
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import NamedTuple, Optional, Sequence

import structlog
from pydantic import ValidationError

from expense_ledger.models.audit import AuditEvent
from expense_ledger.models.receipt import Receipt
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    PersistenceError,
    RecordStoreInterface,
)


logger = structlog.get_logger(__name__)

# Version of the receipts blob written by this code.
# Version 0 is the original bare JSON list without an envelope.
RECEIPTS_SCHEMA_VERSION = 1


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """
    Key-value store backed by one JSON object on disk.

    The file is read on every access; there is no in-process cache, so
    another process writing the file is picked up on the next read.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read {self._path}: {e}")
        if not isinstance(data, dict):
            raise PersistenceError(f"Unexpected storage layout in {self._path}")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {self._path}: {e}")

    async def get_item(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = value
            await asyncio.to_thread(self._write_all, data)

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if key in data:
                del data[key]
                await asyncio.to_thread(self._write_all, data)


def serialize_receipts(receipts: Sequence[Receipt]) -> str:
    """Encode the collection as a versioned JSON blob."""
    payload = {
        "version": RECEIPTS_SCHEMA_VERSION,
        "receipts": [
            receipt.model_dump(mode="json", by_alias=True, exclude_none=True)
            for receipt in receipts
        ],
    }
    return json.dumps(payload, ensure_ascii=False)


class DecodedReceipts(NamedTuple):
    """Result of decoding a receipts blob."""

    receipts: list[Receipt]
    rejected: list[str]


def _describe_rejection(index: int, error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"record {index} {location}: {first['msg']}"


def deserialize_receipts(blob: str) -> DecodedReceipts:
    """
    Decode a receipts blob.

    Each record is validated on its own. Records that don't match the
    schema are left out and described in ``rejected``; the rest are kept.

    Raises:
        ValueError: If the blob is not JSON or has an unknown layout/version
    """
    payload = json.loads(blob)

    if isinstance(payload, list):
        # Version 0: bare list written before the envelope existed
        records = payload
    elif isinstance(payload, dict):
        version = payload.get("version")
        if not isinstance(version, int) or version > RECEIPTS_SCHEMA_VERSION:
            raise ValueError(f"Unsupported receipts schema version: {version!r}")
        records = payload.get("receipts", [])
        if not isinstance(records, list):
            raise ValueError("Receipts payload is not a list")
    else:
        raise ValueError("Unexpected receipts payload")

    receipts = []
    rejected = []
    for index, record in enumerate(records):
        try:
            receipts.append(Receipt.model_validate(record))
        except ValidationError as e:
            rejected.append(_describe_rejection(index, e))
    return DecodedReceipts(receipts=receipts, rejected=rejected)


class KeyValueRecordStore(RecordStoreInterface):
    """
    Receipt collection stored as one blob under a single key.

    When a load has to leave data out, the blob as it was read is copied
    to ``<key>.unreadable`` first, so the next save can't destroy it.
    """

    def __init__(self, kv_store: KeyValueStoreInterface, key: str = "receipts"):
        self._kv = kv_store
        self._key = key
        self._rejected: list[str] = []

    @property
    def backup_key(self) -> str:
        return f"{self._key}.unreadable"

    @property
    def rejected_records(self) -> list[str]:
        return list(self._rejected)

    async def _preserve(self, blob: str) -> None:
        try:
            await self._kv.set_item(self.backup_key, blob)
        except PersistenceError as e:
            logger.error("receipts_backup_failed", key=self.backup_key, error=str(e))
        else:
            logger.warning("receipts_backed_up", key=self.backup_key)

    async def load(self) -> list[Receipt]:
        self._rejected = []
        try:
            blob = await self._kv.get_item(self._key)
        except PersistenceError as e:
            logger.error("receipts_load_failed", key=self._key, error=str(e))
            return []

        if blob is None:
            return []

        try:
            decoded = deserialize_receipts(blob)
        except ValueError as e:
            logger.error("receipts_parse_failed", key=self._key, error=str(e))
            self._rejected = [str(e)]
            await self._preserve(blob)
            return []

        if decoded.rejected:
            logger.error(
                "receipts_records_rejected",
                key=self._key,
                count=len(decoded.rejected),
                errors=decoded.rejected,
            )
            self._rejected = decoded.rejected
            await self._preserve(blob)

        logger.info("receipts_loaded", key=self._key, count=len(decoded.receipts))
        return decoded.receipts

    async def save(self, receipts: Sequence[Receipt]) -> None:
        try:
            blob = serialize_receipts(receipts)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to serialize receipts: {e}")

        await self._kv.set_item(self._key, blob)
        logger.debug("receipts_saved", key=self._key, count=len(receipts))


class JsonLinesAuditStorage(AuditStorageInterface):
    """Append-only audit log, one JSON object per line."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _read_lines(self) -> list[str]:
        if not self._path.exists():
            return []
        return self._path.read_text(encoding="utf-8").splitlines()

    async def append_event(self, event: AuditEvent) -> bool:
        line = json.dumps(event.to_log_dict(), ensure_ascii=False, default=str)
        async with self._lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError as e:
                # Don't raise - audit logging should not break the main flow
                logger.error("audit_append_failed", error=str(e))
                return False
        return True

    async def get_recent_events(self, limit: int = 100) -> list[dict]:
        try:
            lines = await asyncio.to_thread(self._read_lines)
        except OSError as e:
            raise PersistenceError(f"Failed to read audit log: {e}")

        events = []
        for line in reversed(lines):
            if len(events) >= limit:
                break
            try:
                events.append(json.loads(line))
            except ValueError:
                # Skip malformed lines
                continue
        return events
