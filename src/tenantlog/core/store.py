"""
Tenant-partitioned record storage.

Records are addressed by ``(tenant_id, log_id)``: tenant_id is the
partition, log_id the key within it. ``put`` is an unconditional upsert,
so redelivering a message overwrites its record instead of duplicating
it. Reads are inspection only and always scoped to one tenant.
"""

import asyncio
import hashlib
import json
import os
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import structlog

from ..config import StoreSettings
from ..models.log_event import ProcessedRecord
from .exceptions import ConfigurationError, StoreWriteError

logger = structlog.get_logger(__name__)


def _fsync_directory(path: Path) -> None:
    """Persist a rename by syncing the directory entry."""
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class RecordStore(ABC):
    """Storage backend for processed records."""

    @abstractmethod
    async def put(self, record: ProcessedRecord) -> None:
        """Upsert ``record`` under its key. Atomic per record."""

    @abstractmethod
    async def get(self, tenant_id: str, log_id: str) -> Optional[ProcessedRecord]:
        """Fetch one record from a tenant partition."""

    @abstractmethod
    async def query(self, tenant_id: str) -> List[ProcessedRecord]:
        """All records of one tenant, ordered by log_id."""

    async def check(self) -> bool:
        """Return True if the store can accept writes."""
        return True


class InMemoryRecordStore(RecordStore):
    """Dict-backed store: tenant_id -> {log_id -> record}."""

    def __init__(self, table: str = "records") -> None:
        self.table = table
        self._partitions: Dict[str, Dict[str, ProcessedRecord]] = {}

    async def put(self, record: ProcessedRecord) -> None:
        self._partitions.setdefault(record.tenant_id, {})[record.log_id] = record

    async def get(self, tenant_id: str, log_id: str) -> Optional[ProcessedRecord]:
        return self._partitions.get(tenant_id, {}).get(log_id)

    async def query(self, tenant_id: str) -> List[ProcessedRecord]:
        partition = self._partitions.get(tenant_id, {})
        return [partition[log_id] for log_id in sorted(partition)]

    def __len__(self) -> int:
        return sum(len(p) for p in self._partitions.values())


class FileRecordStore(RecordStore):
    """
    One JSON file per record under ``<root>/<table>/<tenant>/``.

    Writes go to a temp file in the same directory, are fsynced and then
    renamed into place, so readers only ever see complete records and a
    record is on disk once ``put`` returns.
    """

    def __init__(self, root_path: Path, table: str) -> None:
        self.table = table
        self.table_dir = Path(root_path) / self._sanitize(table)
        self.table_dir.mkdir(parents=True, exist_ok=True)
        logger.info("File record store initialized", table_dir=str(self.table_dir))

    @staticmethod
    def _sanitize(value: str) -> str:
        """
        Filesystem-safe name for an identifier.

        Format: {safe_prefix}_{hash_suffix}
        Example: acme_corp_1a2b3c4d
        """
        safe_prefix = re.sub(r"[^a-zA-Z0-9_-]", "", value)[:40]
        hash_suffix = hashlib.sha256(value.encode()).hexdigest()[:8]
        return f"{safe_prefix}_{hash_suffix}"

    def _tenant_dir(self, tenant_id: str) -> Path:
        return self.table_dir / self._sanitize(tenant_id)

    def _record_path(self, tenant_id: str, log_id: str) -> Path:
        return self._tenant_dir(tenant_id) / f"{self._sanitize(log_id)}.json"

    async def put(self, record: ProcessedRecord) -> None:
        tenant_dir = self._tenant_dir(record.tenant_id)
        tenant_dir.mkdir(parents=True, exist_ok=True)

        target = self._record_path(record.tenant_id, record.log_id)
        temp = tenant_dir / f".{target.name}.{uuid.uuid4().hex}.tmp"
        payload = json.dumps(record.to_item(), ensure_ascii=False)

        try:
            async with aiofiles.open(temp, "w", encoding="utf-8") as f:
                await f.write(payload)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await asyncio.to_thread(os.replace, temp, target)
            await asyncio.to_thread(_fsync_directory, tenant_dir)
        except BaseException:
            temp.unlink(missing_ok=True)
            raise

    async def _load(self, path: Path) -> ProcessedRecord:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            data = await f.read()
        return ProcessedRecord.model_validate_json(data)

    async def get(self, tenant_id: str, log_id: str) -> Optional[ProcessedRecord]:
        path = self._record_path(tenant_id, log_id)
        if not path.exists():
            return None
        return await self._load(path)

    async def query(self, tenant_id: str) -> List[ProcessedRecord]:
        tenant_dir = self._tenant_dir(tenant_id)
        if not tenant_dir.is_dir():
            return []

        records = [await self._load(path) for path in tenant_dir.glob("*.json")]
        # Never return another tenant's record
        records = [r for r in records if r.tenant_id == tenant_id]
        return sorted(records, key=lambda r: r.log_id)

    async def check(self) -> bool:
        return self.table_dir.is_dir() and os.access(self.table_dir, os.W_OK)


class RecordWriter:
    """
    Persists processed records.

    Every backend failure becomes a StoreWriteError so the batch
    processor can fail exactly that message.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def write(self, record: ProcessedRecord) -> None:
        try:
            await self.store.put(record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Record write failed",
                tenant_id=record.tenant_id,
                log_id=record.log_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreWriteError(
                "Failed to write record",
                details={"tenant_id": record.tenant_id, "log_id": record.log_id, "error": str(e)},
            ) from e

        logger.debug("Record written", tenant_id=record.tenant_id, log_id=record.log_id)


def create_record_store(settings: StoreSettings) -> RecordStore:
    """Build the record store for the configured backend."""
    if settings.backend == "memory":
        return InMemoryRecordStore(table=settings.table)
    if settings.backend == "file":
        return FileRecordStore(root_path=settings.root_path, table=settings.table)
    raise ConfigurationError("Unsupported store backend", details={"backend": settings.backend})
