# pixelforge/services/audit.py
"""
Audit log sink: an append-only record of significant actions.

append(username, action, details) writes one entry; list_entries() returns
them oldest first. Entries are never updated or deleted.
"""
import asyncio
import datetime as dt
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from tortoise.exceptions import BaseORMException

from pixelforge.models.audit import AuditEntry
from pixelforge.schemas.user import as_utc, utc_now
from pixelforge.services.directory import StorageUnavailableError

logger = logging.getLogger("uvicorn.error")

SYSTEM_ACTOR = "System"  # Acting username for automated actions


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    timestamp: dt.datetime
    username: str
    action: str
    details: str


class AuditSink:
    async def append(self, username: str, action: str, details: str) -> AuditLogEntry:
        raise NotImplementedError

    async def list_entries(self) -> List[AuditLogEntry]:
        raise NotImplementedError


class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self._entries: List[AuditLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, username: str, action: str, details: str) -> AuditLogEntry:
        async with self._lock:
            entry = AuditLogEntry(
                id=len(self._entries) + 1,
                timestamp=utc_now(),
                username=username,
                action=action,
                details=details,
            )
            self._entries.append(entry)
        logger.info("Audit Log: [User: %s] [Action: %s] %s", username, action, details)
        return entry

    async def list_entries(self) -> List[AuditLogEntry]:
        return list(self._entries)


class JsonFileAuditSink(AuditSink):
    """
    Keeps the log in a JSON array on disk (cached in memory after the first
    read) and rewrites the file atomically on every append.
    """
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._cache: List[AuditLogEntry] | None = None
        self._lock = asyncio.Lock()

    def _read(self) -> List[AuditLogEntry]:
        if self._cache is not None:
            return self._cache
        if not self.path.exists():
            self._cache = []
            return self._cache
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            self._cache = [AuditLogEntry.model_validate(item) for item in raw]
        except (OSError, ValueError, ValidationError) as exc:
            logger.exception("Error reading or parsing %s.", self.path)
            raise StorageUnavailableError(f"cannot read audit log: {exc}") from exc
        return self._cache

    def _write(self, entries: List[AuditLogEntry]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".audit-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump([e.model_dump(mode="json") for e in entries], fh, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            logger.exception("Error writing logs to %s.", self.path)
            raise StorageUnavailableError(f"cannot write audit log: {exc}") from exc
        self._cache = entries

    async def append(self, username: str, action: str, details: str) -> AuditLogEntry:
        async with self._lock:
            entries = list(self._read())
            entry = AuditLogEntry(
                id=(entries[-1].id + 1) if entries else 1,
                timestamp=utc_now(),
                username=username,
                action=action,
                details=details,
            )
            entries.append(entry)
            self._write(entries)
        logger.info("Audit Log: [User: %s] [Action: %s] %s", username, action, details)
        return entry

    async def list_entries(self) -> List[AuditLogEntry]:
        async with self._lock:
            return list(self._read())


class TortoiseAuditSink(AuditSink):
    """Stores entries in the `audit_entries` table (see models/audit.py)."""

    async def append(self, username: str, action: str, details: str) -> AuditLogEntry:
        try:
            row = await AuditEntry.create(
                timestamp=utc_now(), username=username, action=action, details=details
            )
        except BaseORMException as exc:
            logger.exception("[audit] failed to insert entry")
            raise StorageUnavailableError(f"cannot write audit log: {exc}") from exc
        logger.info("Audit Log: [User: %s] [Action: %s] %s", username, action, details)
        return _row_to_entry(row)

    async def list_entries(self) -> List[AuditLogEntry]:
        try:
            rows = await AuditEntry.all().order_by("id")
        except BaseORMException as exc:
            logger.exception("[audit] failed to read entries")
            raise StorageUnavailableError(f"cannot read audit log: {exc}") from exc
        return [_row_to_entry(row) for row in rows]


def _row_to_entry(row: AuditEntry) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        timestamp=as_utc(row.timestamp),
        username=row.username,
        action=row.action,
        details=row.details,
    )


def build_audit_sink(backend: str, json_path: str | Path) -> AuditSink:
    """Audit entries live next to the directory: same backend name."""
    if backend == "memory":
        return InMemoryAuditSink()
    if backend == "json":
        return JsonFileAuditSink(json_path)
    if backend == "db":
        return TortoiseAuditSink()
    raise ValueError(f"unknown audit backend: {backend!r}")
