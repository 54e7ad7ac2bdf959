# pixelforge/services/directory.py
"""
Directory store: the key-value mapping from username to user record.

Every backend offers the same two primitives:
- read_all()  -> {username: UserRecord}
- write_all(records)

plus get / put / delete helpers built on top of them. Backends that can do
better (the Tortoise one) override the helpers with row-level operations.

Any backend failure surfaces as StorageUnavailableError; nothing is retried
here, the caller decides.
"""
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError
from tortoise.exceptions import BaseORMException
from tortoise.transactions import in_transaction

from pixelforge.models.user import User
from pixelforge.schemas.user import UserRecord

logger = logging.getLogger("uvicorn.error")


class StorageUnavailableError(RuntimeError):
    """The directory (or audit) backend could not be read or written."""


class DirectoryStore:
    """
    Base class for whole-map stores.

    Subclasses implement _load / _save; the store-wide lock makes each
    read-modify-write cycle of the map atomic, so concurrent writes to
    different users never overwrite each other.
    """
    def __init__(self):
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, UserRecord]:
        raise NotImplementedError

    async def _save(self, records: Dict[str, UserRecord]) -> None:
        raise NotImplementedError

    async def read_all(self) -> Dict[str, UserRecord]:
        async with self._lock:
            return await self._load()

    async def write_all(self, records: Dict[str, UserRecord]) -> None:
        async with self._lock:
            await self._save(dict(records))

    async def get(self, username: str) -> Optional[UserRecord]:
        return (await self.read_all()).get(username)

    async def put(self, record: UserRecord) -> None:
        async with self._lock:
            records = await self._load()
            records[record.username] = record
            await self._save(records)

    async def delete(self, username: str) -> bool:
        async with self._lock:
            records = await self._load()
            if records.pop(username, None) is None:
                return False
            await self._save(records)
            return True


class InMemoryDirectoryStore(DirectoryStore):
    """Keeps records in a dict; copies on the way in and out."""
    def __init__(self, records: Optional[Dict[str, UserRecord]] = None):
        super().__init__()
        self._records: Dict[str, UserRecord] = {}
        for username, record in (records or {}).items():
            self._records[username] = record.model_copy(deep=True)

    async def _load(self) -> Dict[str, UserRecord]:
        return {k: v.model_copy(deep=True) for k, v in self._records.items()}

    async def _save(self, records: Dict[str, UserRecord]) -> None:
        self._records = {k: v.model_copy(deep=True) for k, v in records.items()}


class JsonFileDirectoryStore(DirectoryStore):
    """
    Persists the whole map to one JSON file.

    Writes go to a temporary file in the same directory and are then moved
    over the target with os.replace, so readers never see a half-written file.
    """
    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)

    async def _load(self) -> Dict[str, UserRecord]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            return {username: UserRecord.model_validate(data) for username, data in raw.items()}
        except (OSError, ValueError, ValidationError) as exc:
            logger.exception("[directory] failed to read %s", self.path)
            raise StorageUnavailableError(f"cannot read user directory: {exc}") from exc

    async def _save(self, records: Dict[str, UserRecord]) -> None:
        payload = {username: rec.model_dump(mode="json") for username, rec in records.items()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".users-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            logger.exception("[directory] failed to write %s", self.path)
            raise StorageUnavailableError(f"cannot write user directory: {exc}") from exc


def _row_to_record(row: User) -> UserRecord:
    return UserRecord(
        username=row.username,
        name=row.name,
        initials=row.initials,
        email=row.email,
        role=row.role,
        password_hash=row.password_hash,
        login_attempts=row.login_attempts,
        is_locked=row.is_locked,
        password_last_changed=row.password_last_changed,
        mfa_secret=row.mfa_secret,
        mfa_enabled=row.mfa_enabled,
        mfa_pending_since=row.mfa_pending_since,
        must_change_password=row.must_change_password,
        is_super_user=row.is_super_user,
        created_at=row.created_at,
    )


class TortoiseDirectoryStore(DirectoryStore):
    """
    Stores records in the `users` table (see models/user.py).
    Requires Tortoise to be initialised (core/db.py).
    """
    async def _load(self) -> Dict[str, UserRecord]:
        try:
            rows = await User.all()
        except BaseORMException as exc:
            logger.exception("[directory] failed to read users table")
            raise StorageUnavailableError(f"cannot read user directory: {exc}") from exc
        return {row.username: _row_to_record(row) for row in rows}

    async def _save(self, records: Dict[str, UserRecord]) -> None:
        try:
            async with in_transaction() as conn:
                stale = User.all() if not records else User.filter(username__not_in=list(records))
                await stale.using_db(conn).delete()
                for record in records.values():
                    await self._upsert(record, conn)
        except BaseORMException as exc:
            logger.exception("[directory] failed to write users table")
            raise StorageUnavailableError(f"cannot write user directory: {exc}") from exc

    @staticmethod
    async def _upsert(record: UserRecord, conn=None) -> None:
        values = record.model_dump(exclude={"username"})
        await User.update_or_create(defaults=values, username=record.username, using_db=conn)

    async def get(self, username: str) -> Optional[UserRecord]:
        try:
            row = await User.get_or_none(username=username)
        except BaseORMException as exc:
            logger.exception("[directory] failed to read user row")
            raise StorageUnavailableError(f"cannot read user directory: {exc}") from exc
        return _row_to_record(row) if row else None

    async def put(self, record: UserRecord) -> None:
        try:
            await self._upsert(record)
        except BaseORMException as exc:
            logger.exception("[directory] failed to write user row")
            raise StorageUnavailableError(f"cannot write user directory: {exc}") from exc

    async def delete(self, username: str) -> bool:
        try:
            deleted = await User.filter(username=username).delete()
        except BaseORMException as exc:
            logger.exception("[directory] failed to delete user row")
            raise StorageUnavailableError(f"cannot write user directory: {exc}") from exc
        return bool(deleted)


def build_directory_store(backend: str, json_path: str | Path) -> DirectoryStore:
    """Pick a backend by name ("memory", "json" or "db")."""
    if backend == "memory":
        return InMemoryDirectoryStore()
    if backend == "json":
        return JsonFileDirectoryStore(json_path)
    if backend == "db":
        return TortoiseDirectoryStore()
    raise ValueError(f"unknown directory backend: {backend!r}")
