"""
Unit tests for services.directory (in-memory, JSON file and Tortoise backends).
"""
import asyncio
import datetime as dt

import pytest

from pixelforge.models.user import UserRole
from pixelforge.schemas.user import UserRecord
from pixelforge.services.directory import (
    InMemoryDirectoryStore,
    JsonFileDirectoryStore,
    StorageUnavailableError,
    TortoiseDirectoryStore,
    build_directory_store,
)

pytestmark = pytest.mark.asyncio

NOW = dt.datetime(2024, 6, 1, 9, 30, tzinfo=dt.timezone.utc)


def make_record(username: str, role=UserRole.DEVELOPER, **overrides) -> UserRecord:
    data = dict(
        username=username,
        name=f"{username.title()} Example",
        initials=username[:1].upper() + "E",
        email=f"{username}@example.com",
        role=role,
        password_hash="$argon2id$fake",
        password_last_changed=NOW,
        created_at=NOW,
    )
    data.update(overrides)
    return UserRecord(**data)


async def _exercise_store(store):
    assert await store.read_all() == {}
    assert await store.get("alice") is None

    await store.put(make_record("alice", login_attempts=2, mfa_secret="JBSWY3DPEHPK3PXP"))
    await store.put(make_record("bob", role=UserRole.PROJECT_LEAD, is_super_user=True))

    alice = await store.get("alice")
    assert alice.login_attempts == 2
    assert alice.mfa_secret == "JBSWY3DPEHPK3PXP"
    assert alice.password_last_changed == NOW
    assert (await store.get("bob")).role is UserRole.PROJECT_LEAD

    assert await store.delete("alice") is True
    assert await store.delete("alice") is False
    assert set(await store.read_all()) == {"bob"}

    await store.write_all({"carol": make_record("carol")})
    assert set(await store.read_all()) == {"carol"}


class TestInMemoryStore:
    async def test_crud(self):
        await _exercise_store(InMemoryDirectoryStore())

    async def test_returned_records_are_copies(self):
        store = InMemoryDirectoryStore()
        await store.put(make_record("alice"))
        records = await store.read_all()
        records["alice"].login_attempts = 99
        records.pop("alice")
        assert (await store.get("alice")).login_attempts == 0

    async def test_concurrent_puts_for_different_users_are_all_kept(self):
        store = InMemoryDirectoryStore()
        await asyncio.gather(*(store.put(make_record(f"user{i}")) for i in range(20)))
        assert len(await store.read_all()) == 20


class TestJsonFileStore:
    async def test_crud(self, tmp_path):
        await _exercise_store(JsonFileDirectoryStore(tmp_path / "users.json"))

    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "nested" / "users.json"
        await JsonFileDirectoryStore(path).put(make_record("alice", is_locked=True))
        reopened = JsonFileDirectoryStore(path)
        alice = await reopened.get("alice")
        assert alice.is_locked is True
        assert alice.created_at == NOW

    async def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileDirectoryStore(tmp_path / "users.json")
        await store.put(make_record("alice"))
        await store.put(make_record("bob"))
        assert [p.name for p in tmp_path.iterdir()] == ["users.json"]

    async def test_corrupt_file_is_storage_unavailable(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageUnavailableError):
            await JsonFileDirectoryStore(path).get("alice")

    async def test_unwritable_location_is_storage_unavailable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        store = JsonFileDirectoryStore(blocker / "users.json")
        with pytest.raises(StorageUnavailableError):
            await store.put(make_record("alice"))


class TestTortoiseStore:
    async def test_crud(self, tortoise_db):
        await _exercise_store(TortoiseDirectoryStore())

    async def test_optional_fields(self, tortoise_db):
        store = TortoiseDirectoryStore()
        await store.put(make_record("alice", mfa_pending_since=NOW, must_change_password=True))
        alice = await store.get("alice")
        assert alice.mfa_pending_since == NOW
        assert alice.must_change_password is True
        assert alice.mfa_secret is None


async def test_build_directory_store(tmp_path):
    assert isinstance(build_directory_store("memory", tmp_path / "u.json"), InMemoryDirectoryStore)
    assert isinstance(build_directory_store("json", tmp_path / "u.json"), JsonFileDirectoryStore)
    assert isinstance(build_directory_store("db", tmp_path / "u.json"), TortoiseDirectoryStore)
    with pytest.raises(ValueError):
        build_directory_store("ldap", tmp_path / "u.json")
