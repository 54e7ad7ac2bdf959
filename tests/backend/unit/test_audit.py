"""
Unit tests for services.audit sinks.
"""
import pytest

from pixelforge.services.audit import (
    InMemoryAuditSink,
    JsonFileAuditSink,
    StorageUnavailableError,
    TortoiseAuditSink,
    build_audit_sink,
)

pytestmark = pytest.mark.asyncio


async def _exercise_sink(sink):
    first = await sink.append("admin", "LOCK_USER", "Locked account 'alice'.")
    second = await sink.append("System", "LOGIN_FAILED", "Failed login for unknown username 'x'.")
    assert second.id > first.id

    entries = await sink.list_entries()
    assert [e.action for e in entries] == ["LOCK_USER", "LOGIN_FAILED"]
    assert entries[0].username == "admin"
    assert entries[0].timestamp.tzinfo is not None


async def test_in_memory_sink():
    await _exercise_sink(InMemoryAuditSink())


async def test_json_sink(tmp_path):
    path = tmp_path / "audit-log.json"
    await _exercise_sink(JsonFileAuditSink(path))
    # A new sink over the same file sees the history and keeps numbering
    reopened = JsonFileAuditSink(path)
    entry = await reopened.append("admin", "UNLOCK_USER", "Unlocked account 'alice'.")
    assert entry.id == 3
    assert len(await reopened.list_entries()) == 3


async def test_json_sink_corrupt_file(tmp_path):
    path = tmp_path / "audit-log.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(StorageUnavailableError):
        await JsonFileAuditSink(path).list_entries()


async def test_tortoise_sink(tortoise_db):
    await _exercise_sink(TortoiseAuditSink())


async def test_entries_logged(caplog):
    caplog.set_level("INFO", logger="uvicorn.error")
    await InMemoryAuditSink().append("admin", "LOCK_USER", "Locked account 'alice'.")
    assert "Audit Log: [User: admin] [Action: LOCK_USER] Locked account 'alice'." in caplog.text


async def test_build_audit_sink(tmp_path):
    assert isinstance(build_audit_sink("memory", tmp_path / "a.json"), InMemoryAuditSink)
    assert isinstance(build_audit_sink("json", tmp_path / "a.json"), JsonFileAuditSink)
    assert isinstance(build_audit_sink("db", tmp_path / "a.json"), TortoiseAuditSink)


async def test_json_sink_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    path = tmp_path / "audit-log.json"
    sink = JsonFileAuditSink(path)
    await sink.append("admin", "LOCK_USER", "Locked account 'alice'.")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("pixelforge.services.audit.os.replace", broken_replace)
    with pytest.raises(StorageUnavailableError):
        await sink.append("admin", "UNLOCK_USER", "Unlocked account 'alice'.")
    assert [p.name for p in tmp_path.iterdir()] == ["audit-log.json"]
