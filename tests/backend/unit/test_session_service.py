"""
Unit tests for services.sessions.SessionService.
Covers the credential-check state machine, lockout, expiry, MFA enrollment
and the administrative directory operations.
"""
import asyncio
import time

import pyotp
import pytest
import pytest_asyncio

from pixelforge.models.user import UserRole
from pixelforge.schemas.auth import (
    INVALID_CREDENTIALS_MESSAGE,
    INVALID_MFA_CODE_MESSAGE,
    LOCKED_MESSAGE,
    USER_NOT_FOUND_MESSAGE,
    OutcomeStatus,
)
from pixelforge.services import mfa
from pixelforge.services.audit import AuditSink
from pixelforge.services.directory import InMemoryDirectoryStore, StorageUnavailableError
from pixelforge.services.policy import AccountPolicy
from pixelforge.services.sessions import INCORRECT_CURRENT_PASSWORD_MESSAGE, SessionService

pytestmark = pytest.mark.asyncio


def profile(username: str, password: str = "Secret123!", name: str = "Alice Doe") -> dict:
    return {"name": name, "username": username, "email": f"{username}@example.com", "password": password}


def wrong_code(secret: str) -> str:
    """A well-formed 6-digit code that is not valid in the current window."""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now - 30), totp.at(now), totp.at(now + 30), totp.at(now + 60)}
    return next(code for code in ("000000", "111111", "222222", "333333", "444444") if code not in valid)


@pytest_asyncio.fixture
async def alice(sessions):
    result = await sessions.create_user(profile("alice"), "developer")
    assert result.success, result.message
    return result.user


@pytest_asyncio.fixture
async def admin(sessions):
    result = await sessions.create_admin(profile("root", "AdminPass!23", "Root Admin"))
    assert result.success, result.message
    return result.user


class TestAliceScenario:
    async def test_lock_unlock_cycle(self, sessions, alice):
        outcome = await sessions.check_credentials("alice", "Secret123!")
        assert outcome.status is OutcomeStatus.SUCCESS
        dumped = outcome.user.model_dump()
        assert "password_hash" not in dumped
        assert "mfa_secret" not in dumped
        assert "login_attempts" not in dumped

        first = await sessions.check_credentials("alice", "wrong")
        second = await sessions.check_credentials("alice", "wrong")
        third = await sessions.check_credentials("alice", "wrong")
        assert first.status is OutcomeStatus.INVALID
        assert second.status is OutcomeStatus.INVALID
        assert third.status is OutcomeStatus.LOCKED

        result = await sessions.unlock_user_account("alice")
        assert result.success
        outcome = await sessions.check_credentials("alice", "Secret123!")
        assert outcome.status is OutcomeStatus.SUCCESS


class TestCredentialChecks:
    async def test_enumeration_resistance(self, sessions, alice):
        unknown = await sessions.check_credentials("nobody", "Secret123!")
        wrong = await sessions.check_credentials("alice", "nope")
        malformed = await sessions.check_credentials("al ice; DROP", "x")
        empty = await sessions.check_credentials("alice", "")
        assert {o.status for o in (unknown, wrong, malformed, empty)} == {OutcomeStatus.INVALID}
        assert unknown.message == wrong.message == malformed.message == empty.message == INVALID_CREDENTIALS_MESSAGE

    async def test_fourth_attempt_with_correct_password_stays_locked(self, sessions, alice, store):
        for _ in range(3):
            await sessions.check_credentials("alice", "wrong")
        outcome = await sessions.check_credentials("alice", "Secret123!")
        assert outcome.status is OutcomeStatus.LOCKED
        assert outcome.message == LOCKED_MESSAGE
        record = await store.get("alice")
        assert record.is_locked and record.login_attempts == 3

    async def test_success_resets_counter(self, sessions, alice, store):
        await sessions.check_credentials("alice", "wrong")
        await sessions.check_credentials("alice", "wrong")
        await sessions.check_credentials("alice", "Secret123!")
        assert (await store.get("alice")).login_attempts == 0

    async def test_admin_is_never_locked(self, sessions, admin, store):
        for _ in range(5):
            outcome = await sessions.check_credentials("root", "wrong")
            assert outcome.status is OutcomeStatus.INVALID
        assert (await sessions.check_credentials("root", "AdminPass!23")).ok
        assert (await store.get("root")).login_attempts == 0

    async def test_must_change_password(self, sessions):
        await sessions.create_user(profile("temp"), "developer", must_change_password=True)
        outcome = await sessions.check_credentials("temp", "Secret123!")
        assert outcome.status is OutcomeStatus.MUST_CHANGE_PASSWORD
        assert outcome.user is None

    async def test_wrong_password_beats_must_change(self, sessions):
        await sessions.create_user(profile("temp"), "developer", must_change_password=True)
        assert (await sessions.check_credentials("temp", "nope")).status is OutcomeStatus.INVALID


class TestExpiry:
    async def test_89_days_succeeds(self, sessions, alice, clock):
        clock.advance(days=89)
        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.SUCCESS

    async def test_91_days_expires(self, sessions, alice, clock):
        clock.advance(days=91)
        outcome = await sessions.check_credentials("alice", "Secret123!")
        assert outcome.status is OutcomeStatus.EXPIRED
        assert outcome.user is None

    async def test_exactly_90_days_is_not_expired(self, sessions, alice, clock):
        clock.advance(days=90)
        assert (await sessions.check_credentials("alice", "Secret123!")).ok

    async def test_admin_does_not_expire(self, sessions, admin, clock):
        clock.advance(days=365)
        assert (await sessions.check_credentials("root", "AdminPass!23")).ok

    async def test_changing_password_clears_expiry(self, sessions, alice, clock):
        clock.advance(days=120)
        result = await sessions.update_user_password("alice", "Secret123!", "A-much-longer-secret")
        assert result.success
        assert (await sessions.check_credentials("alice", "A-much-longer-secret")).ok


class TestMfa:
    async def test_round_trip(self, sessions, alice):
        setup = await sessions.setup_mfa("alice")
        assert setup.success
        assert setup.mfa.otpauth_uri.startswith("otpauth://totp/")
        assert setup.mfa.qr_code_data_url.startswith("data:image/png;base64,")
        assert not (await sessions.get_user("alice")).mfa_enabled

        confirm = await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert confirm.success
        assert confirm.user.mfa_enabled is True

    async def test_wrong_code_leaves_mfa_disabled(self, sessions, alice):
        setup = await sessions.setup_mfa("alice")
        result = await sessions.confirm_mfa("alice", wrong_code(setup.mfa.secret))
        assert not result.success
        assert result.message == INVALID_MFA_CODE_MESSAGE
        assert not (await sessions.get_user("alice")).mfa_enabled

    async def test_login_requires_code_then_succeeds(self, sessions, alice):
        setup = await sessions.setup_mfa("alice")
        await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))

        outcome = await sessions.check_credentials("alice", "Secret123!")
        assert outcome.status is OutcomeStatus.MFA_REQUIRED
        assert outcome.username == "alice"
        assert outcome.mfa_enabled is True
        assert outcome.user is None

        bad = await sessions.login_with_mfa("alice", wrong_code(setup.mfa.secret))
        assert bad.status is OutcomeStatus.INVALID
        assert bad.message == INVALID_MFA_CODE_MESSAGE

        good = await sessions.login_with_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert good.ok
        assert good.user.username == "alice"

    async def test_login_with_mfa_unknown_user(self, sessions, alice):
        outcome = await sessions.login_with_mfa("alice", "123456")
        assert outcome.status is OutcomeStatus.INVALID
        assert outcome.message == INVALID_CREDENTIALS_MESSAGE

    async def test_wrong_codes_lock_the_account(self, sessions, alice, store):
        setup = await sessions.setup_mfa("alice")
        await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.MFA_REQUIRED

        bad = wrong_code(setup.mfa.secret)
        statuses = [(await sessions.login_with_mfa("alice", bad)).status for _ in range(3)]
        assert statuses == [OutcomeStatus.INVALID, OutcomeStatus.INVALID, OutcomeStatus.LOCKED]
        record = await store.get("alice")
        assert record.is_locked and record.login_attempts == 3

        # The right code no longer helps, and neither does repeating the password step
        late = await sessions.login_with_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert late.status is OutcomeStatus.LOCKED
        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.LOCKED

    async def test_password_step_does_not_reset_code_failures(self, sessions, alice, store):
        setup = await sessions.setup_mfa("alice")
        await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))
        bad = wrong_code(setup.mfa.secret)
        for _ in range(2):
            assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.MFA_REQUIRED
            assert (await sessions.login_with_mfa("alice", bad)).status is OutcomeStatus.INVALID
        assert (await sessions.login_with_mfa("alice", bad)).status is OutcomeStatus.LOCKED

    async def test_disable_skips_mfa_branch(self, sessions, alice):
        setup = await sessions.setup_mfa("alice")
        await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))

        result = await sessions.disable_mfa("alice")
        assert result.success
        assert result.user.mfa_enabled is False
        assert (await sessions.disable_mfa("alice")).success  # idempotent

        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.SUCCESS

    async def test_setup_refused_when_enabled(self, sessions, alice):
        setup = await sessions.setup_mfa("alice")
        await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert not (await sessions.setup_mfa("alice")).success

    async def test_unconfirmed_setup_expires(self, sessions, alice, store, clock):
        setup = await sessions.setup_mfa("alice")
        clock.advance(minutes=11)
        result = await sessions.confirm_mfa("alice", mfa.current_token(setup.mfa.secret))
        assert not result.success
        assert "expired" in result.message
        assert (await store.get("alice")).mfa_secret is None

    async def test_confirm_without_setup(self, sessions, alice):
        result = await sessions.confirm_mfa("alice", "123456")
        assert not result.success


class TestAdminTargetsAreProtected:
    async def test_every_mutation_refuses_admin(self, sessions, admin):
        results = [
            await sessions.update_user_role("root", "developer"),
            await sessions.lock_user_account("root"),
            await sessions.unlock_user_account("root"),
            await sessions.remove_user("root"),
            await sessions.update_user_super_user_status("root", True),
            await sessions.reset_user_password("root", "NewPassword!1"),
        ]
        assert all(not r.success for r in results)
        assert (await sessions.get_user("root")).role is UserRole.ADMIN


class TestDirectoryOperations:
    async def test_create_user_rules(self, sessions, alice):
        assert (await sessions.create_user(profile("alice"), "developer")).message == "Username already exists."
        assert not (await sessions.create_user(profile("eve"), "admin")).success
        assert not (await sessions.create_user(profile("eve"), "wizard")).success
        assert not (await sessions.create_user(profile("eve", password="short"), "developer")).success
        assert not (await sessions.create_user(profile("bad name"), "developer")).success

    async def test_legacy_role_names_are_mapped(self, sessions):
        result = await sessions.create_user(profile("legacy"), "full-time")
        assert result.user.role is UserRole.PROJECT_LEAD

    async def test_initials_are_derived(self, sessions):
        result = await sessions.create_user(profile("mo", name="Mo Qadri"), "project-lead")
        assert result.user.initials == "MQ"

    async def test_role_demotion_revokes_super_user(self, sessions):
        await sessions.create_user(profile("lead"), "project-lead")
        assert (await sessions.update_user_super_user_status("lead", True)).success
        result = await sessions.update_user_role("lead", "developer")
        assert result.success
        assert "revoked" in result.message
        assert result.user.is_super_user is False

    async def test_cannot_promote_to_admin(self, sessions, alice):
        assert not (await sessions.update_user_role("alice", "admin")).success

    async def test_developer_cannot_be_super_user(self, sessions, alice):
        assert not (await sessions.update_user_super_user_status("alice", True)).success

    async def test_update_profile(self, sessions, alice):
        result = await sessions.update_user_profile("alice", "Alice Cooper", "cooper@example.com")
        assert result.success
        assert result.user.initials == "AC"
        assert result.user.email == "cooper@example.com"
        assert not (await sessions.update_user_profile("alice", "A", "cooper@example.com")).success

    async def test_update_password_rules(self, sessions, alice, store):
        assert not (await sessions.update_user_password("alice", "Secret123!", "short-one")).success
        assert not (await sessions.update_user_password("alice", "Secret123!", "Secret123!")).success
        wrong = await sessions.update_user_password("alice", "not-it", "A-much-longer-secret")
        assert wrong.message == INCORRECT_CURRENT_PASSWORD_MESSAGE
        assert (await store.get("alice")).login_attempts == 1

    async def test_wrong_current_password_counts_toward_lockout(self, sessions, alice):
        for _ in range(3):
            await sessions.update_user_password("alice", "not-it", "A-much-longer-secret")
        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.LOCKED

    async def test_update_password_stamps_change(self, sessions, alice, store, clock):
        clock.advance(days=10)
        await sessions.update_user_password("alice", "Secret123!", "A-much-longer-secret")
        assert (await store.get("alice")).password_last_changed == clock.now

    async def test_reset_password_forces_change_and_unlocks(self, sessions, alice, store):
        await sessions.lock_user_account("alice")
        result = await sessions.reset_user_password("alice", "Temporary!1")
        assert result.success
        record = await store.get("alice")
        assert record.must_change_password and not record.is_locked
        assert (await sessions.check_credentials("alice", "Temporary!1")).status is OutcomeStatus.MUST_CHANGE_PASSWORD

    async def test_manual_lock_blocks_login(self, sessions, alice):
        assert (await sessions.lock_user_account("alice")).success
        assert (await sessions.check_credentials("alice", "Secret123!")).status is OutcomeStatus.LOCKED

    async def test_remove_user(self, sessions, alice):
        assert (await sessions.remove_user("alice")).success
        assert await sessions.get_user("alice") is None

    async def test_not_found_everywhere(self, sessions):
        results = [
            await sessions.update_user_role("ghost", "developer"),
            await sessions.update_user_profile("ghost", "Ghost Writer", "g@example.com"),
            await sessions.update_user_password("ghost", "whatever", "A-much-longer-secret"),
            await sessions.update_user_super_user_status("ghost", False),
            await sessions.lock_user_account("ghost"),
            await sessions.unlock_user_account("ghost"),
            await sessions.remove_user("ghost"),
            await sessions.setup_mfa("ghost"),
            await sessions.confirm_mfa("ghost", "123456"),
            await sessions.disable_mfa("ghost"),
        ]
        assert {r.message for r in results} == {USER_NOT_FOUND_MESSAGE}

    async def test_get_users_is_sanitized_and_ordered(self, sessions, clock):
        await sessions.create_user(profile("zed"), "developer")
        clock.advance(minutes=1)
        await sessions.create_user(profile("amy"), "developer")
        users = await sessions.get_users()
        assert [u.username for u in users] == ["zed", "amy"]
        fields = set(users[0].model_dump())
        assert "password_hash" not in fields
        assert "mfa_secret" not in fields
        assert "is_locked" in fields

    async def test_ensure_admin_only_once(self, sessions):
        assert (await sessions.ensure_admin(profile("root", "AdminPass!23"))).success
        assert not (await sessions.ensure_admin(profile("root2", "AdminPass!23"))).success
        assert await sessions.has_admin()


class TestConcurrency:
    async def test_parallel_failures_are_all_counted(self, sessions, alice, store):
        await asyncio.gather(*(sessions.check_credentials("alice", "wrong") for _ in range(2)))
        assert (await store.get("alice")).login_attempts == 2

    async def test_parallel_creates_for_different_users(self, sessions):
        await asyncio.gather(*(sessions.create_user(profile(f"user{i}"), "developer") for i in range(5)))
        assert len(await sessions.get_users()) == 5


class _BrokenSink(AuditSink):
    async def append(self, username, action, details):
        raise StorageUnavailableError("audit down")

    async def list_entries(self):
        return []


class _BrokenStore(InMemoryDirectoryStore):
    async def _load(self):
        raise StorageUnavailableError("directory down")


class TestFailures:
    async def test_audit_failure_never_fails_the_operation(self, clock):
        service = SessionService(InMemoryDirectoryStore(), _BrokenSink(), policy=AccountPolicy(), clock=clock)
        assert (await service.create_user(profile("alice"), "developer")).success
        assert (await service.check_credentials("alice", "Secret123!")).ok

    async def test_storage_failure_propagates(self, clock):
        service = SessionService(_BrokenStore(), policy=AccountPolicy(), clock=clock)
        with pytest.raises(StorageUnavailableError):
            await service.check_credentials("alice", "Secret123!")

    async def test_state_changes_are_audited(self, sessions, alice, audit):
        await sessions.lock_user_account("alice", actor="root")
        entries = await audit.list_entries()
        assert [e.action for e in entries] == ["CREATE_USER", "LOCK_USER"]
        assert entries[-1].username == "root"
