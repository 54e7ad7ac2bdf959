# pixelforge/services/sessions.py
"""
Session & authorization service.

Owns every rule about user accounts: credential checks, lockout, password
expiration, MFA enrollment and the administrative directory operations.

Conventions:
- Every operation returns a SessionOutcome or an OperationResult; it does
  not raise for expected failures (unknown user, wrong password, refused
  action). StorageUnavailableError from the directory store is the one
  exception that propagates.
- Each mutation holds the per-username lock for its whole read-modify-write
  cycle and writes the full record back.
- Audit entries are best effort: a failing sink is logged and never changes
  the result of the operation.
"""
import datetime as dt
import logging
from typing import Callable, List, Mapping, Optional, Union

from pixelforge.config import settings
from pixelforge.core import validation
from pixelforge.core.locks import KeyedLock
from pixelforge.core.security import burn_password_check, hash_password, verify_password
from pixelforge.models.user import UserRole
from pixelforge.schemas.admin import CreateUserIn
from pixelforge.schemas.auth import (
    EXPIRED_MESSAGE,
    INVALID_MFA_CODE_MESSAGE,
    LOCKED_MESSAGE,
    MFA_REQUIRED_MESSAGE,
    MUST_CHANGE_MESSAGE,
    USER_NOT_FOUND_MESSAGE,
    MfaSetup,
    OperationResult,
    OutcomeStatus,
    SessionOutcome,
)
from pixelforge.schemas.user import SanitizedUser, UserProfile, UserRecord, utc_now
from pixelforge.services import mfa
from pixelforge.services.audit import SYSTEM_ACTOR, AuditSink
from pixelforge.services.directory import DirectoryStore
from pixelforge.services.policy import AccountPolicy

logger = logging.getLogger("uvicorn.error")

INCORRECT_CURRENT_PASSWORD_MESSAGE = "Incorrect current password."
ASSIGNABLE_ROLES = (UserRole.PROJECT_LEAD, UserRole.DEVELOPER)


def _parse_role(role) -> Optional[UserRole]:
    try:
        return UserRole(role)
    except ValueError:
        return None


class SessionService:
    def __init__(
        self,
        store: DirectoryStore,
        audit: Optional[AuditSink] = None,
        policy: Optional[AccountPolicy] = None,
        mfa_setup_ttl: Optional[dt.timedelta] = None,
        clock: Callable[[], dt.datetime] = utc_now,
    ):
        self.store = store
        self.audit = audit
        self.policy = policy or AccountPolicy.from_settings()
        if mfa_setup_ttl is None:
            mfa_setup_ttl = dt.timedelta(minutes=settings.mfa_setup_ttl_minutes)
        self.mfa_setup_ttl = mfa_setup_ttl
        self.clock = clock
        self._locks = KeyedLock()
        self._dependents: List = []

    def add_dependent(self, dependent) -> None:
        """
        Register a service that refers to users by name (projects, tasks).

        Before a user is removed each dependent is asked
        `removal_blocker(username)`; a non-empty message refuses the removal.
        Once the record is gone each dependent gets `forget_user(username)`,
        so a later account with the same name inherits nothing.
        """
        self._dependents.append(dependent)

    async def _audit(self, username: str, action: str, details: str) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.append(username, action, details)
        except Exception:
            logger.exception("[audit] could not record %s for %s", action, username)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    async def check_credentials(self, username: str, password: str) -> SessionOutcome:
        """
        Decide whether a (username, password) pair opens a session.

        Checks run in a fixed order: format, existence, lock, password,
        forced change, expiry, MFA. "Unknown user", "malformed input" and
        "wrong password" share one message.
        """
        if not validation.is_valid_username(username) or not isinstance(password, str) or not password:
            burn_password_check(password if isinstance(password, str) else "")
            return SessionOutcome.invalid()

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                burn_password_check(password)
                await self._audit(SYSTEM_ACTOR, "LOGIN_FAILED", f"Failed login for unknown username '{username}'.")
                return SessionOutcome.invalid()

            if self.policy.blocks_login(user):
                await self._audit(username, "LOGIN_BLOCKED", "Login attempt on a locked account.")
                return SessionOutcome.locked()

            if not verify_password(password, user.password_hash):
                updated = self.policy.record_failed_attempt(user)
                if updated != user:
                    await self.store.put(updated)
                if self.policy.blocks_login(updated):
                    logger.warning("[auth] account '%s' locked after %d failed attempts",
                                   username, updated.login_attempts)
                    await self._audit(username, "ACCOUNT_LOCKED", "Account locked after too many failed login attempts.")
                    return SessionOutcome.locked()
                await self._audit(username, "LOGIN_FAILED", "Incorrect password.")
                return SessionOutcome.invalid()

            if user.must_change_password:
                return SessionOutcome(status=OutcomeStatus.MUST_CHANGE_PASSWORD, message=MUST_CHANGE_MESSAGE)

            if self.policy.is_expired(user, self.clock()):
                await self._audit(username, "PASSWORD_EXPIRED", "Login refused: password expired.")
                return SessionOutcome(status=OutcomeStatus.EXPIRED, message=EXPIRED_MESSAGE)

            if user.mfa_enabled:
                return SessionOutcome(
                    status=OutcomeStatus.MFA_REQUIRED,
                    message=MFA_REQUIRED_MESSAGE,
                    username=user.username,
                    mfa_enabled=True,
                )

            user = await self._complete_login(user)
            await self._audit(username, "LOGIN_SUCCESS", "User logged in.")
            return SessionOutcome.success(user.to_profile())

    async def login_with_mfa(self, username: str, token: str) -> SessionOutcome:
        """
        Second step of an MFA login: verify the TOTP code and open the session.

        A wrong code counts against the same attempt limit as a wrong
        password, so the 6-digit space cannot be walked with one pending token.
        """
        if not validation.is_valid_username(username):
            return SessionOutcome.invalid()

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None or not user.mfa_enabled or not user.mfa_secret:
                return SessionOutcome.invalid()
            if self.policy.blocks_login(user):
                return SessionOutcome.locked()
            if not mfa.verify_token(user.mfa_secret, token):
                updated = self.policy.record_failed_attempt(user)
                if updated != user:
                    await self.store.put(updated)
                if self.policy.blocks_login(updated):
                    logger.warning("[auth] account '%s' locked after %d failed verification codes",
                                   username, updated.login_attempts)
                    await self._audit(username, "ACCOUNT_LOCKED", "Account locked after too many failed verification codes.")
                    return SessionOutcome.locked()
                await self._audit(username, "MFA_FAILED", "Incorrect verification code.")
                return SessionOutcome.invalid(INVALID_MFA_CODE_MESSAGE)

            user = await self._complete_login(user)
            await self._audit(username, "LOGIN_SUCCESS", "User logged in with MFA.")
            return SessionOutcome.success(user.to_profile())

    async def _complete_login(self, user: UserRecord) -> UserRecord:
        if user.login_attempts or user.is_locked:
            user = self.policy.reset_attempts(user)
            await self.store.put(user)
        return user

    # ------------------------------------------------------------------
    # Directory operations
    # ------------------------------------------------------------------
    async def create_user(
        self,
        profile: Union[CreateUserIn, Mapping],
        role: Union[UserRole, str] = UserRole.DEVELOPER,
        *,
        actor: str = SYSTEM_ACTOR,
        must_change_password: bool = False,
    ) -> OperationResult:
        """
        Create a project-lead or developer account. Admin accounts are only
        created by bootstrap (see create_admin).
        """
        parsed = _parse_role(role)
        if parsed is None:
            return OperationResult.fail("Invalid role.")
        if parsed is UserRole.ADMIN:
            return OperationResult.fail("Admin accounts cannot be created here.")
        return await self._create(profile, parsed, actor=actor, must_change_password=must_change_password)

    async def create_admin(self, profile: Union[CreateUserIn, Mapping], *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        return await self._create(profile, UserRole.ADMIN, actor=actor, must_change_password=False)

    async def ensure_admin(self, profile: Union[CreateUserIn, Mapping]) -> OperationResult:
        """Create an admin from `profile` unless one already exists (bootstrap)."""
        if await self.has_admin():
            return OperationResult.fail("An admin account already exists.")
        return await self.create_admin(profile)

    async def _create(self, profile, role: UserRole, *, actor: str, must_change_password: bool) -> OperationResult:
        data = profile.model_dump() if isinstance(profile, CreateUserIn) else dict(profile)
        name = data.get("name")
        username = data.get("username")
        email = data.get("email")
        password = data.get("password")
        for error in (
            validation.name_error(name),
            validation.username_error(username),
            validation.email_error(email),
            validation.password_error(password),
        ):
            if error:
                return OperationResult.fail(error)

        async with self._locks.hold(username):
            if await self.store.get(username) is not None:
                return OperationResult.fail("Username already exists.")
            now = self.clock()
            record = UserRecord(
                username=username,
                name=name.strip(),
                initials=validation.derive_initials(name),
                email=email.strip(),
                role=role,
                password_hash=hash_password(password),
                password_last_changed=now,
                must_change_password=must_change_password,
                created_at=now,
            )
            await self.store.put(record)

        logger.info("[directory] user '%s' created with role %s", username, role.value)
        await self._audit(actor, "CREATE_USER", f"Created user '{username}' with role '{role.value}'.")
        return OperationResult.ok("User created successfully.", user=record.to_profile())

    async def has_admin(self) -> bool:
        records = await self.store.read_all()
        return any(r.role is UserRole.ADMIN for r in records.values())

    async def update_user_role(self, username: str, new_role, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        parsed = _parse_role(new_role)
        if parsed is None:
            return OperationResult.fail("Invalid role.")

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Cannot change the role of an admin user.")
            if parsed not in ASSIGNABLE_ROLES:
                return OperationResult.fail("Users cannot be promoted to admin.")

            message = "User role updated successfully."
            changes = {"role": parsed}
            # Developers can never hold super user status
            if parsed is UserRole.DEVELOPER and user.is_super_user:
                changes["is_super_user"] = False
                message = "Role updated to Developer. Super user status was revoked."
            user = user.model_copy(update=changes)
            await self.store.put(user)

        logger.info("[directory] user '%s' role updated to %s", username, parsed.value)
        await self._audit(actor, "UPDATE_ROLE", f"Changed role of '{username}' to '{parsed.value}'.")
        return OperationResult.ok(message, user=user.to_profile())

    async def update_user_profile(self, username: str, name: str, email: str, *, actor: Optional[str] = None) -> OperationResult:
        for error in (validation.name_error(name), validation.email_error(email)):
            if error:
                return OperationResult.fail(error)

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            user = user.model_copy(update={
                "name": name.strip(),
                "email": email.strip(),
                "initials": validation.derive_initials(name),
            })
            await self.store.put(user)

        await self._audit(actor or username, "UPDATE_PROFILE", f"Updated profile of '{username}'.")
        return OperationResult.ok("Profile updated successfully.", user=user.to_profile())

    async def update_user_password(self, username: str, current_password: str, new_password: str) -> OperationResult:
        """
        Change a password after proving the current one.

        A wrong current password counts as a failed login attempt, so this
        path cannot be used to brute-force around the lockout.
        """
        error = validation.new_password_error(new_password)
        if error:
            return OperationResult.fail(error)
        if new_password == current_password:
            return OperationResult.fail("New password must be different from the current password.")

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if self.policy.blocks_login(user):
                return OperationResult.fail(LOCKED_MESSAGE)
            if not verify_password(current_password or "", user.password_hash):
                updated = self.policy.record_failed_attempt(user)
                if updated != user:
                    await self.store.put(updated)
                if self.policy.blocks_login(updated):
                    await self._audit(username, "ACCOUNT_LOCKED", "Account locked after too many failed password checks.")
                    return OperationResult.fail(LOCKED_MESSAGE)
                return OperationResult.fail(INCORRECT_CURRENT_PASSWORD_MESSAGE)

            user = user.model_copy(update={
                "password_hash": hash_password(new_password),
                "password_last_changed": self.clock(),
                "must_change_password": False,
                "login_attempts": 0,
            })
            await self.store.put(user)

        logger.info("[directory] user '%s' changed password", username)
        await self._audit(username, "CHANGE_PASSWORD", "Password changed.")
        return OperationResult.ok("Password updated successfully.")

    async def reset_user_password(self, username: str, new_password: str, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        """
        Administrative reset: set a temporary password that the user must
        replace at the next login. Also lifts any lock.
        """
        error = validation.password_error(new_password)
        if error:
            return OperationResult.fail(error)

        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Cannot reset the password of an admin account.")
            user = self.policy.unlock(user).model_copy(update={
                "password_hash": hash_password(new_password),
                "password_last_changed": self.clock(),
                "must_change_password": True,
            })
            await self.store.put(user)

        await self._audit(actor, "RESET_PASSWORD", f"Reset password of '{username}'.")
        return OperationResult.ok("Password reset. The user must choose a new password at next login.")

    async def update_user_super_user_status(self, username: str, is_super_user: bool, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Cannot change super user status for an admin.")
            if user.role is UserRole.DEVELOPER and is_super_user:
                return OperationResult.fail("Developers cannot be granted super user status.")
            user = user.model_copy(update={"is_super_user": bool(is_super_user)})
            await self.store.put(user)

        await self._audit(actor, "UPDATE_SUPER_USER", f"Set super user status of '{username}' to {bool(is_super_user)}.")
        return OperationResult.ok("Super user status updated successfully.", user=user.to_profile())

    async def lock_user_account(self, username: str, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Admin accounts cannot be locked.")
            await self.store.put(self.policy.lock(user))

        logger.warning("[directory] user account '%s' has been manually locked", username)
        await self._audit(actor, "LOCK_USER", f"Locked account '{username}'.")
        return OperationResult.ok("User account locked successfully.")

    async def unlock_user_account(self, username: str, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Admin accounts cannot be unlocked.")
            await self.store.put(self.policy.unlock(user))

        logger.info("[directory] user account '%s' has been unlocked", username)
        await self._audit(actor, "UNLOCK_USER", f"Unlocked account '{username}'.")
        return OperationResult.ok("User account unlocked successfully.")

    async def remove_user(self, username: str, *, actor: str = SYSTEM_ACTOR) -> OperationResult:
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.role is UserRole.ADMIN:
                return OperationResult.fail("Cannot remove an admin account.")
            for dependent in self._dependents:
                reason = await dependent.removal_blocker(username)
                if reason:
                    return OperationResult.fail(reason)
            await self.store.delete(username)
            for dependent in self._dependents:
                await dependent.forget_user(username)

        logger.info("[directory] user '%s' removed", username)
        await self._audit(actor, "REMOVE_USER", f"Removed user '{username}'.")
        return OperationResult.ok("User removed successfully.")

    # ------------------------------------------------------------------
    # MFA enrollment
    # ------------------------------------------------------------------
    async def setup_mfa(self, username: str) -> OperationResult:
        """
        Phase one of enrollment: store a fresh secret (not yet enabled) and
        hand back the provisioning URI, its QR code and the secret.
        """
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.mfa_enabled:
                return OperationResult.fail("MFA is already enabled.")

            secret = mfa.generate_secret()
            uri = mfa.provisioning_uri(user.email or user.username, secret)
            try:
                qr = mfa.qr_code_data_url(uri)
            except mfa.QRCodeError as exc:
                return OperationResult.fail(str(exc))

            await self.store.put(user.model_copy(update={
                "mfa_secret": secret,
                "mfa_enabled": False,
                "mfa_pending_since": self.clock(),
            }))

        await self._audit(username, "MFA_SETUP_STARTED", "MFA enrollment started.")
        return OperationResult.ok(
            "Scan the QR code with your authenticator app.",
            mfa=MfaSetup(secret=secret, otpauth_uri=uri, qr_code_data_url=qr),
        )

    def _setup_expired(self, user: UserRecord) -> bool:
        if not self.mfa_setup_ttl or user.mfa_pending_since is None:
            return False
        return self.clock() - user.mfa_pending_since > self.mfa_setup_ttl

    async def confirm_mfa(self, username: str, token: str) -> OperationResult:
        """Phase two: enable MFA only when the code from the app verifies."""
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            if user.mfa_enabled:
                return OperationResult.ok("MFA is already enabled.", user=user.to_profile())
            if not user.mfa_secret:
                return OperationResult.fail("MFA setup has not been started.")
            if self._setup_expired(user):
                await self.store.put(user.model_copy(update={"mfa_secret": None, "mfa_pending_since": None}))
                return OperationResult.fail("MFA setup has expired. Please start again.")
            if not mfa.verify_token(user.mfa_secret, token):
                return OperationResult.fail(INVALID_MFA_CODE_MESSAGE)

            user = user.model_copy(update={"mfa_enabled": True, "mfa_pending_since": None})
            await self.store.put(user)

        await self._audit(username, "MFA_ENABLED", "MFA enabled.")
        return OperationResult.ok("MFA has been successfully enabled on your account.", user=user.to_profile())

    async def disable_mfa(self, username: str, *, actor: Optional[str] = None) -> OperationResult:
        async with self._locks.hold(username):
            user = await self.store.get(username)
            if user is None:
                return OperationResult.fail(USER_NOT_FOUND_MESSAGE)
            changed = user.mfa_enabled or user.mfa_secret is not None or user.mfa_pending_since is not None
            if changed:
                user = user.model_copy(update={"mfa_secret": None, "mfa_enabled": False, "mfa_pending_since": None})
                await self.store.put(user)

        if changed:
            await self._audit(actor or username, "MFA_DISABLED", f"MFA disabled for '{username}'.")
        return OperationResult.ok("MFA has been disabled.", user=user.to_profile())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_users(self) -> List[SanitizedUser]:
        records = await self.store.read_all()
        ordered = sorted(records.values(), key=lambda r: (r.created_at, r.username))
        return [r.to_sanitized() for r in ordered]

    async def get_user(self, username: str) -> Optional[UserProfile]:
        user = await self.store.get(username)
        return user.to_profile() if user else None

    async def get_account(self, username: str) -> Optional[SanitizedUser]:
        """Profile plus lock status (used to re-check tokens on each request)."""
        user = await self.store.get(username)
        return user.to_sanitized() if user else None
