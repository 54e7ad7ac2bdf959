# pixelforge/services/policy.py
"""
Account lockout and password expiration policy.

Every function takes a UserRecord and returns a new one; nothing here touches
storage. Which roles are exempt from automatic lockout and from expiration is
configuration (LOCKOUT_EXEMPT_ROLES / EXPIRY_EXEMPT_ROLES), not code.
"""
import datetime as dt
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from pixelforge.config import settings
from pixelforge.models.user import UserRole
from pixelforge.schemas.user import UserRecord, as_utc, utc_now


def _roles(values: Iterable) -> FrozenSet[UserRole]:
    roles = set()
    for value in values:
        try:
            roles.add(UserRole(value))
        except ValueError:
            continue  # unknown role names in configuration exempt nobody
    return frozenset(roles)


@dataclass(frozen=True)
class AccountPolicy:
    max_login_attempts: int = 3
    password_max_age: dt.timedelta = dt.timedelta(days=90)
    lockout_exempt_roles: FrozenSet[UserRole] = field(default_factory=lambda: frozenset({UserRole.ADMIN}))
    expiry_exempt_roles: FrozenSet[UserRole] = field(default_factory=lambda: frozenset({UserRole.ADMIN}))

    @classmethod
    def from_settings(cls, s=settings) -> "AccountPolicy":
        return cls(
            max_login_attempts=s.max_login_attempts,
            password_max_age=dt.timedelta(days=s.password_max_age_days),
            lockout_exempt_roles=_roles(s.lockout_exempt_roles),
            expiry_exempt_roles=_roles(s.expiry_exempt_roles),
        )

    def is_lockout_exempt(self, user: UserRecord) -> bool:
        return user.role in self.lockout_exempt_roles

    def is_expiry_exempt(self, user: UserRecord) -> bool:
        return user.role in self.expiry_exempt_roles

    def blocks_login(self, user) -> bool:
        """
        A locked flag only stops roles that are subject to lockout.
        Accepts a UserRecord or any view carrying `role` and `is_locked`.
        """
        return user.is_locked and not self.is_lockout_exempt(user)

    def record_failed_attempt(self, user: UserRecord) -> UserRecord:
        """Count one wrong credential; lock once the limit is reached."""
        if self.is_lockout_exempt(user):
            return user
        attempts = user.login_attempts + 1
        return user.model_copy(update={
            "login_attempts": attempts,
            "is_locked": user.is_locked or attempts >= self.max_login_attempts,
        })

    @staticmethod
    def reset_attempts(user: UserRecord) -> UserRecord:
        return user.model_copy(update={"login_attempts": 0, "is_locked": False})

    def is_expired(self, user: UserRecord, now: Optional[dt.datetime] = None) -> bool:
        """Strictly older than the maximum age counts as expired."""
        if self.is_expiry_exempt(user):
            return False
        now = as_utc(now) or utc_now()
        return now - user.password_last_changed > self.password_max_age

    @staticmethod
    def lock(user: UserRecord) -> UserRecord:
        return user.model_copy(update={"is_locked": True})

    @staticmethod
    def unlock(user: UserRecord) -> UserRecord:
        return user.model_copy(update={"is_locked": False, "login_attempts": 0})
