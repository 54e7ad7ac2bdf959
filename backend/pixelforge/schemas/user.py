# pixelforge/schemas/user.py
"""
Pydantic models for user records and the views derived from them.

UserRecord is the full directory entry (including credential and security
fields) and never leaves the service layer. UserProfile and SanitizedUser are
the views that are safe to hand to callers.
"""
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pixelforge.models.user import UserRole


def utc_now() -> dt.datetime:
    """
    Get current UTC datetime with timezone information.
    """
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Treat naive datetimes (as some stores return them) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class UserRecord(BaseModel):
    """
    One account in the directory, keyed by username.
    """
    username: str
    name: str
    initials: str
    email: str
    role: UserRole
    password_hash: str
    login_attempts: int = 0
    is_locked: bool = False
    password_last_changed: dt.datetime = Field(default_factory=utc_now)
    mfa_secret: Optional[str] = None
    mfa_enabled: bool = False
    mfa_pending_since: Optional[dt.datetime] = None
    must_change_password: bool = False
    is_super_user: bool = False
    created_at: dt.datetime = Field(default_factory=utc_now)

    @field_validator("password_last_changed", "mfa_pending_since", "created_at")
    @classmethod
    def _timezone_aware(cls, value):
        return as_utc(value)

    def to_profile(self) -> "UserProfile":
        return UserProfile.model_validate(self.model_dump())

    def to_sanitized(self) -> "SanitizedUser":
        return SanitizedUser.model_validate(self.model_dump())


class UserProfile(BaseModel):
    """
    Session view of a user: every credential and security field is stripped.
    Serialised with camelCase keys (isSuperUser, mfaEnabled).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: str
    name: str
    initials: str
    email: str
    role: UserRole
    is_super_user: bool = False
    mfa_enabled: bool = False


class SanitizedUser(UserProfile):
    """
    Directory listing view: the profile plus the account status flag.
    Never carries the hash, the MFA secret, the attempt counter or the
    password age.
    """
    is_locked: bool = False
    created_at: Optional[dt.datetime] = None
