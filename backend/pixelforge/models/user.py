# pixelforge/models/user.py
"""
Database model for users.
Represents a user account in the directory, containing authentication credentials,
lockout state, MFA enrollment and role-based access control.
"""
from enum import Enum

from tortoise import fields, models


class UserRole(str, Enum):
    """
    The closed set of roles a user can hold.

    The earlier iteration of the product called the same roles
    "full-time" and "contractor"; those names are still accepted on input
    and mapped onto the current ones.
    """
    ADMIN = "admin"
    PROJECT_LEAD = "project-lead"
    DEVELOPER = "developer"

    @classmethod
    def _missing_(cls, value):
        legacy = {"full-time": cls.PROJECT_LEAD, "contractor": cls.DEVELOPER}
        if isinstance(value, str):
            return legacy.get(value.strip().lower())
        return None


class User(models.Model):
    """
    User database model (used by the Tortoise-backed directory store).

    Security:
    - Password is stored as a hash (never store plain text passwords)
    - Username is the primary key and never changes
    - Role determines access level (admin / project-lead / developer)
    """
    username = fields.CharField(max_length=64, pk=True)  # Immutable login name
    name = fields.CharField(max_length=256)  # Display name
    initials = fields.CharField(max_length=16)  # Derived from name
    email = fields.CharField(max_length=256)
    role = fields.CharEnumField(UserRole, max_length=16, default=UserRole.DEVELOPER)
    password_hash = fields.CharField(max_length=255)  # Argon2 hash, never plain text
    login_attempts = fields.IntField(default=0)  # Consecutive failed logins
    is_locked = fields.BooleanField(default=False)
    password_last_changed = fields.DatetimeField()
    mfa_secret = fields.CharField(max_length=64, null=True)  # Base32 TOTP secret
    mfa_enabled = fields.BooleanField(default=False)
    mfa_pending_since = fields.DatetimeField(null=True)  # Unconfirmed MFA setup start
    must_change_password = fields.BooleanField(default=False)
    is_super_user = fields.BooleanField(default=False)
    created_at = fields.DatetimeField()

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"  # Database table name
