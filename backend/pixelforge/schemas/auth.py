# pixelforge/schemas/auth.py
"""
Pydantic schemas for authentication.
Defines request models for the auth endpoints and the result values returned
by the session service.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pixelforge.schemas.admin import CreateUserIn
from pixelforge.schemas.user import UserProfile


INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."
LOCKED_MESSAGE = "Your account is locked due to too many failed login attempts. Please contact support."
EXPIRED_MESSAGE = "Your password has expired. Please change it to continue."
MUST_CHANGE_MESSAGE = "You must change your password before continuing."
MFA_REQUIRED_MESSAGE = "Enter the verification code from your authenticator app."
INVALID_MFA_CODE_MESSAGE = "Invalid verification code."
USER_NOT_FOUND_MESSAGE = "User not found."


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    LOCKED = "locked"
    MUST_CHANGE_PASSWORD = "must_change_password"
    EXPIRED = "expired"
    MFA_REQUIRED = "mfa_required"


class SessionOutcome(BaseModel):
    """
    Result of one authentication attempt. Never persisted.

    - success: `user` carries the sanitized profile
    - mfa_required: only `username` and `mfa_enabled` are set
    - everything else: `message` only
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: OutcomeStatus
    message: Optional[str] = None
    user: Optional[UserProfile] = None
    username: Optional[str] = None
    mfa_enabled: Optional[bool] = None

    @classmethod
    def invalid(cls, message: str = INVALID_CREDENTIALS_MESSAGE) -> "SessionOutcome":
        return cls(status=OutcomeStatus.INVALID, message=message)

    @classmethod
    def locked(cls) -> "SessionOutcome":
        return cls(status=OutcomeStatus.LOCKED, message=LOCKED_MESSAGE)

    @classmethod
    def success(cls, user: UserProfile) -> "SessionOutcome":
        return cls(status=OutcomeStatus.SUCCESS, user=user)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


class MfaSetup(BaseModel):
    """Material the user needs to enroll an authenticator app."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    secret: str
    otpauth_uri: str
    qr_code_data_url: str


class OperationResult(BaseModel):
    """
    `{success, message}` result of a directory operation, with the updated
    profile or MFA setup material where the operation produces one.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    user: Optional[UserProfile] = None
    mfa: Optional[MfaSetup] = None

    @classmethod
    def ok(cls, message: str, **extra) -> "OperationResult":
        return cls(success=True, message=message, **extra)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)


# ========== Request models ==========
class LoginRequest(BaseModel):
    """
    Request model for the login endpoint.
    Format checks happen inside the service so that a malformed username gets
    the same answer as a wrong password.
    """
    username: str = ""
    password: str = ""


class MfaLoginRequest(BaseModel):
    """Second login step: the pending token from /auth/login plus the 6-digit code."""
    mfaToken: str
    token: str


class RegisterIn(CreateUserIn):
    """Self sign-up (project-lead or developer only)."""
    role: str = "developer"


class ChangePasswordIn(BaseModel):
    """
    Password change. Identified by username + current password so that it
    also works for users whose password expired (they hold no token).
    """
    username: str
    currentPassword: str
    newPassword: str
    confirmPassword: Optional[str] = None


class ProfileUpdateIn(BaseModel):
    name: str
    email: str


class MfaCodeIn(BaseModel):
    token: str = Field(min_length=1, max_length=16)
