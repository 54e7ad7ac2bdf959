# pixelforge/schemas/admin.py
"""
Pydantic schemas for admin user management endpoints.
Field level checks reuse core/validation.py, the same rules the service applies.
"""

from pydantic import BaseModel, Field, field_validator

from pixelforge.core import validation


# ========== Input models ==========
class CreateUserIn(BaseModel):
    """
    Profile fields for a new account (admin "add user" form and sign-up).
    """
    name: str
    username: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def _name(cls, v):
        error = validation.name_error(v)
        if error:
            raise ValueError(error)
        return v.strip()

    @field_validator("username")
    @classmethod
    def _username(cls, v):
        error = validation.username_error(v)
        if error:
            raise ValueError(error)
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        error = validation.email_error(v)
        if error:
            raise ValueError(error)
        return v.strip()

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        error = validation.password_error(v)
        if error:
            raise ValueError(error)
        return v


class AdminCreateUserIn(CreateUserIn):
    role: str = "developer"  # project-lead | developer
    mustChangePassword: bool = False  # Force a password change on first login


class AdminRoleUpdateIn(BaseModel):
    role: str  # New role: project-lead | developer


class AdminSuperUserIn(BaseModel):
    isSuperUser: bool


class AdminResetPasswordIn(BaseModel):
    """
    Request model for admin-initiated password reset.
    The user has to choose a new password at the next login.
    """
    newPassword: str = Field(min_length=1)
