# pixelforge/core/security.py
"""
Security module for authentication.
Handles password hashing and JWT token creation/validation.
"""
import datetime as dt
from functools import lru_cache

import jwt  # PyJWT
from passlib.context import CryptContext

from pixelforge.config import settings

# Password hashing context
# Argon2 is a modern, secure password hashing algorithm
pwd_context = CryptContext(
    schemes=["argon2"],  # Use Argon2 for password hashing
    deprecated="auto",   # Automatically handle deprecated schemes
)

# JWT configuration
JWT_SECRET = settings.jwt_secret  # Secret key for JWT signing (use strong secret in production)
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes  # Token expiration time in minutes
MFA_TOKEN_EXPIRE_MINUTES = settings.mfa_token_expire_minutes  # Lifetime of the "password ok, code pending" token
JWT_ALG = "HS256"  # JWT signing algorithm (HMAC SHA-256)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_MFA_PENDING = "mfa_pending"


def hash_password(plain: str) -> str:
    """
    Hash a plain text password using Argon2.

    Args:
        plain: Plain text password to hash

    Returns:
        Hashed password string (safe to store in the directory)

    Note: Never store plain text passwords. Always use this function before saving.
    """
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """
    Verify a plain text password against a hashed password.

    Args:
        plain: Plain text password to verify
        hashed: Hashed password from the directory

    Returns:
        True if password matches, False otherwise (including unreadable hashes)
    """
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return pwd_context.hash("pixelforge-dummy-password")


def burn_password_check(plain: str) -> None:
    """
    Spend the same time as a real verification.

    Called when the username is unknown so that "no such user" and
    "wrong password" answer in comparable time.
    """
    verify_password(plain or "", _dummy_hash())


def _encode(username: str, role: str, token_type: str, minutes: int) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": username,    # Subject (username, the directory key)
        "role": role,       # User role for RBAC
        "typ": token_type,  # access | mfa_pending
        "iat": now,         # Issued at timestamp
        "exp": now + dt.timedelta(minutes=minutes),  # Expiration timestamp
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def create_access_token(username: str, role: str) -> str:
    """
    Create a JWT access token for an authenticated session.

    The token includes the username and role for quick RBAC determination at
    the API layer; the role is re-read from the directory on every request.

    Token payload includes:
        - sub: Subject (username)
        - role: User role for authorization
        - typ: "access"
        - iat: Issued at timestamp
        - exp: Expiration timestamp
    """
    return _encode(username, role, TOKEN_TYPE_ACCESS, ACCESS_TOKEN_EXPIRE_MINUTES)


def create_mfa_token(username: str, role: str) -> str:
    """
    Create a short-lived token proving the password step succeeded.
    It is only accepted by the MFA login endpoint, never as a session.
    """
    return _encode(username, role, TOKEN_TYPE_MFA_PENDING, MFA_TOKEN_EXPIRE_MINUTES)


def decode_access_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> dict:
    """
    Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid, malformed or of another type

    Note: This function validates the token signature and expiration automatically.
    """
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG], options={"require": ["sub", "exp", "typ"]})
    if payload["typ"] != expected_type:
        raise jwt.InvalidTokenError("unexpected token type")
    return payload
