# pixelforge/core/validation.py
"""
Shared input rules for usernames, passwords, emails and display names.

The request schemas (pydantic validators) and the session service both call
these functions, so a rule only ever lives in one place.
"""
import re

from pixelforge.config import settings

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 64
NAME_MIN_LENGTH = 2


def is_valid_username(username) -> bool:
    """Allow-listed characters only: letters, digits, `_ . -`."""
    return isinstance(username, str) and bool(USERNAME_PATTERN.fullmatch(username))


def username_error(username) -> str | None:
    """
    Return a human readable problem with a username chosen at creation time,
    or None when it is acceptable.
    """
    if not isinstance(username, str) or len(username) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters."
    if len(username) > USERNAME_MAX_LENGTH:
        return f"Username must be at most {USERNAME_MAX_LENGTH} characters."
    if not is_valid_username(username):
        return "Username can only contain letters, numbers, and `_ . -`."
    return None


def password_error(password, min_length: int | None = None) -> str | None:
    """Length is the only strength rule; hashing does the rest."""
    min_length = settings.password_min_length if min_length is None else min_length
    if not isinstance(password, str) or len(password) < min_length:
        return f"Password must be at least {min_length} characters."
    return None


def new_password_error(password) -> str | None:
    """Rule for a password chosen in the change-password flow."""
    return password_error(password, settings.new_password_min_length)


def email_error(email) -> str | None:
    if not isinstance(email, str) or not EMAIL_PATTERN.fullmatch(email.strip()):
        return "Please enter a valid email address."
    return None


def name_error(name) -> str | None:
    if not isinstance(name, str) or len(name.strip()) < NAME_MIN_LENGTH:
        return f"Name must be at least {NAME_MIN_LENGTH} characters."
    return None


def derive_initials(name: str) -> str:
    """First letter of every word, upper-cased ("Mo Qadri" -> "MQ")."""
    letters = re.findall(r"\b\w", name or "")
    return "".join(letters).upper() or "??"
