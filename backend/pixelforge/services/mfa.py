# pixelforge/services/mfa.py
"""
Time-based One-Time Password (TOTP) helpers for multi-factor authentication.

Secrets and codes come from pyotp (RFC 6238: 30 second steps, 6 digits,
SHA-1); QR codes for authenticator apps are rendered with qrcode.

Security notes:
- The secret is as sensitive as a password; it never leaves the service
  except once, during setup.
- verify_token() never raises: malformed input simply does not verify.
"""
import base64
import io
import logging
import re

import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_L

from pixelforge.config import settings

logger = logging.getLogger("uvicorn.error")

TOKEN_PATTERN = re.compile(r"^\d{6}$")
VALID_WINDOW = 1  # Accept the previous and next 30s step for clock drift


class QRCodeError(RuntimeError):
    """The provisioning URI could not be rendered as an image."""


def generate_secret() -> str:
    """
    Generate a new random base32 secret (32 characters, 160 bits).
    """
    return pyotp.random_base32()


def provisioning_uri(account_label: str, secret: str, issuer: str | None = None) -> str:
    """
    Build the standard otpauth:// URI that authenticator apps understand.

    Args:
        account_label: Shown in the app next to the issuer (we use the email)
        secret: Base32 secret
        issuer: Defaults to MFA_ISSUER ("PixelForge Nexus")
    """
    return pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=issuer or settings.mfa_issuer)


def qr_code_data_url(uri: str) -> str:
    """
    Render a provisioning URI as a PNG data URI.

    Raises:
        QRCodeError: If the image could not be generated
    """
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECT_L,
            box_size=8,
            border=2,
        )
        qr.add_data(uri)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
    except Exception as exc:
        logger.error("Failed to generate QR code from otpauth URL: %s", exc)
        raise QRCodeError("Could not generate QR code.") from exc
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def current_token(secret: str) -> str:
    """Code an authenticator app would show right now (used by tooling and tests)."""
    return pyotp.TOTP(secret).now()


def verify_token(secret: str | None, token: str | None) -> bool:
    """
    Check a 6-digit code against the secret for the current time step (+/-1).

    Returns:
        True if the code is valid, False otherwise (including malformed input)
    """
    if not secret or not isinstance(token, str):
        return False
    token = token.strip().replace(" ", "")
    if not TOKEN_PATTERN.fullmatch(token):
        return False
    try:
        return pyotp.TOTP(secret).verify(token, valid_window=VALID_WINDOW)
    except Exception as exc:  # e.g. a corrupted (non-base32) secret
        logger.error("An error occurred during TOTP verification: %s", exc)
        return False
