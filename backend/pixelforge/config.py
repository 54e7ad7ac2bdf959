# pixelforge/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_list(name: str, default: str) -> list[str]:
    """Split a comma separated environment variable into a clean list."""
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "PixelForge Nexus API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:9002",
    )

    # Token settings
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    mfa_token_expire_minutes: int = int(os.getenv("MFA_TOKEN_EXPIRE_MINUTES", "5"))

    # Lockout & password policy
    max_login_attempts: int = int(os.getenv("MAX_LOGIN_ATTEMPTS", "3"))
    password_max_age_days: int = int(os.getenv("PASSWORD_MAX_AGE_DAYS", "90"))
    # Roles listed here are never locked by failed attempts / never expire
    lockout_exempt_roles: list[str] = _env_list("LOCKOUT_EXEMPT_ROLES", "admin")
    expiry_exempt_roles: list[str] = _env_list("EXPIRY_EXEMPT_ROLES", "admin")
    password_min_length: int = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    new_password_min_length: int = int(os.getenv("NEW_PASSWORD_MIN_LENGTH", "12"))

    # MFA (TOTP)
    mfa_issuer: str = os.getenv("MFA_ISSUER", "PixelForge Nexus")
    # 0 keeps unconfirmed secrets forever
    mfa_setup_ttl_minutes: int = int(os.getenv("MFA_SETUP_TTL_MINUTES", "10"))

    # Persistence: "memory", "json" or "db"
    directory_backend: str = os.getenv("DIRECTORY_BACKEND", "json").lower()
    directory_json_path: str = os.getenv("DIRECTORY_JSON_PATH", "data/users.json")
    audit_log_path: str = os.getenv("AUDIT_LOG_PATH", "data/audit-log.json")
    workspace_json_path: str = os.getenv("WORKSPACE_JSON_PATH", "data/workspace.json")
    database_url: str = os.getenv("DATABASE_URL", "sqlite://data/pixelforge.sqlite3")

    # Default admin created on first startup (see core/bootstrap.py)
    admin_username: str = os.getenv("ADMIN_USERNAME", "admin")
    admin_email: str = os.getenv("ADMIN_EMAIL", "admin@example.com")
    admin_name: str = os.getenv("ADMIN_NAME", "Administrator")
    admin_password: str | None = os.getenv("ADMIN_PASSWORD")

settings = Settings()  # Instantiate configuration
