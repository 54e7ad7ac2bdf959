# pixelforge/core/bootstrap.py
"""
Bootstrap module for application initialization.
Creates the default admin account on first startup.
"""
import logging

from pixelforge.config import settings
from pixelforge.services.sessions import SessionService

logger = logging.getLogger("uvicorn.error")


async def ensure_default_admin(service: SessionService, s=settings) -> None:
    """
    If no admin exists in the directory, create one from environment variables.
    Only takes effect under the following conditions:
      - Currently no user with role="admin"
      - And ADMIN_PASSWORD is set (to avoid using a default weak password)
    Environment variables:
      ADMIN_USERNAME (default: "admin")
      ADMIN_EMAIL    (default: "admin@example.com")
      ADMIN_NAME     (default: "Administrator")
      ADMIN_PASSWORD (required, otherwise won't create)
    """
    if await service.has_admin():
        return  # Skip creation if admin already exists

    if not s.admin_password:
        logger.warning("[bootstrap] No admin present, but ADMIN_PASSWORD not set -> skip creating default admin.")
        return  # Don't create admin without password (security requirement)

    # If username is already taken (someone signed up as "admin"), create a non-conflicting name
    admin_username = base_username = s.admin_username
    suffix = 1
    while await service.get_user(admin_username) is not None:
        suffix += 1
        admin_username = f"{base_username}{suffix}"  # Append number suffix to make unique

    result = await service.ensure_admin({
        "name": s.admin_name,
        "username": admin_username,
        "email": s.admin_email,
        "password": s.admin_password,
    })
    if not result.success:
        logger.error("[bootstrap] Could not create default admin: %s", result.message)
        return
    logger.warning("[bootstrap] Created default admin -> username=%s email=%s",
                   admin_username, s.admin_email)
