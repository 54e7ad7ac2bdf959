# pixelforge/api/v1/deps.py
from fastapi import Depends, Header, HTTPException, Request, status

from pixelforge.core.security import decode_access_token
from pixelforge.schemas.user import SanitizedUser
from pixelforge.services import permissions
from pixelforge.services.audit import AuditSink
from pixelforge.services.projects import ProjectService
from pixelforge.services.sessions import SessionService
from pixelforge.services.tasks import TaskService


def get_session_service(request: Request) -> SessionService:
    """The SessionService wired up at startup (see main.py)."""
    return request.app.state.sessions


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.projects


def get_task_service(request: Request) -> TaskService:
    return request.app.state.tasks


def get_audit_sink(request: Request) -> AuditSink:
    return request.app.state.audit


async def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
    service: SessionService = Depends(get_session_service),
) -> SanitizedUser:
    """
    FastAPI dependency to get the current authenticated user.

    This dependency extracts and validates the JWT token from either:
    1. Authorization header (Bearer token) - preferred method
    2. HttpOnly cookie (accessToken) - fallback method

    The account is re-read from the directory on every request so that role
    changes, locks and removals take effect immediately.

    Raises:
        HTTPException (401): If no token is provided (AUTH_REQUIRED)
        HTTPException (401): If token is invalid or expired (AUTH_INVALID_TOKEN)
        HTTPException (401): If user no longer exists (AUTH_USER_NOT_FOUND)
        HTTPException (401): If the account has been locked (AUTH_ACCOUNT_LOCKED)
    """
    token = None
    # 1) Prioritize Authorization: Bearer xxx
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    # 2) Secondly HttpOnly Cookie: accessToken
    if not token:
        token = request.cookies.get("accessToken")

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_REQUIRED")

    try:
        payload = decode_access_token(token)
        username: str = payload["sub"]
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_INVALID_TOKEN")

    user = await service.get_account(username)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_USER_NOT_FOUND")
    if service.policy.blocks_login(user):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_ACCOUNT_LOCKED")
    return user


async def require_admin(current: SanitizedUser = Depends(get_current_user)) -> SanitizedUser:
    """
    FastAPI dependency to ensure the current user may manage users (admins only).

    Raises:
        HTTPException (403): If user is not an admin (FORBIDDEN_ADMIN_ONLY)
        HTTPException (401): If user is not authenticated (from get_current_user)
    """
    if not permissions.can_manage_users(current.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN_ADMIN_ONLY")
    return current


async def require_developer_tools(current: SanitizedUser = Depends(get_current_user)) -> SanitizedUser:
    """Admins and super users only."""
    if not permissions.can_see_developer_tools(current.role, current.is_super_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN_DEVELOPER_TOOLS")
    return current
