# pixelforge/api/v1/routers/admin.py
from fastapi import APIRouter, Depends, HTTPException, Query, status

from pixelforge.api.v1.deps import get_audit_sink, get_current_user, get_session_service, require_admin
from pixelforge.schemas.admin import (
    AdminCreateUserIn,
    AdminResetPasswordIn,
    AdminRoleUpdateIn,
    AdminSuperUserIn,
)
from pixelforge.schemas.auth import USER_NOT_FOUND_MESSAGE, OperationResult
from pixelforge.schemas.user import SanitizedUser
from pixelforge.services import permissions
from pixelforge.services.audit import AuditSink
from pixelforge.services.sessions import SessionService

router = APIRouter(prefix="/admin", tags=["admin"])


def _unwrap(result: OperationResult, code: str) -> dict:
    """
    Turn a service result into the response envelope.

    Raises:
        HTTPException (404): USER_NOT_FOUND
        HTTPException (400): `code` with the service message
    """
    if not result.success:
        if result.message == USER_NOT_FOUND_MESSAGE:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")
        raise HTTPException(status_code=400, detail={"code": code, "message": result.message})
    data = {"message": result.message}
    if result.user is not None:
        data["user"] = result.user.model_dump(by_alias=True, mode="json")
    return {"success": True, "data": data}


# ==============================================================================
# I. User Management Interface
#     Prefix: /api/v1/admin/users
# ==============================================================================
@router.get("/users", dependencies=[Depends(require_admin)])
async def list_users(
    q: str | None = Query(default=None, description="Fuzzy search by username/name/email"),
    service: SessionService = Depends(get_session_service),
):
    """
    List all users (admin only), oldest first.

    Never includes password hashes, MFA secrets or attempt counters.
    """
    users = await service.get_users()
    if q:
        needle = q.lower()
        users = [u for u in users
                 if needle in u.username.lower() or needle in u.name.lower() or needle in u.email.lower()]
    items = [u.model_dump(by_alias=True, mode="json") for u in users]
    return {"success": True, "data": {"items": items, "total": len(items)}}


@router.get("/users/{username}", dependencies=[Depends(require_admin)])
async def get_user_detail(username: str, service: SessionService = Depends(get_session_service)):
    user = await service.get_account(username)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")
    return {"success": True, "data": {"user": user.model_dump(by_alias=True, mode="json")}}


@router.post("/users")
async def create_user(
    body: AdminCreateUserIn,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """
    Create a project-lead or developer account (admin only).

    Error codes:
        - USERNAME_EXISTS: Username already taken
        - CREATE_USER_FAILED: Invalid role (admins cannot be created here) or field
    """
    result = await service.create_user(
        body,
        body.role,
        actor=current_admin.username,
        must_change_password=body.mustChangePassword,
    )
    if not result.success and result.message == "Username already exists.":
        raise HTTPException(status_code=400, detail={"code": "USERNAME_EXISTS", "message": result.message})
    return _unwrap(result, "CREATE_USER_FAILED")


@router.delete("/users/{username}")
async def delete_user(
    username: str,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """
    Delete a user account (admin only). Admin accounts cannot be removed.

    Raises:
        HTTPException (404): If user not found
        HTTPException (400): Deleting self or an admin account
    """
    if username == current_admin.username:
        raise HTTPException(
            status_code=400,
            detail={"code": "CANNOT_DELETE_SELF", "message": "Cannot delete yourself"},
        )
    return _unwrap(await service.remove_user(username, actor=current_admin.username), "DELETE_USER_FAILED")


@router.patch("/users/{username}/role")
async def update_role(
    username: str,
    body: AdminRoleUpdateIn,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """
    Move a user between project-lead and developer (admin only).

    Demoting to developer also revokes super user status; the response
    message says so.
    """
    result = await service.update_user_role(username, body.role, actor=current_admin.username)
    return _unwrap(result, "UPDATE_ROLE_FAILED")


@router.patch("/users/{username}/super-user")
async def update_super_user(
    username: str,
    body: AdminSuperUserIn,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """Grant or revoke developer-tools access for a project lead (admin only)."""
    result = await service.update_user_super_user_status(username, body.isSuperUser, actor=current_admin.username)
    return _unwrap(result, "UPDATE_SUPER_USER_FAILED")


@router.post("/users/{username}/lock")
async def lock_user(
    username: str,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    return _unwrap(await service.lock_user_account(username, actor=current_admin.username), "LOCK_FAILED")


@router.post("/users/{username}/unlock")
async def unlock_user(
    username: str,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """Unlock an account and reset its failed-attempt counter (admin only)."""
    return _unwrap(await service.unlock_user_account(username, actor=current_admin.username), "UNLOCK_FAILED")


@router.post("/users/{username}/reset-password")
async def reset_user_password(
    username: str,
    body: AdminResetPasswordIn,
    current_admin: SanitizedUser = Depends(require_admin),
    service: SessionService = Depends(get_session_service),
):
    """
    Reset a user's password (admin only).

    The account is unlocked and the user must choose a new password at the
    next login. Admin passwords cannot be reset this way.

    Raises:
        HTTPException (404): If user not found
        HTTPException (400): Weak password or admin target (RESET_PASSWORD_FAILED)
    """
    result = await service.reset_user_password(username, body.newPassword, actor=current_admin.username)
    return _unwrap(result, "RESET_PASSWORD_FAILED")


# ==============================================================================
# II. Audit log
#     Prefix: /api/v1/admin/audit-log
# ==============================================================================
@router.get("/audit-log")
async def list_audit_log(
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current: SanitizedUser = Depends(get_current_user),
    audit: AuditSink = Depends(get_audit_sink),
):
    """
    Audit entries, newest first.

    Raises:
        HTTPException (403): Caller may not view the audit log (FORBIDDEN_AUDIT_LOG)
    """
    if not permissions.can_view_audit_log(current.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN_AUDIT_LOG")
    entries = list(reversed(await audit.list_entries()))
    page = entries[offset:offset + limit]
    return {
        "success": True,
        "data": {
            "items": [e.model_dump(by_alias=True, mode="json") for e in page],
            "offset": offset,
            "limit": limit,
            "total": len(entries),
        },
    }
