# pixelforge/api/v1/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, Response, status

from pixelforge.api.v1.deps import get_current_user, get_session_service
from pixelforge.core.security import (
    TOKEN_TYPE_MFA_PENDING,
    create_access_token,
    create_mfa_token,
    decode_access_token,
)
from pixelforge.schemas.auth import (
    LOCKED_MESSAGE,
    USER_NOT_FOUND_MESSAGE,
    ChangePasswordIn,
    LoginRequest,
    MfaCodeIn,
    MfaLoginRequest,
    OperationResult,
    OutcomeStatus,
    ProfileUpdateIn,
    RegisterIn,
    SessionOutcome,
)
from pixelforge.schemas.user import SanitizedUser
from pixelforge.services.sessions import INCORRECT_CURRENT_PASSWORD_MESSAGE, SessionService

router = APIRouter(prefix="/auth", tags=["auth"])

# Outcome -> (HTTP status, error code) for every outcome that does not open a session
_OUTCOME_ERRORS = {
    OutcomeStatus.INVALID: (status.HTTP_401_UNAUTHORIZED, "AUTH_INVALID_CREDENTIALS"),
    OutcomeStatus.LOCKED: (status.HTTP_401_UNAUTHORIZED, "AUTH_ACCOUNT_LOCKED"),
    OutcomeStatus.EXPIRED: (status.HTTP_403_FORBIDDEN, "AUTH_PASSWORD_EXPIRED"),
    OutcomeStatus.MUST_CHANGE_PASSWORD: (status.HTTP_403_FORBIDDEN, "AUTH_PASSWORD_CHANGE_REQUIRED"),
}


def _raise_for_outcome(outcome: SessionOutcome, invalid_code: str = "AUTH_INVALID_CREDENTIALS") -> None:
    http_status, code = _OUTCOME_ERRORS[outcome.status]
    if outcome.status is OutcomeStatus.INVALID:
        code = invalid_code
    raise HTTPException(status_code=http_status, detail={"code": code, "message": outcome.message})


def _open_session(outcome: SessionOutcome, response: Response) -> dict:
    user = outcome.user
    token = create_access_token(user.username, user.role.value)
    response.set_cookie("accessToken", token, httponly=True, secure=False, samesite="lax")
    return {"success": True, "data": {"status": outcome.status.value,
                                      "user": user.model_dump(by_alias=True, mode="json"),
                                      "accessToken": token}}


def _soft_error(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


def _result_data(result: OperationResult) -> dict:
    data = {"message": result.message}
    if result.user is not None:
        data["user"] = result.user.model_dump(by_alias=True, mode="json")
    if result.mfa is not None:
        data.update(result.mfa.model_dump(by_alias=True, mode="json"))
    return {"success": True, "data": data}


@router.post("/register")
async def register(body: RegisterIn, service: SessionService = Depends(get_session_service)):
    """
    Register a new project-lead or developer account.

    Error codes:
        - USERNAME_EXISTS: Username already taken
        - BAD_REQUEST: Invalid role or profile field
    """
    result = await service.create_user(body, body.role, actor=body.username)
    if not result.success:
        code = "USERNAME_EXISTS" if result.message == "Username already exists." else "BAD_REQUEST"
        return _soft_error(code, result.message)
    return _result_data(result)


@router.post("/login")
async def login(payload: LoginRequest, response: Response, service: SessionService = Depends(get_session_service)):
    """
    Authenticate a user.

    Returns:
        - success: the user profile and a JWT access token (also set as the
          HttpOnly "accessToken" cookie)
        - mfa_required: the username and a short-lived `mfaToken` to send to
          /auth/login/mfa together with the authenticator code

    Raises:
        HTTPException (401): Invalid credentials or locked account
        HTTPException (403): Password expired or must be changed
    """
    outcome = await service.check_credentials(payload.username, payload.password)
    if outcome.status is OutcomeStatus.SUCCESS:
        return _open_session(outcome, response)
    if outcome.status is OutcomeStatus.MFA_REQUIRED:
        user = await service.get_user(outcome.username)
        if user is None:
            # Removed between the password check and now
            _raise_for_outcome(SessionOutcome.invalid())
        return {"success": True, "data": {"status": outcome.status.value,
                                          "message": outcome.message,
                                          "username": outcome.username,
                                          "mfaEnabled": True,
                                          "mfaToken": create_mfa_token(outcome.username, user.role.value)}}
    _raise_for_outcome(outcome)


@router.post("/login/mfa")
async def login_mfa(body: MfaLoginRequest, response: Response, service: SessionService = Depends(get_session_service)):
    """
    Complete an MFA login with the pending token and the 6-digit code.

    Raises:
        HTTPException (401): Pending token invalid/expired (AUTH_INVALID_TOKEN),
            wrong code (AUTH_INVALID_MFA_CODE) or locked account
    """
    try:
        payload = decode_access_token(body.mfaToken, expected_type=TOKEN_TYPE_MFA_PENDING)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_INVALID_TOKEN")

    outcome = await service.login_with_mfa(payload["sub"], body.token)
    if outcome.status is OutcomeStatus.SUCCESS:
        return _open_session(outcome, response)
    _raise_for_outcome(outcome, invalid_code="AUTH_INVALID_MFA_CODE")


@router.get("/me")
async def me(user: SanitizedUser = Depends(get_current_user)):
    """
    Get current authenticated user information.
    """
    return {"success": True, "data": user.model_dump(by_alias=True, mode="json", exclude={"is_locked"})}


@router.post("/logout")
async def logout(response: Response):
    """
    Log out the current user by clearing the access token cookie.

    Note:
        The JWT itself stays valid until it expires; requests made with it are
        still refused once the account is locked or removed.
    """
    response.delete_cookie("accessToken")
    return {"success": True}


@router.post("/change-password")
async def change_password(body: ChangePasswordIn, service: SessionService = Depends(get_session_service)):
    """
    Change a password by proving the current one.

    Works without an access token so that users whose password expired (or
    who must replace a temporary password) can complete the flow.

    Error codes:
        - PASSWORD_MISMATCH: newPassword and confirmPassword differ
        - AUTH_INVALID_CREDENTIALS: unknown user or wrong current password
        - AUTH_ACCOUNT_LOCKED / BAD_REQUEST
    """
    if body.confirmPassword is not None and body.confirmPassword != body.newPassword:
        return _soft_error("PASSWORD_MISMATCH", "Passwords do not match.")

    result = await service.update_user_password(body.username, body.currentPassword, body.newPassword)
    if result.success:
        return _result_data(result)
    if result.message in (USER_NOT_FOUND_MESSAGE, INCORRECT_CURRENT_PASSWORD_MESSAGE):
        return _soft_error("AUTH_INVALID_CREDENTIALS", "Incorrect username or current password.")
    if result.message == LOCKED_MESSAGE:
        return _soft_error("AUTH_ACCOUNT_LOCKED", result.message)
    return _soft_error("BAD_REQUEST", result.message)


@router.patch("/profile")
async def update_profile(
    body: ProfileUpdateIn,
    user: SanitizedUser = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Update the caller's display name and email."""
    result = await service.update_user_profile(user.username, body.name, body.email)
    if not result.success:
        return _soft_error("BAD_REQUEST", result.message)
    return _result_data(result)


@router.post("/mfa/setup")
async def mfa_setup(user: SanitizedUser = Depends(get_current_user),
                    service: SessionService = Depends(get_session_service)):
    """
    Start MFA enrollment: returns the secret, the otpauth:// URI and a QR code
    (PNG data URI). MFA is not active until /auth/mfa/confirm succeeds.
    """
    result = await service.setup_mfa(user.username)
    if not result.success:
        return _soft_error("MFA_SETUP_FAILED", result.message)
    return _result_data(result)


@router.post("/mfa/confirm")
async def mfa_confirm(body: MfaCodeIn,
                      user: SanitizedUser = Depends(get_current_user),
                      service: SessionService = Depends(get_session_service)):
    """Finish MFA enrollment with a code from the authenticator app."""
    result = await service.confirm_mfa(user.username, body.token)
    if not result.success:
        return _soft_error("MFA_CONFIRM_FAILED", result.message)
    return _result_data(result)


@router.post("/mfa/disable")
async def mfa_disable(user: SanitizedUser = Depends(get_current_user),
                      service: SessionService = Depends(get_session_service)):
    """Remove MFA from the caller's account (idempotent)."""
    result = await service.disable_mfa(user.username)
    return _result_data(result)
