"""
api/routes/v1/auth.py -- Password login, sessions and password reset endpoints.

Routes:
  POST /api/v1/auth/login                  -- password login; sets session cookie
  POST /api/v1/auth/logout                 -- deletes the session; clears cookie
  GET  /api/v1/auth/me                     -- current user (requires auth)
  POST /api/v1/auth/forgot-password        -- issue a reset token and mail the link
  GET  /api/v1/auth/reset-password/{token} -- is this reset token still usable?
  POST /api/v1/auth/reset-password         -- consume a reset token, set new password
  POST /api/v1/auth/change-password        -- change own password (requires auth)

Security:
  Login failures share one message whatever the cause (AuthManager.login).
  forgot-password answers identically whether or not the email is registered.
  Cache-Control: no-store on every response that carries a session id.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import (
    ApiResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    MessageResponse,
    ResetPasswordRequest,
    ResetTokenStatus,
    SessionResponse,
    UserResponse,
)
from auth.dependencies import (
    clear_session_cookie,
    get_auth_manager,
    get_current_user,
    get_mail_service,
    session_id_from_request,
    set_session_cookie,
)
from auth.errors import ValidationError
from auth.mail import MailService
from auth.manager import AuthManager
from auth.models import User
from core.config import get_settings

logger = logging.getLogger("static_admin.api.auth")

MIN_PASSWORD_LENGTH = 8

RESET_REQUESTED_MESSAGE = "If the email exists, a reset link has been sent"

# Auth policy:
# - POST /auth/login, /auth/logout, /auth/forgot-password, /auth/reset-password: public
# - GET  /auth/reset-password/{token}: public
# - GET  /auth/me, POST /auth/change-password: requires auth (get_current_user)
router = APIRouter()


def _base_url(request: Request) -> str:
    return get_settings().base_url.rstrip("/") or str(request.base_url).rstrip("/")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=ApiResponse[SessionResponse])
def login(
    body: LoginRequest,
    response: Response,
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[SessionResponse]:
    """Verify email and password and open a session.

    401 invalid_credentials for unknown email, wrong password and
    GitHub-only accounts alike.
    """
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    result = auth.login(body.email, body.password)
    set_session_cookie(response, result.session)
    response.headers["Cache-Control"] = "no-store"
    return ApiResponse(data=SessionResponse.build(result.user, result.session))


@router.post("/auth/logout", response_model=ApiResponse[LogoutResponse])
def logout(
    request: Request,
    response: Response,
    body: Optional[LogoutRequest] = None,
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[LogoutResponse]:
    """Delete the caller's session. Succeeds even when there is nothing to delete."""
    session_id = session_id_from_request(request) or (body.session_id if body else None)
    if session_id:
        auth.logout(session_id)
    clear_session_cookie(response)
    return ApiResponse(data=LogoutResponse())


@router.get("/auth/me", response_model=ApiResponse[UserResponse])
def me(current_user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.from_user(current_user))


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post(
    "/auth/forgot-password",
    response_model=ApiResponse[MessageResponse],
    response_model_exclude_none=True,
)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    auth: AuthManager = Depends(get_auth_manager),
    mail: Optional[MailService] = Depends(get_mail_service),
) -> ApiResponse[MessageResponse]:
    """Issue a one-hour reset token and mail the link.

    Without a mail service (SMTP_HOST unset) the raw token is returned in the
    response instead so local setups can finish the flow.
    """
    if not body.email:
        raise ValidationError("Email is required")

    reset = auth.create_password_reset_token(body.email)
    if reset is None:
        return ApiResponse(data=MessageResponse(message=RESET_REQUESTED_MESSAGE))

    if mail is None:
        return ApiResponse(data=MessageResponse(message=RESET_REQUESTED_MESSAGE, token=reset.token))

    reset_url = f"{_base_url(request)}/reset-password?token={reset.token}"
    sent = mail.send_password_reset_email(body.email, reset_url)
    return ApiResponse(data=MessageResponse(message=RESET_REQUESTED_MESSAGE, preview_url=sent.preview_url))


@router.get("/auth/reset-password/{token}", response_model=ApiResponse[ResetTokenStatus])
def check_reset_token(token: str, auth: AuthManager = Depends(get_auth_manager)) -> ApiResponse[ResetTokenStatus]:
    """Read-only check used by the reset form before asking for a new password."""
    return ApiResponse(data=ResetTokenStatus(valid=auth.validate_password_reset_token(token) is not None))


@router.post("/auth/reset-password", response_model=ApiResponse[MessageResponse], response_model_exclude_none=True)
def reset_password(
    body: ResetPasswordRequest,
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[MessageResponse]:
    """Consume a reset token. Every session of the user is revoked on success."""
    if not body.token or not body.password:
        raise ValidationError("Token and password are required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")

    if not auth.reset_password_with_token(body.token, body.password):
        raise ValidationError("Invalid or expired reset token", code="invalid_token")
    return ApiResponse(data=MessageResponse(message="Password has been reset successfully"))


@router.post("/auth/change-password", response_model=ApiResponse[MessageResponse], response_model_exclude_none=True)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[MessageResponse]:
    """Change the caller's own password after re-checking the current one."""
    if not body.current_password or not body.new_password:
        raise ValidationError("Current password and new password are required")
    if len(body.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("New password must be at least 8 characters")
    if body.current_password == body.new_password:
        raise ValidationError("New password must be different from current password")
    if current_user.auth_provider == "github":
        raise ValidationError("Password change is not available for GitHub OAuth users")

    if not auth.verify_password(current_user.id, body.current_password):
        logger.info("Password change rejected: wrong current password for user id=%d", current_user.id)
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_password", "message": "Current password is incorrect"},
        )

    auth.update_password(current_user.id, body.new_password)
    return ApiResponse(data=MessageResponse(message="Password has been changed successfully"))
