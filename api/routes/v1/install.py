"""
api/routes/v1/install.py -- First-run setup.

Routes:
  GET  /api/v1/install/check  -- {installed, needsSetup}
  POST /api/v1/install/setup  -- create the first admin and log them in

Both are public: before setup there is nobody to authenticate. setup refuses
with 409 once any user exists, so it cannot be used to mint extra admins.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from api.models import ApiResponse, InstallStatus, SessionResponse, SetupRequest
from auth.dependencies import get_auth_manager, set_session_cookie
from auth.errors import ValidationError
from auth.manager import AuthManager

logger = logging.getLogger("static_admin.api.install")

router = APIRouter()


@router.get("/install/check", response_model=ApiResponse[InstallStatus])
def check_install(auth: AuthManager = Depends(get_auth_manager)) -> ApiResponse[InstallStatus]:
    has_users = auth.has_any_users()
    return ApiResponse(data=InstallStatus(installed=has_users, needs_setup=not has_users))


@router.post("/install/setup", response_model=ApiResponse[SessionResponse], status_code=201)
def setup_admin(
    body: SetupRequest,
    response: Response,
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[SessionResponse]:
    """Create the initial admin account and open a session for it.

    The has_any_users() check and the insert are not atomic; two concurrent
    setups with different emails can both succeed. The result is two admins,
    which still satisfies the at-least-one-admin rule.
    """
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    if auth.has_any_users():
        raise HTTPException(
            status_code=409,
            detail={"code": "already_installed", "message": "Admin user already exists"},
        )

    auth.create_user(body.email, body.password, body.name, role="admin")
    logger.info("Initial admin account created")
    result = auth.login(body.email, body.password)

    set_session_cookie(response, result.session)
    response.headers["Cache-Control"] = "no-store"
    return ApiResponse(data=SessionResponse.build(result.user, result.session))
