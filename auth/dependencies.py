"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session id is looked up in priority order:
  1. Session cookie (name from Settings.session_cookie) -- set by the admin UI login.
  2. Authorization: Bearer <session id> header -- API clients and scripts.

Both converge on AuthManager.get_session(), which also purges expired
sessions, so an expired id is indistinguishable from an unknown one. A live
session slides forward (AuthManager.refresh_session) on every authenticated
request; when the id came from the cookie, the cookie is re-issued with the
new expiry.

try_get_current_session() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.
set_session_cookie()/clear_session_cookie() are the only writers of the cookie.

auth/dependencies.py may import from fastapi because it is part of the
FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, Response

from auth.mail import MailService
from auth.manager import AuthManager
from auth.models import AuthenticatedSession, Session, User
from core.config import get_settings


def get_auth_manager(request: Request) -> AuthManager:
    return request.app.state.auth


def get_mail_service(request: Request) -> MailService | None:
    """The configured mail service, or None when SMTP is not set up."""
    return request.app.state.mail


def session_id_from_request(request: Request) -> str | None:
    session_id = request.cookies.get(get_settings().session_cookie)
    if session_id:
        return session_id
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_session(request: Request) -> AuthenticatedSession | None:
    """Return the live session for this request, or None. Never raises on bad ids."""
    session_id = session_id_from_request(request)
    if not session_id:
        return None
    auth = get_auth_manager(request)
    current = auth.get_session(session_id)
    if current is None:
        return None
    refreshed = auth.refresh_session(session_id)
    if refreshed is not None:
        current.session = refreshed
    return current


def get_current_user(request: Request, response: Response) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    current = try_get_current_session(request)
    if current is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Not authenticated"},
        )
    if request.cookies.get(get_settings().session_cookie) == current.session.id:
        set_session_cookie(response, current.session)
    return current.user


def require_admin(request: Request, response: Response) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request, response)
    if user.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Forbidden: Admin access required"},
        )
    return user


def set_session_cookie(response: Response, session: Session) -> None:
    """Write the session id as an httpOnly cookie that expires with the session.

    samesite="lax" keeps the cookie off cross-site POSTs. secure follows
    SECURE_COOKIES so local HTTP development still works.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie,
        value=session.id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        expires=session.expires_at,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(get_settings().session_cookie, path="/")
