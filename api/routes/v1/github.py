"""
api/routes/v1/github.py -- GitHub OAuth login.

Routes:
  GET /api/v1/auth/github           -- issue state, return the github.com authorize URL
  GET /api/v1/auth/github/callback  -- finish the round-trip and open a session
  GET /api/v1/auth/github/config    -- {enabled, clientId} for the login page

Callback order:
  provider error query -> code/state present -> state consumed (single use)
  -> code exchanged -> profile fetched -> collaborator check (if required)
  -> user found/linked/created -> token stored -> session opened

The very first account created through GitHub on an empty install becomes
admin; every later one is an editor.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import ApiResponse, GitHubConfigResponse, OAuthRedirectResponse, SessionResponse
from auth import github
from auth.dependencies import get_auth_manager, set_session_cookie
from auth.errors import ProviderError
from auth.manager import AuthManager
from core.config import GitHubOAuthConfig

logger = logging.getLogger("static_admin.api.github")

router = APIRouter()


def _callback_error(code: str, message: str, status_code: int = 400) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def get_github_config(request: Request) -> GitHubOAuthConfig:
    """Dependency: the configured GitHub OAuth settings, or 404 when disabled."""
    config: Optional[GitHubOAuthConfig] = request.app.state.github_config
    if config is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_configured", "message": "GitHub OAuth is not configured"},
        )
    return config


@router.get("/auth/github", response_model=ApiResponse[OAuthRedirectResponse])
def initiate_oauth(
    redirect: Optional[str] = None,
    config: GitHubOAuthConfig = Depends(get_github_config),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[OAuthRedirectResponse]:
    """redirect, if given, is handed back by the callback once login succeeds."""
    state = auth.create_oauth_state(redirect)
    return ApiResponse(data=OAuthRedirectResponse(redirect_url=github.build_authorization_url(config, state)))


@router.get("/auth/github/callback", response_model=ApiResponse[SessionResponse])
def oauth_callback(
    response: Response,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    config: GitHubOAuthConfig = Depends(get_github_config),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[SessionResponse]:
    if error:
        raise _callback_error("oauth_error", f"GitHub OAuth error: {error_description or error}")
    if not code:
        raise _callback_error("missing_code", "Missing authorization code")
    if not state:
        raise _callback_error("missing_state", "Missing state parameter")

    oauth_state = auth.validate_oauth_state(state)
    if oauth_state is None:
        raise _callback_error("invalid_state", "Invalid or expired state")

    try:
        token = github.exchange_code_for_token(config, code)
        github_user = github.fetch_github_user(token.access_token)

        if config.require_collaborator:
            if not (config.repo_owner and config.repo_name):
                raise _callback_error(
                    "not_configured",
                    "GitHub OAuth requires GITHUB_REPO_OWNER and GITHUB_REPO_NAME for collaborator verification",
                )
            if not github.check_collaborator_access(
                token.access_token, config.repo_owner, config.repo_name, github_user.login
            ):
                logger.warning(
                    "OAuth login rejected: %s is not a collaborator of %s/%s",
                    github_user.login,
                    config.repo_owner,
                    config.repo_name,
                )
                raise _callback_error(
                    "not_collaborator",
                    f"User {github_user.login} is not a collaborator of {config.repo_owner}/{config.repo_name}",
                    status_code=403,
                )
    except ProviderError as e:
        logger.warning("GitHub OAuth callback failed: %s", e.message)
        raise _callback_error(e.code, e.message) from e

    role = "editor" if auth.has_any_users() else "admin"
    user = auth.find_or_create_github_user(github_user, role=role)
    auth.store_oauth_token(user.id, "github", token.access_token, token.scope)
    session = auth.create_session_for_user(user.id)
    logger.info("GitHub login for user id=%d (%s)", user.id, github_user.login)

    set_session_cookie(response, session)
    response.headers["Cache-Control"] = "no-store"
    return ApiResponse(data=SessionResponse.build(user, session, redirect_url=oauth_state.redirect_uri))


@router.get("/auth/github/config", response_model=ApiResponse[GitHubConfigResponse])
def get_config(request: Request) -> ApiResponse[GitHubConfigResponse]:
    """Public: the login page uses this to decide whether to show the GitHub button."""
    config: Optional[GitHubOAuthConfig] = request.app.state.github_config
    return ApiResponse(
        data=GitHubConfigResponse(enabled=config is not None, client_id=config.client_id if config else None)
    )
