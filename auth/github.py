"""
auth/github.py -- GitHub OAuth client: authorize URL, code exchange, profile
and collaborator lookups.

Flow driven by api/routes/v1/github.py:
  state issued -> user authorizes on github.com -> callback with code ->
  exchange_code_for_token -> fetch_github_user -> (check_collaborator_access)
  -> AuthManager links the account and opens a session.

Failures talking to GitHub raise ProviderError carrying GitHub's own error
text when it sent one. Two lookups are deliberately lenient:
  - the /user/emails fallback: a failure leaves the email as None
  - the repository-permission fallback in check_collaborator_access: a
    failure means "no access"

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import requests

from auth.errors import ProviderError
from auth.models import GitHubToken, GitHubUser
from core.config import GitHubOAuthConfig

logger = logging.getLogger("static_admin.auth.github")

GITHUB_API_URL = "https://api.github.com"
GITHUB_OAUTH_URL = "https://github.com/login/oauth"

_TIMEOUT = 10

# Module-level session shared across all GitHub calls for connection pooling.
# GitHub's API does not redirect across hosts; 3 hops is generous.
_session = requests.Session()
_session.max_redirects = 3


def _api_headers(access_token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def _json_body(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as e:
        raise ProviderError(f"Invalid response from GitHub: {resp.status_code}") from e
    if not isinstance(data, dict):
        raise ProviderError(f"Invalid response from GitHub: {resp.status_code}")
    return data


def build_authorization_url(config: GitHubOAuthConfig, state: str) -> str:
    """Return the github.com authorize URL the browser is redirected to."""
    scopes = config.scopes or ("repo",)
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.callback_url,
        "scope": " ".join(scopes),
        "state": state,
    }
    return f"{GITHUB_OAUTH_URL}/authorize?{urlencode(params)}"


def exchange_code_for_token(config: GitHubOAuthConfig, code: str) -> GitHubToken:
    """Trade the callback code for an access token.

    GitHub answers 200 even for a bad code and reports the problem in an
    "error" field, so both the status and the body are checked.
    """
    try:
        resp = _session.post(
            f"{GITHUB_OAUTH_URL}/access_token",
            json={
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "code": code,
                "redirect_uri": config.callback_url,
            },
            headers={"Accept": "application/json"},
            timeout=_TIMEOUT,
        )
    except requests.RequestException as e:
        raise ProviderError(f"Failed to reach GitHub: {e}") from e

    if not resp.ok:
        raise ProviderError(f"Failed to exchange code for token: {resp.status_code}")

    data: dict[str, Any] = _json_body(resp)
    if data.get("error"):
        raise ProviderError(f"GitHub OAuth error: {data.get('error_description') or data['error']}")
    if not data.get("access_token"):
        raise ProviderError("GitHub OAuth error: no access token in response")

    return GitHubToken(
        access_token=data["access_token"],
        scope=data.get("scope", ""),
        token_type=data.get("token_type", "bearer"),
    )


def fetch_github_user(access_token: str) -> GitHubUser:
    """Fetch the authenticated user's profile.

    Users with a private email have email=null on /user. In that case
    /user/emails is consulted: primary+verified first, then any verified
    address, else None.
    """
    try:
        resp = _session.get(f"{GITHUB_API_URL}/user", headers=_api_headers(access_token), timeout=_TIMEOUT)
    except requests.RequestException as e:
        raise ProviderError(f"Failed to reach GitHub: {e}") from e
    if not resp.ok:
        raise ProviderError(f"Failed to fetch GitHub user: {resp.status_code}")

    data: dict[str, Any] = _json_body(resp)
    email = data.get("email") or _fetch_verified_email(access_token)

    return GitHubUser(
        id=int(data["id"]),
        login=data["login"],
        email=email,
        name=data.get("name"),
        avatar_url=data.get("avatar_url"),
    )


def _fetch_verified_email(access_token: str) -> str | None:
    try:
        resp = _session.get(f"{GITHUB_API_URL}/user/emails", headers=_api_headers(access_token), timeout=_TIMEOUT)
        if not resp.ok:
            return None
        emails = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("GitHub email lookup failed: %s", e)
        return None

    primary = next((e for e in emails if e.get("primary") and e.get("verified")), None)
    if primary is not None:
        return primary.get("email")
    verified = next((e for e in emails if e.get("verified")), None)
    return verified.get("email") if verified is not None else None


def is_repo_collaborator(access_token: str, owner: str, repo: str, username: str) -> bool:
    """204 = collaborator; 404 = not; 403 = not allowed to ask, treated as not."""
    try:
        resp = _session.get(
            f"{GITHUB_API_URL}/repos/{owner}/{repo}/collaborators/{username}",
            headers=_api_headers(access_token),
            timeout=_TIMEOUT,
        )
    except requests.RequestException as e:
        raise ProviderError(f"Failed to reach GitHub: {e}") from e
    return resp.status_code == 204


def check_collaborator_access(access_token: str, owner: str, repo: str, username: str) -> bool:
    """Return True if username may push to owner/repo.

    Falls back to the repository's permissions.push flag, which GitHub
    computes for the token's own identity, when the collaborator endpoint
    says no (it answers 403 to users who cannot list collaborators).
    """
    if is_repo_collaborator(access_token, owner, repo, username):
        return True

    try:
        resp = _session.get(
            f"{GITHUB_API_URL}/repos/{owner}/{repo}", headers=_api_headers(access_token), timeout=_TIMEOUT
        )
        if resp.ok:
            return (resp.json().get("permissions") or {}).get("push") is True
    except (requests.RequestException, ValueError) as e:
        logger.warning("GitHub repository permission lookup failed for %s/%s: %s", owner, repo, e)
    return False
