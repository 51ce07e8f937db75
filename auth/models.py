"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The manager owns the
SQL; these dataclasses own domain shape. Row-to-entity mapping lives next to
the queries in auth/manager.py so the SQL result shape never leaks here.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

ROLES: tuple[str, ...] = ("admin", "editor")


@dataclass
class User:
    """An admin-panel identity.

    The password hash is deliberately absent: it is read only inside the
    manager for verification and never travels with the User view.

    github_* fields are populated only when auth_provider == "github".
    """

    id: int
    email: str
    role: str  # "admin" or "editor"
    name: str | None = None
    auth_provider: str = "password"
    github_id: int | None = None
    github_username: str | None = None
    github_avatar_url: str | None = None
    created_at: datetime | None = None


@dataclass
class Session:
    id: str  # 64 lowercase hex chars
    user_id: int
    expires_at: datetime


@dataclass
class PasswordResetToken:
    """One active token per user; single use; expires one hour after issue.

    email is a snapshot taken at issue time so the reset page can display
    which account the link belongs to.
    """

    token: str
    user_id: int
    email: str
    expires_at: datetime


@dataclass
class OAuthToken:
    """Provider access token held on behalf of a user. Never sent to clients."""

    user_id: int
    provider: str
    access_token: str
    scope: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class OAuthState:
    """Single-use CSRF binder for the OAuth authorization round-trip."""

    state: str
    expires_at: datetime
    redirect_uri: str | None = None


@dataclass
class GitHubUser:
    """Normalized GitHub profile returned by auth/github.py."""

    id: int
    login: str
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None


@dataclass
class GitHubToken:
    access_token: str
    scope: str = ""
    token_type: str = "bearer"


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass
class UserPage:
    items: list[User] = field(default_factory=list)
    pagination: Pagination | None = None


@dataclass
class AuthenticatedSession:
    """Result of login / get_session: the live session and its owner."""

    user: User
    session: Session
