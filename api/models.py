"""
API request and response models for the admin auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request fields are Optional on purpose: a missing email or password is
answered with the handler's own 400 message ("Email and password are
required") rather than a generic 422, matching what the admin UI displays.

Every successful response is wrapped as {"success": true, "data": ...};
errors as {"success": false, "error": {"code", "message"}}.
"""

from __future__ import annotations

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Session, User, UserPage

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python.

    populate_by_name lets clients (and tests) send either spelling.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(ApiModel):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class LogoutRequest(ApiModel):
    """Optional body for POST /auth/logout. Cookie or Bearer header take precedence."""

    session_id: Optional[str] = None


class SetupRequest(ApiModel):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)


class ForgotPasswordRequest(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(ApiModel):
    token: Optional[str] = None
    password: Optional[str] = Field(default=None, max_length=255)


class ChangePasswordRequest(ApiModel):
    current_password: Optional[str] = Field(default=None, max_length=255)
    new_password: Optional[str] = Field(default=None, max_length=255)


class UserCreate(ApiModel):
    """Request body for POST /api/v1/users. role defaults to editor."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = None


class UserUpdate(ApiModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(ApiModel):
    """Public view of a user. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str]
    role: str
    auth_provider: str
    github_id: Optional[int] = None
    github_username: Optional[str] = None
    github_avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            auth_provider=user.auth_provider,
            github_id=user.github_id,
            github_username=user.github_username,
            github_avatar_url=user.github_avatar_url,
            created_at=user.created_at,
        )


class SessionResponse(ApiModel):
    """Returned by login, setup and the GitHub callback."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    session_id: str
    expires_at: datetime
    redirect_url: Optional[str] = None

    @classmethod
    def build(cls, user: User, session: Session, redirect_url: Optional[str] = None) -> "SessionResponse":
        return cls(
            user=UserResponse.from_user(user),
            session_id=session.id,
            expires_at=session.expires_at,
            redirect_url=redirect_url,
        )


class LogoutResponse(ApiModel):
    logged_out: bool = True


class InstallStatus(ApiModel):
    installed: bool
    needs_setup: bool


class MessageResponse(ApiModel):
    """Generic acknowledgement.

    token is set only when no mail service is configured (development mode);
    preview_url only when the mailer returns one.
    """

    message: str
    token: Optional[str] = None
    preview_url: Optional[str] = None


class ResetTokenStatus(ApiModel):
    valid: bool


class PaginationResponse(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListResponse(ApiModel):
    items: list[UserResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: UserPage) -> "UserListResponse":
        p = page.pagination
        return cls(
            items=[UserResponse.from_user(u) for u in page.items],
            pagination=PaginationResponse(page=p.page, limit=p.limit, total=p.total, total_pages=p.total_pages),
        )


class DeletedResponse(ApiModel):
    deleted: bool = True


class OAuthRedirectResponse(ApiModel):
    redirect_url: str


class GitHubConfigResponse(ApiModel):
    enabled: bool
    client_id: Optional[str] = None
