"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_expiry_seconds -> SESSION_EXPIRY_SECONDS).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. A remote database without a token, or a non-positive session
      lifetime, is a startup failure rather than a runtime surprise.

Database backend selection:
  DATABASE_REMOTE_URL set   -> remote libSQL/Turso backend (SQL over HTTP)
  DATABASE_REMOTE_URL empty -> embedded SQLite file at DATABASE_PATH

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("static_admin.config")

DEFAULT_SESSION_EXPIRY = 7 * 24 * 60 * 60  # 7 days in seconds


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Public origin of the admin panel, used to build password reset links.
    # Empty means "use the origin of the incoming request".
    base_url: str = ""

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_path: str = "static_admin_auth.db"
    database_remote_url: str = ""
    database_remote_auth_token: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_expiry_seconds: int = DEFAULT_SESSION_EXPIRY
    session_cookie: str = "static-admin-session"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # GitHub OAuth (optional -- empty client id means disabled)
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    github_callback_url: str = ""
    github_scopes: list[str] = ["repo"]
    # Restrict OAuth login to users with push access to the content repository.
    github_require_collaborator: bool = True
    github_repo_owner: str = ""
    github_repo_name: str = ""

    # ------------------------------------------------------------------
    # Mail (optional -- empty host means reset tokens are returned inline)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "noreply@static-admin.local"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_backends(self) -> "Settings":
        """Reject configurations that cannot work at runtime."""
        if self.session_expiry_seconds <= 0:
            raise ValueError("SESSION_EXPIRY_SECONDS must be a positive number of seconds.")
        if self.database_remote_url and not self.database_remote_auth_token:
            raise ValueError(
                "DATABASE_REMOTE_AUTH_TOKEN is required when DATABASE_REMOTE_URL is set. "
                "Unset DATABASE_REMOTE_URL to use the embedded SQLite database."
            )
        if self.github_client_id and not (self.github_client_secret and self.github_callback_url):
            logger.warning("GITHUB_CLIENT_ID is set without a secret or callback URL -- GitHub OAuth stays disabled")
        return self

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret and self.github_callback_url)


@dataclass(frozen=True)
class GitHubOAuthConfig:
    """Deployment-level GitHub OAuth settings consumed by auth/github.py."""

    client_id: str
    client_secret: str
    callback_url: str
    scopes: tuple[str, ...] = ("repo",)
    require_collaborator: bool = True
    repo_owner: str = ""
    repo_name: str = ""


@dataclass(frozen=True)
class RemoteDatabaseConfig:
    url: str
    auth_token: str


@dataclass(frozen=True)
class AuthConfig:
    """Constructor input for AuthManager.

    Exactly one of database (embedded SQLite path) or remote must be given.
    """

    database: Optional[str] = None
    remote: Optional[RemoteDatabaseConfig] = None
    session_expiry: int = DEFAULT_SESSION_EXPIRY


def auth_config_from_settings(settings: Settings) -> AuthConfig:
    if settings.database_remote_url:
        return AuthConfig(
            remote=RemoteDatabaseConfig(settings.database_remote_url, settings.database_remote_auth_token),
            session_expiry=settings.session_expiry_seconds,
        )
    return AuthConfig(database=settings.database_path, session_expiry=settings.session_expiry_seconds)


def github_config_from_settings(settings: Settings) -> Optional[GitHubOAuthConfig]:
    """Return the GitHub OAuth config, or None when the provider is not configured."""
    if not settings.github_enabled:
        return None
    return GitHubOAuthConfig(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        callback_url=settings.github_callback_url,
        scopes=tuple(settings.github_scopes) or ("repo",),
        require_collaborator=settings.github_require_collaborator,
        repo_owner=settings.github_repo_owner,
        repo_name=settings.github_repo_name,
    )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
