"""
auth/manager.py -- Auth Manager: users, sessions, password resets, OAuth links.

Pattern: Repository + Data Mapper. AuthManager is the repository for the five
auth tables; the _row_to_* functions are the mappers that turn adapter rows
(plain dicts) into domain dataclasses. Route and dependency code never
touches SQL directly.

The manager is an explicit instance holding its own database adapter -- no
module-level singletons. api/main.py builds one in the lifespan and stores it
on app.state.

Security:
  All queries use bound parameters. The only dynamic SQL is the SET clause of
  update_user, built from a fixed column whitelist.

  login() returns the same InvalidCredentials error for unknown email, wrong
  password and OAuth-only accounts, and always runs a full scrypt
  verification so timing does not reveal which case occurred.

  A successful password reset deletes every session of the user.

Expiry:
  There is no background sweeper. Expired sessions, reset tokens and OAuth
  states are deleted at the start of get_session, create_password_reset_token
  and create_oauth_state respectively; every read filters on expiry, so an
  expired row that is still on disk is never returned.

  Timestamps are ISO-8601 UTC strings with fixed microsecond precision, so
  string comparison in SQL equals chronological comparison.

Schema migration notes:
  Columns added after the first release (role, auth_provider, github_*) are
  added with ALTER TABLE when PRAGMA table_info shows them missing. Adding
  role also promotes the lowest-id user to admin so an upgraded install is
  never left without one.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from auth.adapters import DatabaseAdapter, RemoteAdapterConfig, SqliteAdapterConfig, create_database_adapter
from auth.errors import InvalidCredentials, LastAdminError, NotFoundError, ValidationError
from auth.models import (
    ROLES,
    AuthenticatedSession,
    GitHubUser,
    OAuthState,
    OAuthToken,
    Pagination,
    PasswordResetToken,
    Session,
    User,
    UserPage,
)
from auth.passwords import DUMMY_HASH, generate_session_id, generate_token, hash_password, verify_password
from core.config import DEFAULT_SESSION_EXPIRY, AuthConfig

logger = logging.getLogger("static_admin.auth")

RESET_TOKEN_TTL = timedelta(hours=1)
OAUTH_STATE_TTL = timedelta(minutes=10)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT,
    name TEXT,
    role TEXT DEFAULT 'editor' NOT NULL,
    auth_provider TEXT DEFAULT 'password' NOT NULL,
    github_id INTEGER,
    github_username TEXT,
    github_avatar_url TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    expires_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at);

CREATE TABLE IF NOT EXISTS password_reset_tokens (
    token TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    email TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_password_reset_tokens_user_id ON password_reset_tokens(user_id);
CREATE INDEX IF NOT EXISTS idx_password_reset_tokens_expires_at ON password_reset_tokens(expires_at);

CREATE TABLE IF NOT EXISTS oauth_tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    provider TEXT NOT NULL,
    access_token TEXT NOT NULL,
    scope TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, provider),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_oauth_tokens_user_id ON oauth_tokens(user_id);

CREATE TABLE IF NOT EXISTS oauth_states (
    state TEXT PRIMARY KEY,
    redirect_uri TEXT,
    expires_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_oauth_states_expires_at ON oauth_states(expires_at)
"""

# (column, ALTER statement) -- applied in order when the column is missing.
_USER_MIGRATIONS: list[tuple[str, str]] = [
    ("role", "ALTER TABLE users ADD COLUMN role TEXT DEFAULT 'editor' NOT NULL"),
    ("auth_provider", "ALTER TABLE users ADD COLUMN auth_provider TEXT DEFAULT 'password' NOT NULL"),
    ("github_id", "ALTER TABLE users ADD COLUMN github_id INTEGER"),
    ("github_username", "ALTER TABLE users ADD COLUMN github_username TEXT"),
    ("github_avatar_url", "ALTER TABLE users ADD COLUMN github_avatar_url TEXT"),
]

# Created after the migrations: on an upgraded install github_id only exists
# once its ALTER TABLE has run. NULLs are distinct in a SQLite UNIQUE index,
# so any number of password users can coexist.
_POST_MIGRATION_SCHEMA = "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_github_id ON users(github_id)"

_SELECT_USER = (
    "SELECT id, email, name, role, auth_provider, github_id, github_username, github_avatar_url, created_at FROM users"
)

# Columns update_user may touch. Never extended from request input.
_UPDATABLE_USER_FIELDS: tuple[str, ...] = ("name", "email", "role")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: Any) -> datetime | None:
    """Parse a stored timestamp.

    Rows written before timestamps were set explicitly carry SQLite's
    CURRENT_TIMESTAMP format ("YYYY-MM-DD HH:MM:SS", implicitly UTC). Older
    sessions and tokens may end in "Z" ("2024-01-01T00:00:00.000Z"), which
    fromisoformat() only accepts from Python 3.11.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _adapter_from_config(config: AuthConfig) -> DatabaseAdapter:
    if config.database:
        return create_database_adapter(SqliteAdapterConfig(path=config.database))
    if config.remote is not None:
        return create_database_adapter(RemoteAdapterConfig(url=config.remote.url, auth_token=config.remote.auth_token))
    raise ValueError('Auth config must specify either "database" (SQLite path) or "remote" configuration')


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class AuthManager:
    """Owns the users, sessions, password_reset_tokens, oauth_tokens and
    oauth_states tables.

    Usage:
        manager = AuthManager(AuthConfig(database="auth.db"))
        manager.initialize()
        user = manager.create_user("a@x.com", "secret123")
        result = manager.login("a@x.com", "secret123")
        manager.get_session(result.session.id)
        manager.close()

    adapter and now are injectable for tests: pass a prepared adapter to skip
    config-based construction, and a clock callable to control expiry.
    """

    def __init__(
        self,
        config: AuthConfig | None = None,
        *,
        adapter: DatabaseAdapter | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if adapter is None:
            if config is None:
                raise ValueError('Auth config must specify either "database" (SQLite path) or "remote" configuration')
            adapter = _adapter_from_config(config)
        self.db = adapter
        self.session_expiry = timedelta(seconds=config.session_expiry if config else DEFAULT_SESSION_EXPIRY)
        self._now = now

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create tables and indexes if absent, then run additive migrations.

        Idempotent -- safe to call on every startup.
        """
        self.db.execute(_SCHEMA)

        existing_cols = {row["name"] for row in self.db.query_all("PRAGMA table_info(users)")}
        for column, ddl in _USER_MIGRATIONS:
            if column in existing_cols:
                continue
            logger.info("Migrating users table: adding column %s", column)
            self.db.execute(ddl)
            if column == "role":
                # First user becomes admin for installs that predate roles.
                self.db.run("UPDATE users SET role = 'admin' WHERE id = (SELECT MIN(id) FROM users)")

        self.db.execute(_POST_MIGRATION_SCHEMA)

    def close(self) -> None:
        self.db.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_any_users(self) -> bool:
        row = self.db.query_one("SELECT COUNT(*) AS count FROM users")
        return (row["count"] if row else 0) > 0

    def create_user(self, email: str, password: str, name: str | None = None, role: str = "editor") -> User:
        """Insert a password-authenticated user and return its view.

        Raises sqlalchemy.exc.IntegrityError (or the remote equivalent) if the
        email already exists.
        """
        _check_role(role)
        created_at = self._now()
        result = self.db.run(
            "INSERT INTO users (email, password_hash, name, role, auth_provider, created_at) "
            "VALUES (:email, :password_hash, :name, :role, 'password', :created_at)",
            {
                "email": email,
                "password_hash": hash_password(password),
                "name": name,
                "role": role,
                "created_at": _iso(created_at),
            },
        )
        logger.info("Created user id=%d role=%s", result.last_insert_id, role)
        return User(
            id=result.last_insert_id,
            email=email,
            name=name,
            role=role,
            auth_provider="password",
            created_at=created_at,
        )

    def get_user_by_id(self, user_id: int) -> User | None:
        row = self.db.query_one(_SELECT_USER + " WHERE id = :id", {"id": user_id})
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> User | None:
        """Exact, case-sensitive match on the stored email."""
        row = self.db.query_one(_SELECT_USER + " WHERE email = :email", {"email": email})
        return _row_to_user(row) if row is not None else None

    def get_user_by_github_id(self, github_id: int) -> User | None:
        row = self.db.query_one(_SELECT_USER + " WHERE github_id = :github_id", {"github_id": github_id})
        return _row_to_user(row) if row is not None else None

    def list_users(self, page: int = 1, limit: int = 20) -> UserPage:
        """Return one page of users, newest first."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")
        row = self.db.query_one("SELECT COUNT(*) AS count FROM users")
        total = row["count"] if row else 0
        rows = self.db.query_all(
            _SELECT_USER + " ORDER BY created_at DESC, id DESC LIMIT :limit OFFSET :offset",
            {"limit": limit, "offset": (page - 1) * limit},
        )
        return UserPage(
            items=[_row_to_user(r) for r in rows],
            pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
        )

    def update_user(
        self,
        user_id: int,
        *,
        name: str | None = None,
        email: str | None = None,
        role: str | None = None,
    ) -> User:
        """Apply a partial update. Fields left as None are untouched.

        Demoting the last admin raises LastAdminError before anything is
        written, so a rejected request changes no field at all.
        """
        if role is not None:
            _check_role(role)
        current = self.get_user_by_id(user_id)
        if current is None:
            raise NotFoundError("User not found")

        if role is not None and current.role == "admin" and role != "admin":
            if self.count_users_by_role("admin") <= 1:
                logger.warning("Rejected demotion of last admin user id=%d", user_id)
                raise LastAdminError()

        values = {"name": name, "email": email, "role": role}
        updates = {col: values[col] for col in _UPDATABLE_USER_FIELDS if values[col] is not None}
        if not updates:
            return current

        set_clause = ", ".join(f"{col} = :{col}" for col in updates)
        self.db.run(f"UPDATE users SET {set_clause} WHERE id = :id", {**updates, "id": user_id})  # noqa: S608
        updated = self.get_user_by_id(user_id)
        if updated is None:
            raise NotFoundError("User not found")
        return updated

    def update_password(self, user_id: int, new_password: str) -> None:
        self.db.run(
            "UPDATE users SET password_hash = :password_hash WHERE id = :id",
            {"password_hash": hash_password(new_password), "id": user_id},
        )

    def verify_password(self, user_id: int, password: str) -> bool:
        """Check password against the stored hash of user_id.

        False for unknown users and for accounts without a password.
        """
        row = self.db.query_one("SELECT password_hash FROM users WHERE id = :id", {"id": user_id})
        stored = row["password_hash"] if row else None
        if stored is None:
            verify_password(password, DUMMY_HASH)
            return False
        return verify_password(password, stored)

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and everything hanging off it. True if a user row was removed.

        The manager does not guard against deleting the caller or the last
        admin -- that policy lives in the HTTP layer. Dependent rows are
        deleted explicitly as well as by ON DELETE CASCADE because the remote
        backend may not enforce foreign keys.
        """
        params = {"user_id": user_id}
        self.db.run("DELETE FROM sessions WHERE user_id = :user_id", params)
        self.db.run("DELETE FROM password_reset_tokens WHERE user_id = :user_id", params)
        self.db.run("DELETE FROM oauth_tokens WHERE user_id = :user_id", params)
        result = self.db.run("DELETE FROM users WHERE id = :user_id", params)
        if result.rows_changed:
            logger.info("Deleted user id=%d", user_id)
        return result.rows_changed > 0

    def count_users_by_role(self, role: str) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS count FROM users WHERE role = :role", {"role": role})
        return row["count"] if row else 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthenticatedSession:
        """Verify credentials and open a new session.

        Unknown email, password-less (OAuth-only) account and wrong password
        all raise the same InvalidCredentials.
        """
        row = self.db.query_one(
            "SELECT id, email, password_hash, name, role, auth_provider, github_id, github_username, "
            "github_avatar_url, created_at FROM users WHERE email = :email",
            {"email": email},
        )
        if row is None or row["password_hash"] is None:
            # Equalize timing -- do NOT return before running scrypt
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed: unknown account or no password set")
            raise InvalidCredentials()
        if not verify_password(password, row["password_hash"]):
            logger.info("Login failed: wrong password for user id=%d", row["id"])
            raise InvalidCredentials()

        session = self.create_session_for_user(row["id"])
        return AuthenticatedSession(user=_row_to_user(row), session=session)

    def create_session_for_user(self, user_id: int) -> Session:
        session = Session(id=generate_session_id(), user_id=user_id, expires_at=self._now() + self.session_expiry)
        self.db.run(
            "INSERT INTO sessions (id, user_id, expires_at) VALUES (:id, :user_id, :expires_at)",
            {"id": session.id, "user_id": user_id, "expires_at": _iso(session.expires_at)},
        )
        return session

    def logout(self, session_id: str) -> None:
        """Delete the session. Unknown ids are not an error."""
        self.db.run("DELETE FROM sessions WHERE id = :id", {"id": session_id})

    def get_session(self, session_id: str) -> AuthenticatedSession | None:
        """Per-request authentication check.

        Purges every expired session first, then returns the live session and
        its user, or None.
        """
        now = _iso(self._now())
        purged = self.db.run("DELETE FROM sessions WHERE expires_at <= :now", {"now": now})
        if purged.rows_changed:
            logger.debug("Purged %d expired sessions", purged.rows_changed)
        row = self.db.query_one(
            "SELECT s.id AS session_id, s.expires_at, u.id, u.email, u.name, u.role, u.auth_provider, "
            "u.github_id, u.github_username, u.github_avatar_url, u.created_at "
            "FROM sessions s JOIN users u ON s.user_id = u.id "
            "WHERE s.id = :id AND s.expires_at > :now",
            {"id": session_id, "now": now},
        )
        if row is None:
            return None
        user = _row_to_user(row)
        return AuthenticatedSession(
            user=user,
            session=Session(id=row["session_id"], user_id=user.id, expires_at=_parse_ts(row["expires_at"])),
        )

    def refresh_session(self, session_id: str) -> Session | None:
        """Slide expiry to now + TTL. An already-expired session stays dead."""
        now = self._now()
        expires_at = now + self.session_expiry
        result = self.db.run(
            "UPDATE sessions SET expires_at = :expires_at WHERE id = :id AND expires_at > :now",
            {"expires_at": _iso(expires_at), "id": session_id, "now": _iso(now)},
        )
        if result.rows_changed == 0:
            return None
        row = self.db.query_one("SELECT id, user_id, expires_at FROM sessions WHERE id = :id", {"id": session_id})
        return _row_to_session(row) if row is not None else None

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def create_password_reset_token(self, email: str) -> PasswordResetToken | None:
        """Issue a one-hour reset token for email.

        Returns None when no user has that email. Callers must answer exactly
        as they would on success so the endpoint cannot be used to probe for
        registered addresses.
        """
        now = self._now()
        self.db.run("DELETE FROM password_reset_tokens WHERE expires_at <= :now", {"now": _iso(now)})

        user = self.get_user_by_email(email)
        if user is None:
            return None

        # One active token per user
        self.db.run("DELETE FROM password_reset_tokens WHERE user_id = :user_id", {"user_id": user.id})

        reset = PasswordResetToken(token=generate_token(), user_id=user.id, email=email, expires_at=now + RESET_TOKEN_TTL)
        self.db.run(
            "INSERT INTO password_reset_tokens (token, user_id, email, expires_at) "
            "VALUES (:token, :user_id, :email, :expires_at)",
            {"token": reset.token, "user_id": user.id, "email": email, "expires_at": _iso(reset.expires_at)},
        )
        logger.info("Issued password reset token for user id=%d", user.id)
        return reset

    def validate_password_reset_token(self, token: str) -> PasswordResetToken | None:
        """Return the token if it exists and is unexpired. Does not consume it."""
        row = self.db.query_one(
            "SELECT token, user_id, email, expires_at FROM password_reset_tokens "
            "WHERE token = :token AND expires_at > :now",
            {"token": token, "now": _iso(self._now())},
        )
        return _row_to_reset_token(row) if row is not None else None

    def reset_password_with_token(self, token: str, new_password: str) -> bool:
        """Consume token and set the new password. False if the token is invalid or expired.

        On success the token is deleted and every session of the user is
        revoked, forcing re-login everywhere.
        """
        reset = self.validate_password_reset_token(token)
        if reset is None:
            return False

        self.update_password(reset.user_id, new_password)
        self.db.run("DELETE FROM password_reset_tokens WHERE token = :token", {"token": token})
        self.db.run("DELETE FROM sessions WHERE user_id = :user_id", {"user_id": reset.user_id})
        logger.info("Password reset completed for user id=%d; all sessions revoked", reset.user_id)
        return True

    # ------------------------------------------------------------------
    # OAuth accounts
    # ------------------------------------------------------------------

    def find_or_create_github_user(self, github_user: GitHubUser, role: str = "editor") -> User:
        """Return the local user linked to github_user, creating or linking one if needed.

        Lookup order:
          1. github_id match -- refresh username, avatar and (if GitHub has one) name.
          2. email match on an unlinked account -- link it; the account keeps
             its password and auth_provider.
          3. otherwise create a github-provider user with no password.

        role applies only to newly created users.
        """
        _check_role(role)
        existing = self.get_user_by_github_id(github_user.id)
        if existing is not None:
            self.db.run(
                "UPDATE users SET github_username = :login, github_avatar_url = :avatar_url, "
                "name = COALESCE(:name, name) WHERE id = :id",
                {
                    "login": github_user.login,
                    "avatar_url": github_user.avatar_url,
                    "name": github_user.name,
                    "id": existing.id,
                },
            )
            return self.get_user_by_id(existing.id) or existing

        if github_user.email:
            by_email = self.get_user_by_email(github_user.email)
            if by_email is not None and by_email.github_id is None:
                self.db.run(
                    "UPDATE users SET github_id = :github_id, github_username = :login, "
                    "github_avatar_url = :avatar_url WHERE id = :id",
                    {
                        "github_id": github_user.id,
                        "login": github_user.login,
                        "avatar_url": github_user.avatar_url,
                        "id": by_email.id,
                    },
                )
                logger.info("Linked GitHub account %s to user id=%d", github_user.login, by_email.id)
                return self.get_user_by_id(by_email.id) or by_email

        email = github_user.email or f"{github_user.login}@users.noreply.github.com"
        created_at = self._now()
        result = self.db.run(
            "INSERT INTO users (email, password_hash, name, role, auth_provider, github_id, github_username, "
            "github_avatar_url, created_at) VALUES (:email, NULL, :name, :role, 'github', :github_id, :login, "
            ":avatar_url, :created_at)",
            {
                "email": email,
                "name": github_user.name,
                "role": role,
                "github_id": github_user.id,
                "login": github_user.login,
                "avatar_url": github_user.avatar_url,
                "created_at": _iso(created_at),
            },
        )
        logger.info("Created GitHub user %s id=%d role=%s", github_user.login, result.last_insert_id, role)
        return User(
            id=result.last_insert_id,
            email=email,
            name=github_user.name,
            role=role,
            auth_provider="github",
            github_id=github_user.id,
            github_username=github_user.login,
            github_avatar_url=github_user.avatar_url,
            created_at=created_at,
        )

    def store_oauth_token(self, user_id: int, provider: str, access_token: str, scope: str | None = None) -> None:
        """Insert or replace the (user_id, provider) access token."""
        now = _iso(self._now())
        self.db.run(
            "INSERT INTO oauth_tokens (user_id, provider, access_token, scope, created_at, updated_at) "
            "VALUES (:user_id, :provider, :access_token, :scope, :now, :now) "
            "ON CONFLICT (user_id, provider) DO UPDATE SET "
            "access_token = excluded.access_token, scope = excluded.scope, updated_at = excluded.updated_at",
            {"user_id": user_id, "provider": provider, "access_token": access_token, "scope": scope, "now": now},
        )

    def get_oauth_token(self, user_id: int, provider: str) -> OAuthToken | None:
        row = self.db.query_one(
            "SELECT user_id, provider, access_token, scope, created_at, updated_at FROM oauth_tokens "
            "WHERE user_id = :user_id AND provider = :provider",
            {"user_id": user_id, "provider": provider},
        )
        return _row_to_oauth_token(row) if row is not None else None

    def delete_oauth_token(self, user_id: int, provider: str) -> None:
        self.db.run(
            "DELETE FROM oauth_tokens WHERE user_id = :user_id AND provider = :provider",
            {"user_id": user_id, "provider": provider},
        )

    def create_oauth_state(self, redirect_uri: str | None = None) -> str:
        """Issue a ten-minute, single-use CSRF state for the OAuth round-trip."""
        now = self._now()
        self.db.run("DELETE FROM oauth_states WHERE expires_at <= :now", {"now": _iso(now)})
        state = generate_token()
        self.db.run(
            "INSERT INTO oauth_states (state, redirect_uri, expires_at) VALUES (:state, :redirect_uri, :expires_at)",
            {"state": state, "redirect_uri": redirect_uri, "expires_at": _iso(now + OAUTH_STATE_TTL)},
        )
        return state

    def validate_oauth_state(self, state: str) -> OAuthState | None:
        """Consume state. The row is deleted whether or not it is still valid."""
        row = self.db.query_one(
            "SELECT state, redirect_uri, expires_at FROM oauth_states WHERE state = :state", {"state": state}
        )
        self.db.run("DELETE FROM oauth_states WHERE state = :state", {"state": state})
        if row is None:
            return None
        oauth_state = _row_to_oauth_state(row)
        if oauth_state.expires_at <= self._now():
            return None
        return oauth_state


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValidationError("Invalid role. Must be admin or editor")


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row.get("name"),
        role=row["role"],
        auth_provider=row.get("auth_provider") or "password",
        github_id=row.get("github_id"),
        github_username=row.get("github_username"),
        github_avatar_url=row.get("github_avatar_url"),
        created_at=_parse_ts(row.get("created_at")),
    )


def _row_to_session(row: dict[str, Any]) -> Session:
    return Session(id=row["id"], user_id=row["user_id"], expires_at=_parse_ts(row["expires_at"]))


def _row_to_reset_token(row: dict[str, Any]) -> PasswordResetToken:
    return PasswordResetToken(
        token=row["token"],
        user_id=row["user_id"],
        email=row["email"],
        expires_at=_parse_ts(row["expires_at"]),
    )


def _row_to_oauth_token(row: dict[str, Any]) -> OAuthToken:
    return OAuthToken(
        user_id=row["user_id"],
        provider=row["provider"],
        access_token=row["access_token"],
        scope=row.get("scope"),
        created_at=_parse_ts(row.get("created_at")),
        updated_at=_parse_ts(row.get("updated_at")),
    )


def _row_to_oauth_state(row: dict[str, Any]) -> OAuthState:
    return OAuthState(
        state=row["state"],
        redirect_uri=row.get("redirect_uri"),
        expires_at=_parse_ts(row["expires_at"]),
    )
