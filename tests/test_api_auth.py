"""
tests/test_api_auth.py -- Integration tests for install, login/session and
password endpoints.

These tests exercise the full stack: FastAPI routing -> session dependency
-> AuthManager -> SQLite -> response envelope serialization.

Fixtures used (from conftest.py):
  - api_client:   (client, manager) on an empty install
  - admin_client: (client, manager) after setup; client holds the admin cookie
"""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from auth.mail import MailResult

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"

COOKIE = "static-admin-session"


def _error(resp) -> dict:
    body = resp.json()
    assert body["success"] is False
    return body["error"]


# ---------------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------------


class TestInstall:
    def test_check_on_empty_install(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/install/check")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "data": {"installed": False, "needsSetup": True}}

    def test_setup_creates_admin_and_logs_in(self, api_client) -> None:
        client, manager = api_client
        resp = client.post("/api/v1/install/setup", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["user"]["role"] == "admin"
        assert data["user"]["email"] == ADMIN_EMAIL
        assert "passwordHash" not in data["user"]
        assert len(data["sessionId"]) == 64
        assert resp.cookies.get(COOKIE) == data["sessionId"]
        assert resp.headers["Cache-Control"] == "no-store"
        assert manager.get_session(data["sessionId"]) is not None

        check = client.get("/api/v1/install/check").json()["data"]
        assert check == {"installed": True, "needsSetup": False}

    def test_setup_refused_once_installed(self, admin_client) -> None:
        client, manager = admin_client
        resp = client.post("/api/v1/install/setup", json={"email": "evil@example.com", "password": "password123"})
        assert resp.status_code == 409
        assert _error(resp)["message"] == "Admin user already exists"
        assert manager.get_user_by_email("evil@example.com") is None

    def test_setup_requires_email_and_password(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/install/setup", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Email and password are required"


# ---------------------------------------------------------------------------
# Login / logout / me
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_sets_cookie(self, admin_client) -> None:
        client, _ = admin_client
        client.cookies.clear()
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert resp.cookies.get(COOKIE) == data["sessionId"]
        assert "expiresAt" in data
        assert resp.headers["Cache-Control"] == "no-store"

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_wrong_password_and_unknown_email_look_the_same(self, admin_client) -> None:
        client, _ = admin_client
        wrong = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "nope-nope"})
        unknown = client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "nope-nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert _error(wrong) == _error(unknown) == {
            "code": "invalid_credentials",
            "message": "Invalid email or password",
        }

    def test_missing_fields(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Email and password are required"

    def test_me_with_cookie(self, admin_client) -> None:
        client, _ = admin_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == ADMIN_EMAIL

    def test_me_with_bearer(self, admin_client) -> None:
        client, manager = admin_client
        sid = manager.login(ADMIN_EMAIL, ADMIN_PASSWORD).session.id
        client.cookies.clear()
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {sid}"})
        assert resp.status_code == 200

    def test_me_unauthenticated(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert _error(resp) == {"code": "unauthorized", "message": "Not authenticated"}

    def test_expired_session_is_rejected(self, admin_client, clock) -> None:
        client, _ = admin_client
        clock.advance(days=8)
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_active_bearer_session_slides_forward(self, admin_client, clock) -> None:
        client, manager = admin_client
        sid = manager.login(ADMIN_EMAIL, ADMIN_PASSWORD).session.id
        client.cookies.clear()
        headers = {"Authorization": f"Bearer {sid}"}
        clock.advance(days=6)
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
        clock.advance(days=2)
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
        assert "set-cookie" not in client.get("/api/v1/auth/me", headers=headers).headers

    def test_active_cookie_session_is_reissued(self, admin_client, clock) -> None:
        client, manager = admin_client
        sid = client.cookies.get(COOKIE)
        clock.advance(days=6)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.cookies.get(COOKIE) == sid
        assert manager.get_session(sid).session.expires_at == clock() + manager.session_expiry
        clock.advance(days=2)
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_logout_deletes_session(self, admin_client) -> None:
        client, manager = admin_client
        sid = client.cookies.get(COOKIE)
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"loggedOut": True}
        assert manager.get_session(sid) is None
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_logout_with_session_id_in_body(self, admin_client) -> None:
        client, manager = admin_client
        sid = manager.login(ADMIN_EMAIL, ADMIN_PASSWORD).session.id
        client.cookies.clear()
        resp = client.post("/api/v1/auth/logout", json={"sessionId": sid})
        assert resp.status_code == 200
        assert manager.get_session(sid) is None

    def test_logout_without_session_succeeds(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["data"]["loggedOut"] is True


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestForgotPassword:
    def test_unknown_email_gets_generic_answer(self, admin_client) -> None:
        client, _ = admin_client
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert resp.json()["data"] == {"message": "If the email exists, a reset link has been sent"}

    def test_dev_mode_returns_token(self, admin_client) -> None:
        client, manager = admin_client
        resp = client.post("/api/v1/auth/forgot-password", json={"email": ADMIN_EMAIL})
        token = resp.json()["data"]["token"]
        assert manager.validate_password_reset_token(token) is not None

    def test_mail_service_sends_link(self, admin_client) -> None:
        client, manager = admin_client
        mail = MagicMock()
        mail.send_password_reset_email.return_value = MailResult(message_id="<1@x>", preview_url="https://preview/1")
        client.app.state.mail = mail

        resp = client.post("/api/v1/auth/forgot-password", json={"email": ADMIN_EMAIL})
        data = resp.json()["data"]
        assert "token" not in data
        assert data["previewUrl"] == "https://preview/1"

        token = manager.db.query_one("SELECT token FROM password_reset_tokens")["token"]
        mail.send_password_reset_email.assert_called_once_with(
            ADMIN_EMAIL, f"http://testserver/reset-password?token={token}"
        )

    def test_missing_email(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/forgot-password", json={})
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Email is required"


class TestResetPassword:
    def _token(self, client: TestClient) -> str:
        return client.post("/api/v1/auth/forgot-password", json={"email": ADMIN_EMAIL}).json()["data"]["token"]

    def test_full_reset_flow(self, admin_client) -> None:
        client, manager = admin_client
        old_sid = client.cookies.get(COOKIE)
        token = self._token(client)

        assert client.get(f"/api/v1/auth/reset-password/{token}").json()["data"] == {"valid": True}

        resp = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "brandnew123"})
        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Password has been reset successfully"

        assert manager.get_session(old_sid) is None
        assert client.get(f"/api/v1/auth/reset-password/{token}").json()["data"] == {"valid": False}
        client.cookies.clear()
        login = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "brandnew123"})
        assert login.status_code == 200

    def test_invalid_token(self, admin_client) -> None:
        client, _ = admin_client
        resp = client.post("/api/v1/auth/reset-password", json={"token": "bogus", "password": "brandnew123"})
        assert resp.status_code == 400
        assert _error(resp) == {"code": "invalid_token", "message": "Invalid or expired reset token"}

    def test_short_password(self, admin_client) -> None:
        client, _ = admin_client
        token = self._token(client)
        resp = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "short"})
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Password must be at least 8 characters"

    def test_missing_fields(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/reset-password", json={"password": "brandnew123"})
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Token and password are required"


# ---------------------------------------------------------------------------
# Change password
# ---------------------------------------------------------------------------


class TestChangePassword:
    URL = "/api/v1/auth/change-password"

    def test_success(self, admin_client) -> None:
        client, manager = admin_client
        resp = client.post(self.URL, json={"currentPassword": ADMIN_PASSWORD, "newPassword": "changed123"})
        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Password has been changed successfully"
        assert manager.login(ADMIN_EMAIL, "changed123") is not None

    def test_requires_auth(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(self.URL, json={"currentPassword": "a" * 8, "newPassword": "b" * 8})
        assert resp.status_code == 401

    def test_validation_order(self, admin_client) -> None:
        client, _ = admin_client
        cases = [
            ({"newPassword": "changed123"}, "Current password and new password are required"),
            ({"currentPassword": ADMIN_PASSWORD, "newPassword": "short"}, "New password must be at least 8 characters"),
            (
                {"currentPassword": ADMIN_PASSWORD, "newPassword": ADMIN_PASSWORD},
                "New password must be different from current password",
            ),
            ({"currentPassword": "wrongpass1", "newPassword": "changed123"}, "Current password is incorrect"),
        ]
        for body, message in cases:
            resp = client.post(self.URL, json=body)
            assert resp.status_code == 400, body
            assert _error(resp)["message"] == message

    def test_github_users_cannot_change_password(self, admin_client) -> None:
        from auth.models import GitHubUser

        client, manager = admin_client
        user = manager.find_or_create_github_user(GitHubUser(id=5, login="octo"))
        sid = manager.create_session_for_user(user.id).id
        client.cookies.clear()
        resp = client.post(
            self.URL,
            json={"currentPassword": "whatever1", "newPassword": "changed123"},
            headers={"Authorization": f"Bearer {sid}"},
        )
        assert resp.status_code == 400
        assert _error(resp)["message"] == "Password change is not available for GitHub OAuth users"
