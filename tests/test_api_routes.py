"""
tests/test_api_routes.py -- Integration tests for the auth and protected routes.

These tests exercise the full stack: FastAPI routing -> Access Guard dependency
-> AuthService -> user/session stores -> error handlers and response models.
Unit testing the route functions alone would miss the exception handlers and
the header parsing, so integration tests are the right tool here.

Coverage:
  - End-to-end walk: register, duplicate register, login, protected, logout, protected
  - Guard failures: missing header, wrong scheme, garbage token, superseded token
  - Input failures: missing fields, non-string fields, weak password details
  - Login response headers (Cache-Control: no-store) and identical 401 bodies
  - Login rate limit: 429 rate_limited with Retry-After once the window is spent

Fixtures used (from conftest.py):
  - api_client: TestClient over the real app, once per datastore, shared by
    every test in this module -- so each test registers its own usernames.
  - unique_username: a fresh username per test.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from core.config import get_settings

PASSWORD = "Passw0rd1"


def _register(client: TestClient, username: str, password: str = PASSWORD):
    return client.post("/auth/register", json={"username": username, "password": password})


def _login(client: TestClient, username: str, password: str = PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestEndToEnd:
    def test_full_session_lifecycle(self, api_client: TestClient) -> None:
        """register -> duplicate -> login -> protected -> logout -> protected."""
        username = "alice"
        resp = _register(api_client, username)
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"message": "User registered successfully."}

        resp = _register(api_client, username)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "username_taken"
        assert resp.json()["error"]["message"] == "Username already exists."

        resp = _login(api_client, username)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["message"] == "Authentication successful."
        token = body["token"]

        resp = api_client.get("/protected", headers=_bearer(token))
        assert resp.status_code == 200, resp.text
        assert resp.json() == {
            "message": f"Hello {username}, you have accessed a protected endpoint!"
        }

        resp = api_client.post("/auth/logout", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logout successful."}

        resp = api_client.get("/protected", headers=_bearer(token))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "session_invalid"

    def test_relogin_invalidates_previous_token(self, api_client: TestClient, unique_username: str) -> None:
        _register(api_client, unique_username)
        first = _login(api_client, unique_username).json()["token"]
        second = _login(api_client, unique_username).json()["token"]
        assert first != second

        assert api_client.get("/protected", headers=_bearer(first)).status_code == 401
        assert api_client.get("/protected", headers=_bearer(second)).status_code == 200

    def test_logout_twice_is_ok(self, api_client: TestClient, unique_username: str) -> None:
        _register(api_client, unique_username)
        token = _login(api_client, unique_username).json()["token"]
        assert api_client.post("/auth/logout", headers=_bearer(token)).status_code == 200
        assert api_client.post("/auth/logout", headers=_bearer(token)).status_code == 200


class TestLogin:
    def test_login_response_is_not_cacheable(self, api_client: TestClient, unique_username: str) -> None:
        _register(api_client, unique_username)
        resp = _login(api_client, unique_username)
        assert resp.headers["cache-control"] == "no-store"

    def test_wrong_password_and_unknown_user_same_body(
        self, api_client: TestClient, unique_username: str
    ) -> None:
        _register(api_client, unique_username)
        wrong_password = _login(api_client, unique_username, "Wrong1234")
        unknown_user = _login(api_client, unique_username + "_missing")
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["error"]["code"] == "authentication_failed"


class TestAccessGuard:
    """Every guard failure is a 401 with the Bearer challenge header."""

    def test_missing_header(self, api_client: TestClient) -> None:
        resp = api_client.get("/protected")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "missing_credentials"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_wrong_scheme(self, api_client: TestClient) -> None:
        resp = api_client.get("/protected", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "missing_credentials"

    def test_empty_bearer(self, api_client: TestClient) -> None:
        resp = api_client.get("/protected", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "missing_credentials"

    def test_garbage_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/protected", headers=_bearer("not.a.jwt"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_logout_requires_bearer(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/logout")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "missing_credentials"


class TestInputValidation:
    def test_missing_fields(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/register", json={"username": "only-a-name"})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_input"
        assert error["details"]

    def test_non_string_fields(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/login", json={"username": 123, "password": ["Passw0rd1"]})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_input"

    def test_blank_username(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/register", json={"username": "  ", "password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_input"

    def test_weak_password_lists_rules(self, api_client: TestClient, unique_username: str) -> None:
        resp = _register(api_client, unique_username, "password")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "weak_password"
        assert error["rules"] == ["uppercase", "digits"]
        assert error["details"] == [
            "Password must contain at least one uppercase letter.",
            "Password must contain at least one digit.",
        ]
        # The account was not created.
        assert _login(api_client, unique_username, "password").status_code == 401


@pytest.fixture
def tight_login_limit(monkeypatch):
    """Drop LOGIN_RATE_LIMIT to 3/hour for one test, with fresh limiter counters."""
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "3/hour")
    get_settings.cache_clear()
    limiter.reset()
    yield 3
    limiter.reset()
    get_settings.cache_clear()


class TestLoginRateLimit:
    def test_login_refused_after_limit(
        self, api_client: TestClient, unique_username: str, tight_login_limit: int
    ) -> None:
        """Failed logins count too; the request past the limit gets 429 with Retry-After."""
        statuses = [_login(api_client, unique_username, "Wrong1234").status_code for _ in range(tight_login_limit)]
        assert statuses == [401] * tight_login_limit

        resp = _login(api_client, unique_username, "Wrong1234")
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert resp.headers["retry-after"] == "3600"

    def test_limit_does_not_apply_to_other_routes(
        self, api_client: TestClient, unique_username: str, tight_login_limit: int
    ) -> None:
        for _ in range(tight_login_limit + 1):
            _login(api_client, unique_username)
        assert _register(api_client, unique_username).status_code == 200
        assert api_client.get("/health").status_code == 200
