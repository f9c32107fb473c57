from __future__ import annotations

from urllib.parse import unquote

import pytest
from fastapi.testclient import TestClient

from pawboard.auth.service import AuthService
from pawboard.auth.throttling import LoginRateLimiter
from pawboard.config import settings

PASSWORD = "Str0ng!Pass"


def _register(client: TestClient, email: str, password: str = PASSWORD, **overrides):
    form = {
        "email": email,
        "password": password,
        "confirm_password": password,
        "accept": "on",
    }
    form.update(overrides)
    return client.post("/register", data=form, follow_redirects=False)


def _error_of(response) -> str:
    location = response.headers["location"]
    assert "?error=" in location
    return unquote(location.split("?error=", 1)[1])


def test_register_sets_cookie_and_allows_access(client: TestClient) -> None:
    response = _register(client, "Someone@Example.com")

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"
    cookie_header = response.headers.get("set-cookie", "")
    assert f"{settings.SESSION_COOKIE_NAME}=" in cookie_header
    assert "HttpOnly" in cookie_header
    assert "SameSite=lax" in cookie_header
    assert "Secure" in cookie_header
    assert "Path=/" in cookie_header

    me = client.get("/api/me")
    assert me.status_code == 200
    assert me.json()["email"] == "someone@example.com"

    dashboard = client.get("/dashboard")
    assert dashboard.status_code == 200
    assert "someone@example.com" in dashboard.text


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"email": "not-an-email"}, "Invalid email"),
        ({"password": "short", "confirm_password": "short"}, "Password must be at least 8 characters"),
        ({"password": "alllowercase1!", "confirm_password": "alllowercase1!"}, "Password must contain an uppercase letter"),
        ({"confirm_password": "Different1!"}, "Passwords do not match"),
        ({"accept": ""}, "You must accept the terms and privacy policy"),
    ],
)
def test_register_form_validation(client: TestClient, overrides, message) -> None:
    options = dict(overrides)
    response = _register(client, options.pop("email", "someone@example.com"), **options)

    assert response.status_code == 303
    assert response.headers["location"].startswith("/register?error=")
    assert _error_of(response) == message
    assert client.get("/api/me").status_code == 401


def test_register_rejections_from_the_service(client: TestClient) -> None:
    assert _register(client, "taken@example.com").status_code == 303
    client.get("/logout", follow_redirects=False)

    duplicate = _register(client, " TAKEN@example.com")
    assert _error_of(duplicate) == "Email already registered"

    disposable = _register(client, "someone@yopmail.com")
    assert _error_of(disposable) == "Email domain not accepted"


def test_login_success_and_failure(client: TestClient) -> None:
    _register(client, "login@example.com")
    client.get("/logout", follow_redirects=False)
    assert client.get("/api/me").status_code == 401

    success = client.post(
        "/login",
        data={"email": "LOGIN@example.com", "password": PASSWORD},
        follow_redirects=False,
    )
    assert success.status_code == 303
    assert success.headers["location"] == "/dashboard"
    assert "HttpOnly" in success.headers.get("set-cookie", "")
    assert client.get("/api/me").json()["email"] == "login@example.com"

    client.cookies.clear()
    wrong = client.post(
        "/login",
        data={"email": "login@example.com", "password": "Wr0ng!Pass"},
        follow_redirects=False,
    )
    unknown = client.post(
        "/login",
        data={"email": "nobody@example.com", "password": "Wr0ng!Pass"},
        follow_redirects=False,
    )
    for response in (wrong, unknown):
        assert response.status_code == 303
        assert _error_of(response) == "Invalid credentials"
        assert "Max-Age=0" in response.headers.get("set-cookie", "")
    assert wrong.headers["location"] == unknown.headers["location"]


def test_logout_blanks_cookie_and_old_token_stays_dead(client: TestClient) -> None:
    registered = _register(client, "logout@example.com")
    token = registered.cookies.get(settings.SESSION_COOKIE_NAME)
    assert token

    response = client.get("/logout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    cookie_header = response.headers.get("set-cookie", "")
    assert f"{settings.SESSION_COOKIE_NAME}=" in cookie_header
    assert "Max-Age=0" in cookie_header

    client.cookies.set(settings.SESSION_COOKIE_NAME, token)
    assert client.get("/api/me").status_code == 401


def test_api_logout_returns_json(client: TestClient) -> None:
    _register(client, "api-logout@example.com")

    response = client.post("/api/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert "Max-Age=0" in response.headers.get("set-cookie", "")
    assert client.get("/api/me").status_code == 401


def test_anonymous_pages_redirect(client: TestClient) -> None:
    root = client.get("/", follow_redirects=False)
    assert root.status_code == 303
    assert root.headers["location"] == "/login"

    dashboard = client.get("/dashboard", follow_redirects=False)
    assert dashboard.status_code == 303
    assert dashboard.headers["location"] == "/login"

    assert client.get("/login").status_code == 200
    assert client.get("/register").status_code == 200


def test_sliding_renewal_reissues_cookie(client: TestClient, clock) -> None:
    _register(client, "slide@example.com")

    clock.advance(days=5)
    unchanged = client.get("/api/me")
    assert unchanged.status_code == 200
    assert "set-cookie" not in unchanged.headers

    clock.advance(days=15)
    renewed = client.get("/api/me")
    assert renewed.status_code == 200
    cookie_header = renewed.headers.get("set-cookie", "")
    assert f"{settings.SESSION_COOKIE_NAME}=" in cookie_header
    max_age = int(cookie_header.split("Max-Age=")[1].split(";")[0])
    assert max_age == 30 * 86400


def test_repeated_failed_logins_are_throttled(auth_service: AuthService, clock) -> None:
    from pawboard.main import create_app

    auth_service.rate_limiter = LoginRateLimiter(
        max_attempts=2, window_seconds=60, block_seconds=30, time_provider=clock
    )
    with TestClient(create_app(auth=auth_service), base_url="https://testserver") as client:
        _register(client, "throttle@example.com")
        client.cookies.clear()

        def _attempt(password: str):
            return client.post(
                "/login",
                data={"email": "throttle@example.com", "password": password},
                follow_redirects=False,
            )

        assert _attempt("Wr0ng!Pass").status_code == 303
        blocked = _attempt("Wr0ng!Pass")
        assert blocked.status_code == 429
        assert blocked.headers["retry-after"] == "30"
        assert "Max-Age=0" in blocked.headers.get("set-cookie", "")
        assert _attempt(PASSWORD).status_code == 429

        clock.advance(seconds=31)
        assert _attempt(PASSWORD).status_code == 303
        assert client.get("/api/me").status_code == 200


def test_store_outage_on_login_is_reported(client: TestClient, auth_service, monkeypatch) -> None:
    from pawboard.auth.errors import TransientStoreFailure

    _register(client, "outage@example.com")
    client.cookies.clear()

    def _unavailable(session, user_id):
        raise TransientStoreFailure("database is locked")

    monkeypatch.setattr(auth_service.sessions, "create", _unavailable)

    response = client.post(
        "/login",
        data={"email": "outage@example.com", "password": PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert _error_of(response) == TransientStoreFailure.public_message
    assert client.get("/api/me").status_code == 401
