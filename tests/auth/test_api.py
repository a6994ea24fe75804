"""Tests for auth API routes.

Full stack through FastAPI: middleware, router, AuthService, real token and
magic link services on a fake Valkey server. User directory and email are
mocked.
"""

from unittest.mock import Mock

import pytest
from argon2 import PasswordHasher
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth.api import create_auth_router
from auth.exceptions import DatabaseUnavailableError, StoreUnavailableError
from auth.passwords import PasswordVerifier
from auth.security_middleware import BearerAuthMiddleware
from auth.service import AuthService
from auth.types import AuthProvider
from clients.email_client import EmailGatewayError
from tests.conftest import TEST_USER_EMAIL, TEST_USER_ID, make_user


PASSWORD = "correct-horse-battery"


@pytest.fixture
def password_verifier():
    return PasswordVerifier(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest.fixture
def auth_service(
    mock_auth_db, token_service, magic_link_service, login_throttle, rate_limiter, password_verifier
):
    return AuthService(
        auth_db=mock_auth_db,
        token_service=token_service,
        magic_link_service=magic_link_service,
        login_throttle=login_throttle,
        rate_limiter=rate_limiter,
        password_verifier=password_verifier,
    )


@pytest.fixture
def client(auth_service, token_service):
    """FastAPI app with auth routes and middleware."""
    app = FastAPI()
    app.add_middleware(BearerAuthMiddleware, token_service=token_service)
    app.include_router(create_auth_router(auth_service), prefix="/auth")
    return TestClient(app)


@pytest.fixture
def local_user(mock_auth_db, password_verifier):
    user = make_user()
    mock_auth_db.get_user_by_email.return_value = user
    mock_auth_db.get_user_by_id.return_value = user
    mock_auth_db.get_password_hash.return_value = password_verifier.hash(PASSWORD)
    return user


def _login(client) -> dict:
    response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": PASSWORD})
    assert response.status_code == 200
    return response.json()["data"]["tokens"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegisterEndpoint:
    def test_created(self, client, mock_auth_db):
        mock_auth_db.create_user.return_value = make_user()

        response = client.post("/auth/register", json={"email": TEST_USER_EMAIL, "password": PASSWORD})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["user"]["email"] == TEST_USER_EMAIL
        assert data["tokens"]["token_type"] == "bearer"

    def test_duplicate(self, client, local_user):
        response = client.post("/auth/register", json={"email": TEST_USER_EMAIL, "password": PASSWORD})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_short_password(self, client):
        response = client.post("/auth/register", json={"email": TEST_USER_EMAIL, "password": "short"})
        assert response.status_code == 422


class TestLoginEndpoint:
    def test_success(self, client, local_user):
        tokens = _login(client)
        assert tokens["access_token"]
        assert tokens["refresh_token"]

    def test_wrong_password(self, client, local_user):
        response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_rate_limited_with_retry_after(self, client, local_user):
        for _ in range(5):
            client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": "wrong"})

        response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": PASSWORD})

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"]["code"] == "RATE_LIMITED"

    def test_store_outage_is_503(self, client, local_user, login_throttle):
        login_throttle.may_attempt = Mock(side_effect=StoreUnavailableError("down"))

        response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": PASSWORD})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"

    def test_directory_outage_is_503(self, client, mock_auth_db):
        mock_auth_db.get_user_by_email.side_effect = DatabaseUnavailableError("down")

        response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": PASSWORD})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


class TestRefreshEndpoint:
    def test_rotates(self, client, local_user):
        tokens = _login(client)

        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 200
        assert response.json()["data"]["tokens"]["refresh_token"] != tokens["refresh_token"]

    def test_reuse_rejected(self, client, local_user):
        tokens = _login(client)
        client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"


class TestLogoutEndpoints:
    def test_logout_revokes(self, client, local_user):
        tokens = _login(client)

        assert client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200
        response = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

    def test_logout_twice_ok(self, client, local_user):
        tokens = _login(client)
        client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]})

        response = client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200

    def test_logout_all_requires_auth(self, client):
        assert client.post("/auth/logout-all").status_code == 401

    def test_logout_all(self, client, local_user):
        first = _login(client)
        second = _login(client)

        response = client.post("/auth/logout-all", headers=_bearer(second["access_token"]))

        assert response.status_code == 200
        assert response.json()["data"]["revoked"] == 2
        for tokens in (first, second):
            assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


class TestMagicLinkEndpoints:
    def _request_link(self, client, mock_auth_db, mock_email_client) -> str:
        user = make_user(provider=AuthProvider.MAGIC_LINK)
        mock_auth_db.get_or_create_user.return_value = (user, False)
        mock_auth_db.get_user_by_id.return_value = user
        response = client.post("/auth/magic-link", json={"email": TEST_USER_EMAIL})
        assert response.status_code == 200
        assert response.json()["data"] == {"sent": True}

        body = mock_email_client.send_email.call_args.kwargs["html_body"]
        start = body.index("?token=") + len("?token=")
        return body[start:body.index('"', start)]

    def test_verify_logs_in_once(self, client, mock_auth_db, mock_email_client):
        token = self._request_link(client, mock_auth_db, mock_email_client)

        first = client.get("/auth/magic-link/verify", params={"token": token})
        second = client.get("/auth/magic-link/verify", params={"token": token})

        assert first.status_code == 200
        assert first.json()["data"]["user"]["id"] == str(TEST_USER_ID)
        assert second.status_code == 401
        assert second.json()["error"]["code"] == "INVALID_TOKEN"

    def test_missing_token(self, client):
        response = client.get("/auth/magic-link/verify")
        assert response.status_code == 400

    def test_delivery_failure_is_502(self, client, mock_auth_db, mock_email_client):
        mock_auth_db.get_or_create_user.return_value = (make_user(), False)
        mock_email_client.send_email.side_effect = EmailGatewayError("gateway down")

        response = client.post("/auth/magic-link", json={"email": TEST_USER_EMAIL})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "EMAIL_DELIVERY_FAILED"

    def test_request_limit_is_429(self, client, mock_auth_db, mock_email_client, config):
        mock_auth_db.get_or_create_user.return_value = (make_user(provider=AuthProvider.MAGIC_LINK), False)
        for _ in range(config.magic_link_requests_per_window):
            assert client.post("/auth/magic-link", json={"email": TEST_USER_EMAIL}).status_code == 200

        response = client.post("/auth/magic-link", json={"email": TEST_USER_EMAIL})

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert mock_email_client.send_email.call_count == config.magic_link_requests_per_window


class TestAccountEndpoints:
    def test_me(self, client, local_user):
        tokens = _login(client)

        response = client.get("/auth/me", headers=_bearer(tokens["access_token"]))

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == TEST_USER_EMAIL

    def test_me_user_gone(self, client, local_user, mock_auth_db):
        tokens = _login(client)
        mock_auth_db.get_user_by_id.return_value = None

        assert client.get("/auth/me", headers=_bearer(tokens["access_token"])).status_code == 404

    def test_me_directory_outage_is_503(self, client, local_user, mock_auth_db):
        tokens = _login(client)
        mock_auth_db.get_user_by_id.side_effect = DatabaseUnavailableError("down")

        assert client.get("/auth/me", headers=_bearer(tokens["access_token"])).status_code == 503

    def test_update_profile(self, client, local_user, mock_auth_db):
        tokens = _login(client)
        mock_auth_db.update_profile.return_value = make_user(name="Alice")

        response = client.patch(
            "/auth/me", headers=_bearer(tokens["access_token"]), json={"name": "Alice"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["name"] == "Alice"
        mock_auth_db.update_profile.assert_called_once_with(TEST_USER_ID, name="Alice", avatar=None)

    def test_update_profile_requires_auth(self, client):
        assert client.patch("/auth/me", json={"name": "Alice"}).status_code == 401

    def test_update_profile_user_gone(self, client, local_user, mock_auth_db):
        tokens = _login(client)
        mock_auth_db.update_profile.return_value = None

        response = client.patch(
            "/auth/me", headers=_bearer(tokens["access_token"]), json={"avatar": "https://a/b.png"}
        )

        assert response.status_code == 404

    def test_update_profile_name_too_long(self, client, local_user):
        tokens = _login(client)

        response = client.patch(
            "/auth/me", headers=_bearer(tokens["access_token"]), json={"name": "x" * 101}
        )

        assert response.status_code == 422

    def test_change_password(self, client, local_user, mock_auth_db):
        tokens = _login(client)

        response = client.post(
            "/auth/change-password",
            headers=_bearer(tokens["access_token"]),
            json={"current_password": PASSWORD, "new_password": "another-password-1"},
        )

        assert response.status_code == 200
        mock_auth_db.update_password_hash.assert_called_once()
        assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401

    def test_change_password_wrong_current(self, client, local_user):
        tokens = _login(client)

        response = client.post(
            "/auth/change-password",
            headers=_bearer(tokens["access_token"]),
            json={"current_password": "wrong", "new_password": "another-password-1"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_delete_account(self, client, local_user, mock_auth_db):
        tokens = _login(client)
        mock_auth_db.delete_user.return_value = True

        response = client.delete("/auth/account", headers=_bearer(tokens["access_token"]))

        assert response.status_code == 200
        mock_auth_db.delete_user.assert_called_once_with(TEST_USER_ID)
