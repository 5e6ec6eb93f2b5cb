"""Tests for the Supabase auth client."""

import time

import httpx
import pytest
from unittest.mock import Mock

from tracker import config
from tracker.reminders.store import LocalStore
from tracker.results import INVALID_EMAIL, INVALID_PASSWORD, UNEXPECTED_ERROR
from tracker.services.auth_service import (
    AuthService,
    Session,
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
)

from conftest import USER_ID

URL = "https://example.supabase.co"


def token_payload(access="new-access", refresh="new-refresh", expires_in=3600):
    return {
        "access_token": access,
        "refresh_token": refresh,
        "expires_in": expires_in,
        "token_type": "bearer",
        "user": {"id": USER_ID, "email": "ana@example.com"},
    }


def response(status_code=200, body=None):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = body
    resp.content = b"{}" if body is not None else b""
    resp.text = str(body)
    return resp


@pytest.fixture
def local_store():
    store = LocalStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def auth(local_store):
    return AuthService(url=URL, api_key="anon-key", storage=local_store)


class TestSession:
    """Test the session dataclass."""

    def test_from_dict_computes_expiry(self):
        before = int(time.time())

        session = Session.from_dict(token_payload(expires_in=60))

        assert session.user.id == USER_ID
        assert before + 60 <= session.expires_at <= int(time.time()) + 60

    def test_is_expired_uses_margin(self):
        session = Session.from_dict(token_payload())
        session.expires_at = int(time.time()) + 30

        assert session.is_expired(margin=60)
        assert not session.is_expired(margin=0)

    def test_round_trips_through_dict(self):
        session = Session.from_dict(token_payload())

        assert Session.from_dict(session.to_dict()) == session


class TestSignIn:
    """Test password sign in."""

    @pytest.mark.asyncio
    async def test_sign_in_success(self, auth, local_store, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())
        events = []
        auth.on_session_changed(lambda event, session: events.append(event))

        result = await auth.sign_in(" ana@example.com ", "secret123")

        assert result["error"] is None
        assert result["data"]["user"].id == USER_ID
        assert auth.get_access_token() == "new-access"
        assert events == [SIGNED_IN]
        assert local_store.get_json(config.SESSION_STORAGE_KEY)["access_token"] == "new-access"

        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == f"{URL}/auth/v1/token"
        assert kwargs["params"] == {"grant_type": "password"}
        assert kwargs["json"]["email"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_sign_in_rejected(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(
            400, {"error": "invalid_grant", "error_description": "Invalid login credentials"}
        )

        result = await auth.sign_in("ana@example.com", "wrong")

        assert result["data"] is None
        assert result["error"]["message"] == "Invalid login credentials"
        assert result["error"]["code"] == "invalid_grant"
        assert auth.session is None

    @pytest.mark.asyncio
    async def test_invalid_email_makes_no_request(self, auth, mock_httpx_client):
        result = await auth.sign_in("not-an-email", "secret123")

        assert result["error"]["message"] == INVALID_EMAIL
        mock_httpx_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_network_failure(self, auth, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ConnectError("offline")

        result = await auth.sign_in("ana@example.com", "secret123")

        assert result["error"]["code"] == "NETWORK"

    @pytest.mark.asyncio
    async def test_incomplete_token_body_is_an_error_result(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, {"access_token": "x"})

        result = await auth.sign_in("ana@example.com", "secret123")

        assert result["data"] is None
        assert result["error"]["message"] == UNEXPECTED_ERROR
        assert auth.session is None


class TestSignUp:
    """Test account creation."""

    @pytest.mark.asyncio
    async def test_short_password(self, auth, mock_httpx_client):
        result = await auth.sign_up("ana@example.com", "123")

        assert result["error"]["message"] == INVALID_PASSWORD
        mock_httpx_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_sign_up_awaiting_confirmation(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, {"id": USER_ID, "email": "ana@example.com"})

        result = await auth.sign_up("ana@example.com", "secret123", {"full_name": "Ana"})

        assert result["error"] is None
        assert result["data"]["session"] is None
        assert result["data"]["user"].id == USER_ID
        assert auth.session is None
        assert mock_httpx_client.post.call_args.kwargs["json"]["data"] == {"full_name": "Ana"}

    @pytest.mark.asyncio
    async def test_sign_up_with_session(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())

        result = await auth.sign_up("ana@example.com", "secret123")

        assert result["data"]["session"].access_token == "new-access"
        assert auth.session is not None

    @pytest.mark.asyncio
    async def test_empty_body_is_an_error_result(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, None)

        result = await auth.sign_up("ana@example.com", "secret123")

        assert result["data"] is None
        assert result["error"]["message"] == UNEXPECTED_ERROR
        assert auth.session is None


class TestRefreshAndRestore:
    """Test session refresh and restoring from local storage."""

    @pytest.mark.asyncio
    async def test_get_session_restores_stored_session(self, local_store, mock_httpx_client):
        local_store.set_json(config.SESSION_STORAGE_KEY, Session.from_dict(token_payload()).to_dict())
        auth = AuthService(url=URL, api_key="anon-key", storage=local_store)

        result = await auth.get_session()

        assert result["data"].user.id == USER_ID
        mock_httpx_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_session_refreshes_expired(self, local_store, mock_httpx_client):
        stored = Session.from_dict(token_payload(access="old-access", refresh="old-refresh"))
        stored.expires_at = int(time.time()) - 10
        local_store.set_json(config.SESSION_STORAGE_KEY, stored.to_dict())
        auth = AuthService(url=URL, api_key="anon-key", storage=local_store)
        mock_httpx_client.post.return_value = response(200, token_payload())
        events = []
        auth.on_session_changed(lambda event, session: events.append(event))

        result = await auth.get_session()

        assert result["data"].access_token == "new-access"
        assert events == [TOKEN_REFRESHED]
        kwargs = mock_httpx_client.post.call_args.kwargs
        assert kwargs["params"] == {"grant_type": "refresh_token"}
        assert kwargs["json"] == {"refresh_token": "old-refresh"}

    @pytest.mark.asyncio
    async def test_rejected_refresh_signs_out(self, auth, local_store, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())
        await auth.sign_in("ana@example.com", "secret123")
        mock_httpx_client.post.return_value = response(
            400, {"error_code": "refresh_token_not_found", "msg": "Invalid Refresh Token"}
        )

        result = await auth.refresh_session()

        assert result["error"]["code"] == "refresh_token_not_found"
        assert auth.session is None
        assert local_store.get_item(config.SESSION_STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_network_failure_keeps_session(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())
        await auth.sign_in("ana@example.com", "secret123")
        mock_httpx_client.post.side_effect = httpx.ConnectError("offline")

        result = await auth.refresh_session()

        assert result["error"]["code"] == "NETWORK"
        assert auth.session is not None

    @pytest.mark.asyncio
    async def test_incomplete_refresh_body_keeps_session(self, auth, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())
        await auth.sign_in("ana@example.com", "secret123")
        mock_httpx_client.post.return_value = response(200, {"user": {"id": USER_ID}})

        result = await auth.refresh_session()

        assert result["error"]["message"] == UNEXPECTED_ERROR
        assert auth.get_access_token() == "new-access"

    @pytest.mark.asyncio
    async def test_corrupt_stored_session_is_discarded(self, local_store):
        local_store.set_json(config.SESSION_STORAGE_KEY, {"access_token": "x"})
        auth = AuthService(url=URL, api_key="anon-key", storage=local_store)

        result = await auth.get_session()

        assert result["data"] is None
        assert local_store.get_item(config.SESSION_STORAGE_KEY) is None


class TestSignOut:
    """Test sign out."""

    @pytest.mark.asyncio
    async def test_sign_out_clears_even_when_server_fails(self, auth, local_store, mock_httpx_client):
        mock_httpx_client.post.return_value = response(200, token_payload())
        await auth.sign_in("ana@example.com", "secret123")
        mock_httpx_client.post.return_value = response(500, {"msg": "server down"})
        events = []
        auth.on_session_changed(lambda event, session: events.append(event))

        result = await auth.sign_out()

        assert result == {"data": None, "error": None}
        assert auth.session is None
        assert events == [SIGNED_OUT]
        assert local_store.get_item(config.SESSION_STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self, auth, mock_httpx_client):
        seen = []

        async def listener(event, session):
            seen.append(event)

        auth.on_session_changed(listener)
        await auth.sign_out()

        assert seen == [SIGNED_OUT]
