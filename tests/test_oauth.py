"""Tests for the OAuth token lifecycle."""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.core.config import settings
from app.services.sync.errors import NotConnectedError, RefreshFailedError, TokenExchangeError
from app.services.sync.oauth import TokenRefresher, build_authorization_url
from app.services.sync.providers import FATHOM, GOOGLE_CALENDAR, get_provider

NOW = 1_700_000_000.0
BUFFER = 60
USER = "user-1"


class TokenEndpoint:
    """Fake provider token endpoint; counts calls and records the form bodies."""

    def __init__(self, status_code: int = 200, payload=None) -> None:
        self.status_code = status_code
        self.payload = payload if payload is not None else {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "expires_in": 3600,
        }
        self.forms = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.forms.append({key: values[0] for key, values in parse_qs(request.content.decode()).items()})
        await asyncio.sleep(0.01)  # let concurrent callers pile up
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def calls(self) -> int:
        return len(self.forms)


def make_refresher(connection_store, endpoint: TokenEndpoint) -> TokenRefresher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint.handler))
    return TokenRefresher(connection_store, client, buffer_seconds=BUFFER, clock=lambda: NOW)


class TestGetValidAccessToken:
    """Refresh happens if and only if the stored expiry is within the buffer."""

    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_network(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, access_token="stored", expires_at=int(NOW) + 3600)

        token = await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert token == "stored"
        assert endpoint.calls == 0

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_once(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, expires_at=int(NOW) - 10)
        refresher = make_refresher(connection_store, endpoint)

        first = await refresher.get_valid_access_token(USER, FATHOM)
        second = await refresher.get_valid_access_token(USER, FATHOM)

        assert first == second == "new-access"
        assert endpoint.calls == 1
        assert connection_store.rows[(USER, FATHOM)]["token_expires_at"] > NOW + BUFFER

    @pytest.mark.parametrize("offset, refreshes", [
        (BUFFER - 1, 1),
        (BUFFER, 1),
        (BUFFER + 1, 0),
    ])
    @pytest.mark.asyncio
    async def test_buffer_boundary(self, connection_store, offset, refreshes) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, expires_at=int(NOW) + offset)

        await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert endpoint.calls == refreshes

    @pytest.mark.asyncio
    async def test_new_expiry_subtracts_buffer(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, expires_at=0)

        await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert connection_store.rows[(USER, FATHOM)]["token_expires_at"] == int(NOW) + 3600 - BUFFER

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, expires_at=0)
        refresher = make_refresher(connection_store, endpoint)

        tokens = await asyncio.gather(*(refresher.get_valid_access_token(USER, FATHOM) for _ in range(5)))

        assert set(tokens) == {"new-access"}
        assert endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_refresh_lock_released_after_refresh(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, expires_at=0)
        connection_store.connect("user-2", expires_at=0)
        refresher = make_refresher(connection_store, endpoint)

        await asyncio.gather(
            refresher.get_valid_access_token(USER, FATHOM),
            refresher.get_valid_access_token("user-2", FATHOM),
        )

        assert endpoint.calls == 2
        assert len(refresher._refresh_locks) == 0

    @pytest.mark.asyncio
    async def test_refresh_request_form(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, refresh_token="stored-refresh", expires_at=0)

        await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert endpoint.forms[0] == {
            "client_id": settings.fathom_client_id,
            "client_secret": settings.fathom_client_secret,
            "grant_type": "refresh_token",
            "refresh_token": "stored-refresh",
        }

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_when_not_rotated(self, connection_store) -> None:
        endpoint = TokenEndpoint(payload={"access_token": "new-access", "expires_in": 3600})
        connection_store.connect(USER, refresh_token="keep-me", expires_at=0)

        await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert connection_store.rows[(USER, FATHOM)]["refresh_token"] == "keep-me"

    @pytest.mark.asyncio
    async def test_stores_rotated_refresh_token(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, refresh_token="old", expires_at=0)

        await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert connection_store.rows[(USER, FATHOM)]["refresh_token"] == "new-refresh"

    @pytest.mark.asyncio
    async def test_rejected_refresh_raises_and_keeps_stored_token(self, connection_store) -> None:
        endpoint = TokenEndpoint(status_code=400, payload={"error": "invalid_grant"})
        connection_store.connect(USER, access_token="stale", expires_at=0)

        with pytest.raises(RefreshFailedError) as exc_info:
            await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

        assert exc_info.value.status_code == 400
        assert "400" in str(exc_info.value)
        assert connection_store.rows[(USER, FATHOM)]["access_token"] == "stale"

    @pytest.mark.asyncio
    async def test_response_without_access_token(self, connection_store) -> None:
        endpoint = TokenEndpoint(payload={"expires_in": 3600})
        connection_store.connect(USER, expires_at=0)

        with pytest.raises(RefreshFailedError):
            await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)

    @pytest.mark.asyncio
    async def test_no_connection(self, connection_store) -> None:
        with pytest.raises(NotConnectedError):
            await make_refresher(connection_store, TokenEndpoint()).get_valid_access_token(USER, FATHOM)

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        connection_store.connect(USER, refresh_token=None, expires_at=0)

        with pytest.raises(NotConnectedError):
            await make_refresher(connection_store, endpoint).get_valid_access_token(USER, FATHOM)
        assert endpoint.calls == 0


class TestExchangeCode:
    """Authorization-code exchange creates the connection."""

    @pytest.mark.asyncio
    async def test_stores_tokens(self, connection_store) -> None:
        endpoint = TokenEndpoint()
        refresher = make_refresher(connection_store, endpoint)

        token = await refresher.exchange_code(USER, "the-code", "http://testserver/api/fathom/callback", FATHOM)

        row = connection_store.rows[(USER, FATHOM)]
        assert token == "new-access"
        assert row["refresh_token"] == "new-refresh"
        assert row["token_expires_at"] == int(NOW) + 3600 - BUFFER
        assert endpoint.forms[0]["grant_type"] == "authorization_code"
        assert endpoint.forms[0]["code"] == "the-code"
        assert endpoint.forms[0]["redirect_uri"] == "http://testserver/api/fathom/callback"

    @pytest.mark.asyncio
    async def test_rejected_code(self, connection_store) -> None:
        endpoint = TokenEndpoint(status_code=401, payload={"error": "invalid_client"})

        with pytest.raises(TokenExchangeError):
            await make_refresher(connection_store, endpoint).exchange_code(USER, "bad", "http://x/cb", FATHOM)
        assert connection_store.rows == {}


class TestAuthorizationUrl:
    def test_fathom_consent_url(self) -> None:
        provider = get_provider(FATHOM)

        url = build_authorization_url(provider, provider.redirect_uri("http://testserver"), "c3RhdGU=")

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert url.startswith(f"{settings.fathom_oauth_base_url}/authorize?")
        assert params["client_id"] == [settings.fathom_client_id]
        assert params["redirect_uri"] == ["http://testserver/api/fathom/callback"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["public_api"]
        assert params["state"] == ["c3RhdGU="]

    def test_google_requests_offline_access(self) -> None:
        provider = get_provider(GOOGLE_CALENDAR)

        params = parse_qs(urlparse(build_authorization_url(provider, "http://x/cb", "s")).query)

        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert "https://www.googleapis.com/auth/calendar.readonly" in params["scope"][0]
