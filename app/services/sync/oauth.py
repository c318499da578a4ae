"""
OAuth token lifecycle
Authorization-code exchange, token persistence and transparent refresh
"""
import asyncio
import logging
import time
import weakref
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from app.services.sync.database import ConnectionStore
from app.services.sync.errors import NotConnectedError, RefreshFailedError, TokenExchangeError
from app.services.sync.providers import FATHOM, OAuthProvider, get_provider

logger = logging.getLogger(__name__)

TOKEN_REFRESH_BUFFER_SECONDS = 60


def build_authorization_url(provider: OAuthProvider, redirect_uri: str, state: str) -> str:
    """Build the provider consent-screen URL for the authorization-code flow."""
    params = {
        "client_id": provider.client_id or "",
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(provider.scopes),
        "state": state,
        **provider.extra_authorize_params,
    }
    return f"{provider.authorize_url}?{urlencode(params)}"


class TokenRefresher:
    """
    Hands out valid access tokens, refreshing them from the stored refresh token.

    Fast path: if the stored token expires after now + buffer it is returned
    without any network call. Otherwise the provider's token endpoint is called
    with grant_type=refresh_token and the new token is persisted (upsert).
    Stored expiry is always now + expires_in - buffer, so a token is never
    handed out within `buffer` seconds of its real expiry.
    """

    def __init__(
        self,
        connection_store: ConnectionStore,
        http_client: httpx.AsyncClient,
        buffer_seconds: int = TOKEN_REFRESH_BUFFER_SECONDS,
        provider_lookup: Callable[[str], Optional[OAuthProvider]] = get_provider,
        clock: Callable[[], float] = time.time,
    ):
        self._store = connection_store
        self._http = http_client
        self._buffer = buffer_seconds
        self._provider_lookup = provider_lookup
        self._clock = clock
        # Weak values: a lock lives only while a refresh holds or awaits it
        self._refresh_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _now(self) -> int:
        return int(self._clock())

    def _provider(self, name: str) -> OAuthProvider:
        provider = self._provider_lookup(name)
        if provider is None:
            raise ValueError(f"Unknown OAuth provider: {name}")
        return provider

    def _is_fresh(self, connection: Dict[str, Any]) -> bool:
        expires_at = connection.get("token_expires_at") or 0
        return expires_at > self._now() + self._buffer

    def _expires_at(self, token_data: Dict[str, Any]) -> int:
        return self._now() + int(token_data.get("expires_in") or 0) - self._buffer

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_valid_access_token(self, user_id: str, provider: str = FATHOM) -> str:
        """
        Return a currently-valid access token for the user.

        Raises:
            NotConnectedError: No connection row, no access token, or expired without a refresh token
            RefreshFailedError: Provider rejected the refresh request
        """
        connection = await self._store.get_connection(user_id, provider)
        if not connection or not connection.get("access_token"):
            raise NotConnectedError(user_id, provider)

        if self._is_fresh(connection):
            return connection["access_token"]

        lock = self._refresh_locks.get((user_id, provider))
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[(user_id, provider)] = lock
        async with lock:
            # Another caller may have refreshed while we waited
            connection = await self._store.get_connection(user_id, provider)
            if not connection or not connection.get("access_token"):
                raise NotConnectedError(user_id, provider)
            if self._is_fresh(connection):
                return connection["access_token"]

            return await self._refresh(user_id, provider, connection)

    async def exchange_code(self, user_id: str, code: str, redirect_uri: str, provider: str = FATHOM) -> str:
        """
        Exchange an authorization code for tokens and store them (creates the connection).

        Returns:
            The new access token

        Raises:
            TokenExchangeError: If the provider rejects the code
        """
        oauth_provider = self._provider(provider)
        logger.info(f"🔐 Exchanging {provider} authorization code for user {user_id}")

        token_data = await self._post_token(
            oauth_provider,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
            TokenExchangeError,
            "exchange authorization code",
        )

        await self._store.save_tokens(
            user_id,
            provider,
            token_data["access_token"],
            token_data.get("refresh_token"),
            self._expires_at(token_data),
        )
        logger.info(f"✅ {provider} connection established for user {user_id}")
        return token_data["access_token"]

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _refresh(self, user_id: str, provider: str, connection: Dict[str, Any]) -> str:
        refresh_token = connection.get("refresh_token")
        if not refresh_token:
            raise NotConnectedError(
                user_id,
                provider,
                f"No refresh token stored for this user. Please reconnect {provider}.",
            )

        logger.info(f"🔄 Refreshing {provider} access token for user {user_id}")
        token_data = await self._post_token(
            self._provider(provider),
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            RefreshFailedError,
            "refresh access token",
        )

        await self._store.save_tokens(
            user_id,
            provider,
            token_data["access_token"],
            token_data.get("refresh_token") or refresh_token,
            self._expires_at(token_data),
        )
        logger.info(f"✅ Refreshed {provider} access token for user {user_id}")
        return token_data["access_token"]

    async def _post_token(self, provider: OAuthProvider, form: Dict[str, str], error_cls, action: str) -> Dict[str, Any]:
        if not provider.configured:
            raise error_cls(f"Missing client credentials for {provider.name}")

        body = {
            "client_id": provider.client_id,
            "client_secret": provider.client_secret,
            **form,
        }

        try:
            response = await self._http.post(
                provider.token_url,
                data=body,
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token request to {provider.name} failed: {e}")
            raise error_cls(f"Token request to {provider.name} failed: {e}") from e

        if response.is_error:
            logger.error(f"❌ {provider.name} token endpoint returned {response.status_code} - {response.text[:500]}")
            raise error_cls(
                f"Failed to {action} ({response.status_code})",
                status_code=response.status_code,
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise error_cls(f"Invalid JSON from {provider.name} token endpoint") from e

        if not token_data.get("access_token"):
            raise error_cls(f"{provider.name} token endpoint returned no access_token")

        return token_data
