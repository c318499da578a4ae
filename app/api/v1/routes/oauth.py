"""
OAuth Routes
Handles OAuth flow initiation and callbacks for Fathom, Google Calendar and Google Fit

SECURITY:
- Rate limited to prevent OAuth abuse
- The user id travels through the consent page in the state parameter
"""
import logging
from typing import Optional
from urllib.parse import quote, urlencode
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.config import settings
from app.core.dependencies import get_connection_store, get_fathom_client, get_token_refresher
from app.core.security import decode_oauth_state, encode_oauth_state, get_user_id
from app.middleware.rate_limit import CONNECT_RATE_LIMIT, limiter
from app.services.sync.database import ConnectionStore
from app.services.sync.errors import SyncError, TokenExchangeError
from app.services.sync.oauth import TokenRefresher, build_authorization_url
from app.services.sync.providers import FATHOM, OAuthProvider, get_provider
from app.services.sync.providers.fathom import FathomClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["oauth"])


def _resolve_provider(provider: str) -> OAuthProvider:
    oauth_provider = get_provider(provider)
    if oauth_provider is None:
        raise HTTPException(status_code=404, detail=f"Unsupported provider: {provider}")
    return oauth_provider


async def _register_fathom_webhook(
    user_id: str,
    fathom_client: FathomClient,
    connection_store: ConnectionStore,
):
    """
    Subscribe the user's Fathom account to our webhook ingress.

    Failure is logged only: the connection is already stored and the
    scheduled sync still picks the meetings up.
    """
    destination_url = f"{settings.app_url.rstrip('/')}/api/{FATHOM}/webhook/{quote(user_id, safe='')}"
    try:
        webhook_id = await fathom_client.create_webhook(user_id, destination_url)
        await connection_store.save_webhook_id(user_id, FATHOM, webhook_id)
    except SyncError as e:
        logger.warning(f"[OAUTH_CALLBACK] ⚠️ Could not register Fathom webhook for user {user_id}: {e}")
        return

    logger.info(f"[OAUTH_CALLBACK] 🪝 Fathom webhook {webhook_id} registered for user {user_id}")


@router.get("/{provider}/connect")
@limiter.limit(CONNECT_RATE_LIMIT)
async def connect_start(
    request: Request,  # Required for rate limiting
    provider: str,
    user_id: str = Depends(get_user_id)
):
    """
    Redirect the user to the provider consent page.

    Flow:
    1. User clicks "Connect Fathom" (or Calendar / Fit) in the dashboard
    2. This endpoint redirects to the provider with state = base64({"userId": ...})
    3. Provider redirects back to /api/{provider}/callback with a code
    """
    oauth_provider = _resolve_provider(provider)
    if not oauth_provider.configured:
        logger.error(f"❌ {provider} OAuth requested but client credentials are not configured")
        raise HTTPException(status_code=500, detail=f"{provider} OAuth is not configured")

    authorization_url = build_authorization_url(
        oauth_provider,
        oauth_provider.redirect_uri(settings.app_url),
        encode_oauth_state(user_id),
    )
    logger.info(f"[OAUTH_START] Redirecting user {user_id} to {provider} consent page")
    return RedirectResponse(authorization_url, status_code=307)


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    refresher: TokenRefresher = Depends(get_token_refresher),
    fathom_client: FathomClient = Depends(get_fathom_client),
    connection_store: ConnectionStore = Depends(get_connection_store)
):
    """
    Handle the provider redirect: exchange the code and store the connection.

    For Fathom, a webhook pointing at /api/fathom/webhook/{user_id} is created as well.

    Redirects back to the dashboard with ?user_id=...&connected=true on success.
    """
    oauth_provider = _resolve_provider(provider)

    if error:
        logger.warning(f"[OAUTH_CALLBACK] {provider} returned error: {error}")
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")

    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    user_id = decode_oauth_state(state)
    if not user_id:
        raise HTTPException(status_code=400, detail="Invalid state")

    try:
        await refresher.exchange_code(
            user_id,
            code,
            oauth_provider.redirect_uri(settings.app_url),
            provider,
        )
    except TokenExchangeError as e:
        logger.error(f"[OAUTH_CALLBACK] ❌ {provider} token exchange failed for user {user_id}: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": f"Failed to connect {provider}", "details": str(e)}
        )

    logger.info(f"[OAUTH_CALLBACK] ✅ {provider} connected for user {user_id}")

    if provider == FATHOM:
        await _register_fathom_webhook(user_id, fathom_client, connection_store)

    query = urlencode({"user_id": user_id, "connected": "true"})
    return RedirectResponse(f"/?{query}", status_code=307)
