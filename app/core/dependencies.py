"""
Dependency Injection
Provides reusable dependencies for FastAPI routes

DEPENDENCIES:
- HTTP client (Fathom API + OAuth token endpoints)
- Connection store (OAuth tokens + sync watermark, PostgreSQL)
- Meeting store (meeting transcripts, PostgreSQL)
- Token refresher, Fathom client, meeting sync engine
- Auto sync scheduler
"""
import logging
from typing import Optional
import httpx

from app.core.circuit_breakers import with_retry
from app.core.config import settings
from app.services.jobs.scheduler import SyncScheduler
from app.services.sync.database import ConnectionStore, MeetingStore, ensure_schema
from app.services.sync.oauth import TokenRefresher
from app.services.sync.orchestration.meeting_sync import MeetingSyncEngine
from app.services.sync.providers.fathom import FathomClient

logger = logging.getLogger(__name__)

# ============================================================================
# GLOBAL CLIENTS (initialized once, reused across requests)
# ============================================================================

_http_client: Optional[httpx.AsyncClient] = None
_connection_store: Optional[ConnectionStore] = None
_meeting_store: Optional[MeetingStore] = None
_token_refresher: Optional[TokenRefresher] = None
_fathom_client: Optional[FathomClient] = None
_sync_engine: Optional[MeetingSyncEngine] = None
_scheduler: Optional[SyncScheduler] = None


# ============================================================================
# INITIALIZATION (called on app startup)
# ============================================================================

async def initialize_clients():
    """
    Initialize all global clients on app startup.

    Called from main.py lifespan event and worker.py.
    """
    global _http_client, _connection_store, _meeting_store, _token_refresher
    global _fathom_client, _sync_engine, _scheduler

    logger.info("Initializing global clients...")

    # PostgreSQL (tables created on first boot; retried while the database comes up)
    try:
        await with_retry(max_attempts=5, min_wait=1, max_wait=10)(ensure_schema)(settings.database_url)
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {e}")
        raise

    _connection_store = ConnectionStore(settings.database_url)
    _meeting_store = MeetingStore(settings.database_url)
    logger.info("✅ Database stores initialized")

    # Shared HTTP client
    _http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10)
    )
    logger.info("✅ HTTP client initialized")

    _token_refresher = TokenRefresher(
        _connection_store,
        _http_client,
        buffer_seconds=settings.token_refresh_buffer_seconds,
    )
    _fathom_client = FathomClient(_http_client, _token_refresher, settings.fathom_api_base_url)
    _sync_engine = MeetingSyncEngine(_connection_store, _meeting_store, _token_refresher, _fathom_client)
    _scheduler = SyncScheduler(
        _connection_store,
        _sync_engine,
        interval_minutes=settings.sync_interval_minutes,
        concurrency=settings.sync_concurrency,
        enabled=settings.enable_auto_sync,
        run_on_start=settings.sync_on_startup,
    )
    logger.info("✅ Sync engine initialized")

    logger.info("✅ All clients initialized successfully")


async def shutdown_clients():
    """
    Shutdown all global clients on app shutdown.

    Called from main.py lifespan event and worker.py.
    """
    global _http_client, _connection_store, _meeting_store, _token_refresher
    global _fathom_client, _sync_engine, _scheduler

    logger.info("Shutting down global clients...")

    if _scheduler:
        await _scheduler.shutdown()

    if _http_client:
        try:
            await _http_client.aclose()
            logger.info("✅ HTTP client closed")
        except Exception as e:
            logger.error(f"Error closing HTTP client: {e}")

    # Stores open a connection per call, nothing to close
    _http_client = None
    _connection_store = None
    _meeting_store = None
    _token_refresher = None
    _fathom_client = None
    _sync_engine = None
    _scheduler = None

    logger.info("✅ All clients shutdown complete")


# ============================================================================
# DEPENDENCY FUNCTIONS (injected into routes)
# ============================================================================

def _require(client, name: str):
    if client is None:
        logger.error(f"{name} not initialized")
        raise RuntimeError(f"{name} not initialized. Call initialize_clients() first.")
    return client


def get_http_client() -> httpx.AsyncClient:
    """
    Get the shared HTTP client for external API calls.

    Usage:
        @router.get("/external")
        async def external(http: httpx.AsyncClient = Depends(get_http_client)):
            response = await http.get("https://api.example.com")
            return response.json()
    """
    return _require(_http_client, "HTTP client")


def get_connection_store() -> ConnectionStore:
    """Get the OAuth connection store for dependency injection."""
    return _require(_connection_store, "Connection store")


def get_meeting_store() -> MeetingStore:
    """Get the meeting transcript store for dependency injection."""
    return _require(_meeting_store, "Meeting store")


def get_token_refresher() -> TokenRefresher:
    """
    Get the token refresher for dependency injection.

    Usage:
        @router.get("/api/{provider}/callback")
        async def callback(refresher: TokenRefresher = Depends(get_token_refresher)):
            await refresher.exchange_code(user_id, code, redirect_uri, provider)
    """
    return _require(_token_refresher, "Token refresher")


def get_fathom_client() -> FathomClient:
    """Get the Fathom API client for dependency injection."""
    return _require(_fathom_client, "Fathom client")


def get_sync_engine() -> MeetingSyncEngine:
    """Get the meeting sync engine for dependency injection."""
    return _require(_sync_engine, "Sync engine")


def get_scheduler() -> Optional[SyncScheduler]:
    """Get the auto sync scheduler (None before startup)."""
    return _scheduler
