"""
Dashboard Sync API
====================================
Version: 1.0.0

FastAPI application entry point.

Architecture:
- app/core/: Configuration, dependencies, security, retry policies
- app/middleware/: Error handling, logging, CORS, rate limiting, security headers
- app/models/: Pydantic schemas
- app/services/: Business logic (OAuth tokens, Fathom client, meeting sync, scheduler)
- app/api/v1/routes/: API endpoints
"""
import sys
import logging
import traceback
from contextlib import asynccontextmanager
from fastapi import FastAPI

# Startup error handling
try:
    # Import core components
    from app.core.config import settings
    from app.core.dependencies import get_scheduler, initialize_clients, shutdown_clients

    # Import middleware
    from app.middleware.error_handler import ErrorHandlerMiddleware
    from app.middleware.logging import RequestLoggingMiddleware
    from app.middleware.cors import get_cors_middleware

    # Import routes
    from app.api.v1.routes.health import router as health_router
    from app.api.v1.routes.oauth import router as oauth_router
    from app.api.v1.routes.webhook import router as webhook_router
    from app.api.v1.routes.sync import router as sync_router

except Exception as e:
    print(f"🚨 FATAL STARTUP ERROR: {e}", file=sys.stderr)
    print(f"Traceback:\n{traceback.format_exc()}", file=sys.stderr)
    sys.exit(1)

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.environment == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# ============================================================================
# SENTRY ERROR TRACKING
# ============================================================================

if settings.sentry_dsn:
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,  # 10% of requests for performance monitoring
            profiles_sample_rate=0.1,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
            ]
        )
        logger.info("✅ Sentry error tracking initialized")
    except Exception as e:
        logger.warning(f"⚠️  Failed to initialize Sentry: {e}")
else:
    logger.info("ℹ️  Sentry not configured (SENTRY_DSN not set)")

# ============================================================================
# LIFECYCLE MANAGEMENT
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    # Startup
    logger.info("=" * 80)
    logger.info("Starting Dashboard Sync API")
    logger.info("=" * 80)
    logger.info(f"Version: 1.0.0")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Port: {settings.port}")
    logger.info(f"Debug: {settings.debug}")

    await initialize_clients()

    scheduler = get_scheduler()
    if scheduler:
        await scheduler.start()

    logger.info("=" * 80)
    logger.info("✅ Dashboard Sync API started successfully")
    logger.info("=" * 80)

    yield

    # Shutdown (stops the scheduler before closing the HTTP client)
    logger.info("Shutting down Dashboard Sync API...")
    await shutdown_clients()
    logger.info("✅ Shutdown complete")


# ============================================================================
# APP INITIALIZATION
# ============================================================================

app = FastAPI(
    title="Dashboard Sync API",
    description="OAuth connections and Fathom meeting sync for the personal dashboard",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# ============================================================================
# RATE LIMITING
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.middleware.rate_limit import limiter

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
logger.info("✅ Rate limiting enabled")

# ============================================================================
# MIDDLEWARE (order matters!)
# ============================================================================

# Security headers (must be first to apply to all responses)
from app.middleware.security_headers import SecurityHeadersMiddleware
app.add_middleware(SecurityHeadersMiddleware)
logger.info("✅ Security headers enabled")

# CORS (after security headers)
cors_middleware, cors_config = get_cors_middleware()
app.add_middleware(cors_middleware, **cors_config)

# Request logging
app.add_middleware(RequestLoggingMiddleware)

# Global error handler (must be last)
app.add_middleware(ErrorHandlerMiddleware)

# ============================================================================
# ROUTES
# ============================================================================

app.include_router(health_router)
app.include_router(oauth_router)
app.include_router(webhook_router)
app.include_router(sync_router)

logger.info("✅ All routes registered")

# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level="info"
    )
