"""
Unified Configuration
All environment variables and settings in one place

ARCHITECTURE:
- ONE PostgreSQL database for connections (OAuth tokens) and meeting transcripts
- Three OAuth providers: Fathom (meetings), Google Calendar, Google Fit
- Background auto-sync runs in-process (APScheduler)

SECURITY:
- All secrets loaded from environment variables
- No hardcoded credentials
"""
from typing import Optional
import logging
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Unified application settings.
    Validates all environment variables at startup.
    """

    # ============================================================================
    # SERVER
    # ============================================================================

    environment: str = Field(default="production", description="Environment: development/staging/production")
    port: int = Field(default=3000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    app_url: str = Field(default="http://localhost:3000", description="Public base URL (OAuth callbacks, webhook URLs)")

    # ============================================================================
    # DATABASE (PostgreSQL)
    # ============================================================================

    database_url: str = Field(description="PostgreSQL connection string (for psycopg)")

    # ============================================================================
    # OAUTH PROVIDERS
    # ============================================================================

    fathom_client_id: Optional[str] = Field(default=None, description="Fathom OAuth client ID")
    fathom_client_secret: Optional[str] = Field(default=None, description="Fathom OAuth client secret")
    fathom_oauth_base_url: str = Field(
        default="https://fathom.video/external/v1/oauth2",
        description="Fathom OAuth base URL (authorize + token endpoints)"
    )
    fathom_api_base_url: str = Field(
        default="https://api.fathom.ai/external/v1",
        description="Fathom public API base URL"
    )

    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID (Calendar + Fit)")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")

    token_refresh_buffer_seconds: int = Field(
        default=60,
        description="Tokens are refreshed when they expire within this many seconds"
    )
    http_timeout_seconds: float = Field(default=30.0, description="Timeout for outbound provider HTTP calls")

    # ============================================================================
    # AUTOMATIC SYNC
    # ============================================================================

    enable_auto_sync: bool = Field(default=True, description="Run the background meeting sync on a timer")
    sync_interval_minutes: int = Field(default=30, description="Minutes between automatic sync runs")
    sync_concurrency: int = Field(default=1, description="Users synced in parallel per run (1 = sequential)")
    sync_on_startup: bool = Field(default=False, description="Run one automatic sync immediately on startup")

    # ============================================================================
    # PRODUCTION INFRASTRUCTURE
    # ============================================================================

    # Error tracking (Sentry)
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")

    # ============================================================================
    # CORS
    # ============================================================================

    cors_allowed_origins: str = Field(default="http://localhost:5173", description="Comma-separated list of allowed CORS origins")

    @model_validator(mode='after')
    def validate_settings(self):
        """
        Validate critical settings at startup.

        CHECKS:
        - Warn if provider credentials are missing (OAuth + refresh will fail)
        - Warn if debug mode enabled in production
        - Reject nonsensical sync settings
        """
        if self.sync_interval_minutes < 1:
            raise ValueError("sync_interval_minutes must be at least 1")
        if self.sync_concurrency < 1:
            raise ValueError("sync_concurrency must be at least 1")
        if self.token_refresh_buffer_seconds < 0:
            raise ValueError("token_refresh_buffer_seconds must not be negative")

        if self.environment == "production":
            if self.debug:
                logger.warning("⚠️  DEBUG MODE ENABLED IN PRODUCTION! This is insecure.")

            if not self.sentry_dsn:
                logger.warning("⚠️  Sentry not configured in production. Error tracking disabled.")

        if not self.fathom_client_id or not self.fathom_client_secret:
            logger.warning("⚠️  FATHOM_CLIENT_ID / FATHOM_CLIENT_SECRET not set. Fathom OAuth and token refresh will fail.")

        if not self.google_client_id or not self.google_client_secret:
            logger.warning("⚠️  GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set. Calendar and Fit connections will fail.")

        logger.info("=" * 80)
        logger.info("Dashboard Sync Configuration Loaded")
        logger.info("=" * 80)
        logger.info(f"Environment: {self.environment}")
        logger.info(f"Debug: {self.debug}")
        logger.info(f"App URL: {self.app_url}")
        logger.info(f"Fathom: {'✅ Configured' if self.fathom_client_id else '❌ Not configured'}")
        logger.info(f"Google: {'✅ Configured' if self.google_client_id else '❌ Not configured'}")
        logger.info(f"Auto-sync: {'✅ Every ' + str(self.sync_interval_minutes) + ' min' if self.enable_auto_sync else '❌ Disabled'}")
        logger.info(f"Sentry: {'✅ Configured' if self.sentry_dsn else '❌ Not configured'}")
        logger.info("=" * 80)

        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
