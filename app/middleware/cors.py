"""
CORS Configuration
Cross-Origin Resource Sharing settings for the dashboard frontend

SECURITY:
- Production: only origins listed in CORS_ALLOWED_ORIGINS (+ APP_URL)
- Development: all origins, without credentials
- NO "null" origin (prevents file:// attacks)
"""
import logging
from typing import List
from fastapi.middleware.cors import CORSMiddleware as FastAPICORSMiddleware
from app.core.config import settings

logger = logging.getLogger(__name__)


def parse_allowed_origins(raw: str, app_url: str) -> List[str]:
    """Split the comma-separated origin list, drop blanks/"null", and always include the app itself."""
    origins = []
    for origin in (raw or "").split(","):
        origin = origin.strip().rstrip("/")
        if origin and origin != "null" and origin not in origins:
            origins.append(origin)

    app_origin = (app_url or "").rstrip("/")
    if app_origin and app_origin not in origins:
        origins.append(app_origin)
    return origins


def get_cors_middleware():
    """
    Returns configured CORS middleware with environment-based settings.

    SECURITY:
    - Production: Strict origin whitelist from settings
    - Development: Allow all origins for local dashboards
    - Never allows "null" origin (file:// protocol attacks)
    """
    if settings.environment == "development":
        logger.warning("⚠️  DEV MODE: CORS allowing ALL origins (*)")
        return FastAPICORSMiddleware, {
            "allow_origins": ["*"],
            "allow_credentials": False,  # Must be False when using "*"
            "allow_methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["*"],
            "expose_headers": ["X-Request-ID"],
            "max_age": 600,
        }

    allowed_origins = parse_allowed_origins(settings.cors_allowed_origins, settings.app_url)
    logger.info(f"🌐 CORS allowed origins: {allowed_origins}")

    return FastAPICORSMiddleware, {
        "allow_origins": allowed_origins,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],  # Explicit methods
        "allow_headers": [
            "Content-Type",
            "X-User-Id",
            "X-Request-ID",
        ],  # Explicit headers (more secure than "*")
        "expose_headers": ["X-Request-ID"],  # Headers frontend can read
        "max_age": 600,  # Cache preflight requests for 10 minutes
    }
