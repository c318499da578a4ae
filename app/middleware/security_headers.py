"""
Security Headers Middleware
Adds security headers to all API responses

HEADERS ADDED:
- Strict-Transport-Security (HSTS, HTTPS deployments only)
- Content-Security-Policy (CSP)
- X-Content-Type-Options
- X-Frame-Options
- Referrer-Policy
- Cache-Control (no-store on /api responses)
"""
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers based on OWASP recommendations for JSON APIs.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # HSTS: only meaningful when served over HTTPS
        if settings.environment == "production" and settings.app_url.startswith("https://"):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        # OAuth callbacks redirect back to the dashboard with the user id in the URL
        response.headers["Referrer-Policy"] = "no-referrer"

        # API only, no scripts
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        # Remove server header (hide tech stack)
        if "server" in response.headers:
            del response.headers["server"]

        return response
