"""
Rate Limiting Middleware
Prevents abuse of the expensive endpoints using slowapi

RATE LIMITS:
- Global: 100 requests/minute per key (default)
- Manual import: 10/minute per user (each import walks the whole Fathom history)
- OAuth connect: 20/hour per user

Keyed by the dashboard user id when present, otherwise by client IP.
"""
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from app.core.security import sanitize_for_logging

logger = logging.getLogger(__name__)

IMPORT_RATE_LIMIT = "10/minute"
CONNECT_RATE_LIMIT = "20/hour"


def rate_limit_key_func(request: Request) -> str:
    """
    Determine rate limit key for a request.

    STRATEGY:
    - user_id query parameter or X-User-Id header: per-user bucket
    - otherwise: per-IP bucket (webhooks, health checks)
    """
    user_id = (request.query_params.get("user_id") or request.headers.get("X-User-Id") or "").strip()
    if user_id:
        logger.debug(f"Rate limit key: user_id={sanitize_for_logging(user_id, max_length=8)}")
        return f"user:{user_id}"

    ip = get_remote_address(request)
    logger.debug(f"Rate limit key: ip={ip}")
    return f"ip:{ip}"


# Initialize rate limiter with smart key function
limiter = Limiter(
    key_func=rate_limit_key_func,
    default_limits=["100/minute"],  # Global default for all endpoints
    storage_uri="memory://",  # In-memory storage (single instance)
)
