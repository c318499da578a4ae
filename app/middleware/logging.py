"""
Request Logging Middleware
Logs all HTTP requests and responses with timing information

Every response carries an X-Request-ID (echoed from the request when present)
so dashboard errors can be matched to server logs.
"""
import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Polled by uptime checks; logged at DEBUG to keep INFO logs readable
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Request logging middleware.
    Logs every HTTP request with method, path, user, status code, and duration.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        user_id = request.query_params.get("user_id") or request.headers.get("X-User-Id")
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms) [{request_id}]",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "user_id": user_id,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_host": request.client.host if request.client else None
            }
        )

        return response
