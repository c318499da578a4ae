"""
Global Error Handler Middleware
Catches all unhandled exceptions and returns structured error responses

Sync errors that escape a route are mapped to the same status codes the
import endpoint uses; anything else is a 500.
"""
import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.services.sync.errors import (
    NotConnectedError,
    PersistenceError,
    RefreshFailedError,
    RemoteFetchError,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their parents
SYNC_ERROR_STATUS = (
    (NotConnectedError, 400),
    (RefreshFailedError, 401),
    (TokenExchangeError, 500),
    (RemoteFetchError, 502),
    (PersistenceError, 503),
)


def status_for_error(exc_or_name) -> int:
    """
    HTTP status for a sync failure.

    Accepts an exception instance or an exception class name (SyncResult.error_type).
    """
    for error_cls, status_code in SYNC_ERROR_STATUS:
        if isinstance(exc_or_name, str):
            if exc_or_name == error_cls.__name__:
                return status_code
        elif isinstance(exc_or_name, error_cls):
            return status_code
    return 500


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handler middleware.
    Catches all unhandled exceptions and returns JSON error responses.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            status_code = status_for_error(exc)

            # Log the full exception with traceback
            logger.error(
                f"Unhandled {type(exc).__name__} during request",
                exc_info=True,
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "client_host": request.client.host if request.client else None
                }
            )

            # Return structured error response
            return JSONResponse(
                status_code=status_code,
                content={
                    "detail": str(exc) if status_code != 500 else "Internal server error",
                    "error_type": type(exc).__name__,
                    "path": request.url.path
                }
            )
