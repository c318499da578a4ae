"""
Circuit Breakers and Retry Logic
Prevents transient Postgres failures from dropping webhook-delivered meetings
"""
import logging
from functools import wraps
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from app.services.sync.errors import PersistenceError

logger = logging.getLogger(__name__)


# ============================================================================
# STORAGE CIRCUIT BREAKER
# ============================================================================

def with_storage_retry(func):
    """
    Decorator for meeting/connection store writes with retry logic.

    Retries on:
    - PersistenceError (connection refused, serialization failures, timeouts)

    Strategy:
    - Max 3 attempts
    - Exponential backoff: 1s, 2s, 4s
    - Re-raises the last error so callers can log the drop
    """
    @retry(
        retry=retry_if_exception_type(PersistenceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PersistenceError as e:
            logger.warning(f"Storage transient error, retrying... {e}")
            raise

    return async_wrapper


# ============================================================================
# GENERIC CIRCUIT BREAKER
# ============================================================================

def with_retry(max_attempts=3, min_wait=1, max_wait=10):
    """
    Generic retry decorator for async functions.

    Usage:
        @with_retry(max_attempts=5, min_wait=2, max_wait=8)
        async def ensure_schema(...):
            ...
    """
    def decorator(func):
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            return await func(*args, **kwargs)

        return async_wrapper

    return decorator
