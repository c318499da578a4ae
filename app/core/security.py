"""
Security and Request Identity
Resolves the calling user and encodes OAuth state

IDENTITY:
- The dashboard passes the user id as ?user_id=... or the X-User-Id header
- No sessions or JWTs; the user id scopes every stored row

OAUTH STATE:
- base64(JSON {"userId": ...}) round-trips the user id through the provider consent page
"""
import base64
import binascii
import json
import logging
from typing import Optional
from fastapi import Header, HTTPException, Query, status

logger = logging.getLogger(__name__)


# ============================================================================
# USER IDENTITY
# ============================================================================

async def get_user_id(
    user_id: Optional[str] = Query(default=None, description="Dashboard user id"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Resolve the caller's user id.

    Query parameter wins over the header; surrounding whitespace is trimmed.

    Raises:
        HTTPException 400 if neither is provided or the value is blank
    """
    candidate = user_id if user_id is not None and user_id.strip() else x_user_id
    resolved = (candidate or "").strip()

    if not resolved:
        logger.warning("Request without user id")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing user_id (query parameter or X-User-Id header)"
        )

    return resolved


# ============================================================================
# OAUTH STATE
# ============================================================================

def encode_oauth_state(user_id: str) -> str:
    """Encode the user id into the OAuth state parameter."""
    payload = json.dumps({"userId": user_id}).encode("utf-8")
    return base64.b64encode(payload).decode("ascii")


def decode_oauth_state(state: str) -> Optional[str]:
    """
    Decode the OAuth state parameter back into a user id.

    Returns:
        The user id, or None if the state is malformed
    """
    try:
        data = json.loads(base64.b64decode(state, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError):
        logger.warning(f"Malformed OAuth state: {sanitize_for_logging(state)}")
        return None

    if not isinstance(data, dict):
        return None

    user_id = data.get("userId")
    if not isinstance(user_id, str) or not user_id.strip():
        return None
    return user_id.strip()


def sanitize_for_logging(text: str, max_length: int = 50) -> str:
    """
    Sanitize sensitive data for logging (prevent PII leakage).

    Truncates long strings and masks email addresses.

    Example:
        "user@example.com" -> "u***@example.com"
        "very long text..." -> "very long te..."
    """
    if not text:
        return ""

    # Truncate long strings
    if len(text) > max_length:
        text = text[:max_length] + "..."

    # Mask emails (keep first char and domain)
    if "@" in text:
        parts = text.split("@")
        if len(parts) == 2:
            local = parts[0]
            domain = parts[1]
            masked_local = local[0] + "***" if len(local) > 1 else local
            text = f"{masked_local}@{domain}"

    return text
