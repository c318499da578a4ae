"""
Webhook meeting persistence
Turns pushed Fathom meetings into canonical records and stores them outside the request cycle
"""
import logging
from typing import Any, Dict, Optional

from app.core.circuit_breakers import with_storage_retry
from app.services.sync.canonical import build_meeting_record
from app.services.sync.database import MeetingStore
from app.services.sync.errors import PersistenceError
from app.services.sync.providers.fathom import extract_transcript, normalize_fathom_meeting

logger = logging.getLogger(__name__)


# ============================================================================
# RECORD PREPARATION
# ============================================================================

def prepare_webhook_meeting(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Build the canonical record for a webhook payload.

    Returns:
        Meeting record, or None when the payload carries no recording id
    """
    meeting = normalize_fathom_meeting(payload)
    if not meeting["external_id"]:
        return None

    transcript = extract_transcript(meeting.get("transcript"))
    return build_meeting_record(meeting, transcript)


async def is_duplicate(meeting_store: MeetingStore, user_id: str, external_id: str) -> bool:
    """Check whether the meeting is already stored for this user."""
    return await meeting_store.exists(user_id, external_id)


# ============================================================================
# BACKGROUND WRITE
# ============================================================================

@with_storage_retry
async def _insert_with_retry(meeting_store: MeetingStore, user_id: str, record: Dict[str, Any]) -> bool:
    return await meeting_store.insert_meeting(user_id, record, source="webhook")


async def persist_webhook_meeting(meeting_store: MeetingStore, user_id: str, record: Dict[str, Any]):
    """
    Store a webhook meeting (runs as a FastAPI background task).

    The webhook was already acknowledged, so a final storage failure can only be
    logged: the meeting is dropped here and picked up by the next sync pass.
    """
    external_id = record["external_id"]
    try:
        inserted = await _insert_with_retry(meeting_store, user_id, record)
    except PersistenceError as e:
        logger.error(f"❌ Dropping webhook meeting {external_id} for user {user_id} after retries: {e}")
        return

    if inserted:
        logger.info(f"✅ Stored webhook meeting {external_id} for user {user_id}")
    else:
        logger.info(f"⏭️ Webhook meeting {external_id} was already stored for user {user_id}")
