"""
Webhook Routes
Receives Fathom "meeting content ready" webhooks and stores them in the background
"""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.core.dependencies import get_meeting_store
from app.models.schemas import FathomWebhook, WebhookResponse
from app.services.sync.database import MeetingStore
from app.services.sync.persistence import is_duplicate, persist_webhook_meeting, prepare_webhook_meeting
from app.services.sync.providers import FATHOM

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/{provider}/webhook/{user_id}", response_model=WebhookResponse)
async def fathom_webhook(
    provider: str,
    user_id: str,
    payload: FathomWebhook,
    background_tasks: BackgroundTasks,
    meeting_store: MeetingStore = Depends(get_meeting_store)
):
    """
    Handle a Fathom webhook for one meeting.

    - Duplicate (already stored): acknowledged with duplicate=true, nothing written
    - New: acknowledged immediately, insert runs as a background task
    """
    if provider != FATHOM:
        raise HTTPException(status_code=404, detail=f"Webhooks are not supported for provider: {provider}")

    user_id = user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing user_id")

    record = prepare_webhook_meeting(payload.model_dump())
    if record is None:
        logger.warning(f"Webhook for user {user_id} without recording_id")
        raise HTTPException(status_code=400, detail="Missing recording_id")

    external_id = record["external_id"]
    logger.info(f"📨 Received Fathom webhook for meeting {external_id} (user {user_id})")

    if await is_duplicate(meeting_store, user_id, external_id):
        logger.info(f"⏭️ Webhook meeting {external_id} already stored for user {user_id}")
        return WebhookResponse(success=True, duplicate=True)

    background_tasks.add_task(persist_webhook_meeting, meeting_store, user_id, record)
    return WebhookResponse(success=True)
