"""
Connector Schemas
Models for provider webhook events
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class FathomWebhook(BaseModel):
    """
    Fathom "new meeting content ready" webhook payload.

    Fathom pushes one meeting per request, including its transcript when the
    webhook was created with include_transcript=true.
    """
    model_config = ConfigDict(extra="allow")  # Allow additional fields from Fathom

    recording_id: Optional[Any] = None
    title: Optional[str] = None
    meeting_title: Optional[str] = None
    created_at: Optional[str] = None
    recording_start_time: Optional[str] = None
    recording_end_time: Optional[str] = None
    transcript: Optional[List[Dict[str, Any]]] = None


class WebhookResponse(BaseModel):
    """Response for POST /api/{provider}/webhook/{user_id}."""
    success: bool
    duplicate: bool = False
