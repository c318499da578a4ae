"""
Pydantic Schemas
All request/response models for API endpoints
"""

# Connector schemas (webhooks)
from .connector import FathomWebhook, WebhookResponse

# Health check schemas
from .health import HealthResponse

# Sync schemas
from .sync import (
    SKIP_ALREADY_EXISTS,
    SKIP_ERROR,
    SKIP_NO_RECORDING_ID,
    ConnectionStatusResponse,
    ImportedMeeting,
    ImportResponse,
    MeetingsResponse,
    SchedulerRunSummary,
    SkippedMeeting,
    SyncResult,
)

__all__ = [
    # Connector
    "FathomWebhook",
    "WebhookResponse",
    # Health
    "HealthResponse",
    # Sync
    "SKIP_ALREADY_EXISTS",
    "SKIP_ERROR",
    "SKIP_NO_RECORDING_ID",
    "ConnectionStatusResponse",
    "ImportedMeeting",
    "ImportResponse",
    "MeetingsResponse",
    "SchedulerRunSummary",
    "SkippedMeeting",
    "SyncResult",
]
