"""
Sync Schemas
Models for meeting sync results and the import/status endpoints
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

SKIP_NO_RECORDING_ID = "no_recording_id"
SKIP_ALREADY_EXISTS = "already_exists"
SKIP_ERROR = "error"


class ImportedMeeting(BaseModel):
    """A meeting stored during a sync pass."""
    external_id: str
    title: Optional[str] = None
    created_at: Optional[str] = None
    transcript_items: int = 0


class SkippedMeeting(BaseModel):
    """A remote meeting the pass touched but did not store."""
    external_id: Optional[str] = None
    title: Optional[str] = None
    created_at: Optional[str] = None
    reason: str  # no_recording_id | already_exists | error
    error: Optional[str] = None


class SyncResult(BaseModel):
    """
    Outcome of one sync pass for one user.
    Never persisted; returned to the import endpoint and the scheduler.
    """
    user_id: str
    imported: int = 0
    skipped: int = 0
    meetings: List[ImportedMeeting] = Field(default_factory=list)
    skipped_meetings: List[SkippedMeeting] = Field(default_factory=list)
    is_incremental: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None  # Exception class name of the top-level failure
    started_at: Optional[datetime] = None
    watermark_advanced: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def touched(self) -> int:
        """Remote meetings that were imported or skipped (silently filtered ones excluded)."""
        return len(self.meetings) + len(self.skipped_meetings)


class ImportResponse(BaseModel):
    """Response for POST /api/{provider}/import."""
    success: bool
    imported: int
    skipped: int
    meetings: List[ImportedMeeting] = Field(default_factory=list)
    skipped_meetings: List[SkippedMeeting] = Field(default_factory=list)
    is_incremental: bool
    error: Optional[str] = None


class ConnectionStatusResponse(BaseModel):
    """Response for GET /api/{provider}/status."""
    connected: bool
    user_id: str
    provider: str
    has_refresh_token: bool = False


class MeetingsResponse(BaseModel):
    """Response for GET /api/fathom/meetings."""
    meetings: List[Dict[str, Any]]


class SchedulerRunSummary(BaseModel):
    """Outcome of one scheduler tick across all connected users."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[SyncResult] = Field(default_factory=list)
