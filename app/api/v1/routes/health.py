"""
Health Check Routes
System status and diagnostics
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends

from app.core.dependencies import get_scheduler
from app.models.schemas import HealthResponse
from app.services.jobs.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(scheduler: Optional[SyncScheduler] = Depends(get_scheduler)):
    """Health check endpoint, with the auto sync state."""
    last_run_at = scheduler.last_run_at if scheduler else None
    return HealthResponse(
        status="healthy",
        auto_sync=bool(scheduler and scheduler.running),
        last_auto_sync_at=last_run_at.isoformat() if last_run_at else None,
    )


@router.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Dashboard Sync API",
        "version": "1.0.0",
        "description": "OAuth connections and meeting transcript sync (Fathom, Google Calendar, Google Fit)",
        "endpoints": {
            "health": "/health",
            "connect": "/api/{provider}/connect",
            "status": "/api/{provider}/status",
            "import": "/api/fathom/import",
            "meetings": "/api/fathom/meetings",
            "webhook": "/api/fathom/webhook/{user_id}"
        }
    }
