"""
Health Check Schemas
Models for system health endpoints
"""
from typing import Optional
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    auto_sync: bool
    last_auto_sync_at: Optional[str] = None
