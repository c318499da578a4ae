"""
Sync Routes
Manual meeting import, connection status and stored meetings
"""
import logging
import time
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.dependencies import get_connection_store, get_meeting_store, get_sync_engine
from app.core.security import get_user_id
from app.middleware.error_handler import status_for_error
from app.middleware.rate_limit import IMPORT_RATE_LIMIT, limiter
from app.models.schemas import ConnectionStatusResponse, ImportResponse, MeetingsResponse
from app.services.sync.database import ConnectionStore, MeetingStore
from app.services.sync.orchestration.meeting_sync import MeetingSyncEngine
from app.services.sync.providers import FATHOM, get_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sync"])


@router.post("/{provider}/import", response_model=ImportResponse)
@limiter.limit(IMPORT_RATE_LIMIT)
async def import_meetings(
    request: Request,  # Required for rate limiting
    provider: str,
    user_id: str = Depends(get_user_id),
    engine: MeetingSyncEngine = Depends(get_sync_engine)
):
    """
    Run one sync pass now and return what was imported.

    Status codes on failure (body has success=false and the partial lists):
    - 400: not connected
    - 401: token refresh rejected (reconnect required)
    - 502: Fathom API failed mid-pass
    - 500: anything else
    """
    if provider != engine.provider:
        raise HTTPException(status_code=404, detail=f"Import is not supported for provider: {provider}")

    logger.info(f"📥 Manual import requested for user {user_id}")
    result = await engine.sync(user_id)

    response = ImportResponse(
        success=result.succeeded,
        imported=result.imported,
        skipped=result.skipped,
        meetings=result.meetings,
        skipped_meetings=result.skipped_meetings,
        is_incremental=result.is_incremental,
        error=result.error,
    )

    if not result.succeeded:
        return JSONResponse(
            status_code=status_for_error(result.error_type),
            content=response.model_dump(mode="json")
        )
    return response


@router.get("/{provider}/status", response_model=ConnectionStatusResponse)
async def connection_status(
    provider: str,
    user_id: str = Depends(get_user_id),
    store: ConnectionStore = Depends(get_connection_store)
):
    """Report whether the user holds an unexpired token for the provider."""
    if get_provider(provider) is None:
        raise HTTPException(status_code=404, detail=f"Unsupported provider: {provider}")

    connection = await store.get_connection(user_id, provider)
    if not connection:
        return ConnectionStatusResponse(connected=False, user_id=user_id, provider=provider)

    expires_at = connection.get("token_expires_at") or 0
    return ConnectionStatusResponse(
        connected=bool(connection.get("access_token")) and expires_at >= int(time.time()),
        user_id=user_id,
        provider=provider,
        has_refresh_token=bool(connection.get("refresh_token")),
    )


@router.get(f"/{FATHOM}/meetings", response_model=MeetingsResponse)
async def list_meetings(
    user_id: str = Depends(get_user_id),
    store: MeetingStore = Depends(get_meeting_store)
):
    """Stored Fathom meetings for the user, newest first."""
    meetings = await store.list_meetings(user_id)
    return MeetingsResponse(meetings=meetings)
