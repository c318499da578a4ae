"""
Meeting sync orchestration engine
Fetches all remote Fathom meetings for a user and merges them into local storage

Pass lifecycle:
    DeterminingMode -> Fetching -> PerRecord(Checking, FetchingDetail, Persisting) -> Finalizing -> Done | Failed

Idempotence:
- Dedup is enforced by the (user_id, external_id) unique constraint; the existence
  pre-check only avoids downloading transcripts we already have
- The watermark (last_sync_at) moves only after a complete, uninterrupted page
  iteration, so a crashed or aborted pass is simply re-scanned next time
"""
import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.models.schemas.sync import (
    SKIP_ALREADY_EXISTS,
    SKIP_ERROR,
    SKIP_NO_RECORDING_ID,
    ImportedMeeting,
    SkippedMeeting,
    SyncResult,
)
from app.services.sync.canonical import build_meeting_record, parse_timestamp
from app.services.sync.database import ConnectionStore, MeetingStore
from app.services.sync.errors import NotConnectedError, PersistenceError, SyncError, TokenError
from app.services.sync.oauth import TokenRefresher
from app.services.sync.providers import FATHOM
from app.services.sync.providers.fathom import FathomClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class MeetingSyncEngine:
    """Runs sync passes for the Fathom meeting provider."""

    provider = FATHOM

    def __init__(
        self,
        connection_store: ConnectionStore,
        meeting_store: MeetingStore,
        token_refresher: TokenRefresher,
        fathom_client: FathomClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._connections = connection_store
        self._meetings = meeting_store
        self._tokens = token_refresher
        self._fathom = fathom_client
        self._clock = clock
        # One pass at a time per user: a manual import during a scheduled run waits for it.
        # Entries disappear once no pass holds or awaits the lock.
        self._user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def sync(self, user_id: str) -> SyncResult:
        """
        Run one sync pass for a user.

        Never raises for provider/storage failures: whole-pass failures come back
        with `error` set, per-meeting failures are listed in `skipped_meetings`.
        """
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        if lock.locked():
            logger.info(f"⏳ Sync already running for user {user_id}, waiting for it to finish")
        async with lock:
            return await self._run_pass(user_id)

    # ========================================================================
    # PASS STAGES
    # ========================================================================

    async def _determine_watermark(self, user_id: str) -> Optional[datetime]:
        try:
            last_sync_at = await self._connections.get_last_sync_at(user_id, self.provider)
        except PersistenceError as e:
            logger.warning(f"⚠️ Could not read last_sync_at, doing full sync for user {user_id}: {e}")
            return None
        return parse_timestamp(last_sync_at)

    async def _run_pass(self, user_id: str) -> SyncResult:
        started_at = self._clock()
        watermark = await self._determine_watermark(user_id)
        result = SyncResult(user_id=user_id, is_incremental=watermark is not None, started_at=started_at)

        if watermark is not None:
            logger.info(f"🔄 Incremental sync for user {user_id} - last sync: {watermark.isoformat()}")
        else:
            logger.info(f"🔄 Full sync for user {user_id} - no previous sync found")

        try:
            await self._tokens.get_valid_access_token(user_id, self.provider)
        except (NotConnectedError, TokenError) as e:
            logger.error(f"❌ Cannot sync user {user_id}: {e}")
            result.error = str(e) or "Failed to get Fathom access token"
            result.error_type = type(e).__name__
            return result

        completed = False
        try:
            async for meeting in self._fathom.list_meetings(user_id):
                await self._process_meeting(user_id, meeting, watermark, result)
            completed = True
        except SyncError as e:
            logger.error(f"❌ Sync aborted for user {user_id}: {e}")
            result.error = str(e)
            result.error_type = type(e).__name__
        except Exception as e:
            logger.exception(f"❌ Unexpected sync error for user {user_id}")
            result.error = str(e) or "Failed to sync meetings"
            result.error_type = type(e).__name__

        result.imported = len(result.meetings)
        result.skipped = len(result.skipped_meetings)

        if completed and result.touched > 0:
            await self._advance_watermark(user_id, started_at, watermark, result)
        elif result.touched > 0:
            logger.warning(
                f"⚠️ Not advancing last_sync_at for user {user_id}: pass ended early "
                f"after {result.imported} imported, {result.skipped} skipped"
            )

        logger.info(
            f"🎉 Finished {'incremental' if result.is_incremental else 'full'} sync for user {user_id} - "
            f"{result.imported} new meetings imported, {result.skipped} skipped"
        )
        return result

    async def _process_meeting(
        self,
        user_id: str,
        meeting: Dict[str, Any],
        watermark: Optional[datetime],
        result: SyncResult,
    ):
        external_id = meeting.get("external_id")
        title = meeting.get("title")
        created_at = _as_str(meeting.get("created_at"))

        def skip(reason: str, error: Optional[str] = None):
            result.skipped_meetings.append(
                SkippedMeeting(
                    external_id=external_id,
                    title=title,
                    created_at=created_at,
                    reason=reason,
                    error=error,
                )
            )

        if not external_id:
            logger.info(f"⚠️ Skipping meeting without recording id: {title}")
            skip(SKIP_NO_RECORDING_ID)
            return

        try:
            await self._merge_meeting(user_id, meeting, watermark, result, skip)
        except Exception as e:
            # A malformed record is skipped; the rest of the page still gets processed
            logger.exception(f"❌ Unexpected error processing meeting {external_id}")
            skip(SKIP_ERROR, str(e) or type(e).__name__)

    async def _merge_meeting(
        self,
        user_id: str,
        meeting: Dict[str, Any],
        watermark: Optional[datetime],
        result: SyncResult,
        skip: Callable[..., None],
    ):
        external_id = meeting["external_id"]
        title = meeting.get("title")
        created_at = _as_str(meeting.get("created_at"))

        # Incremental window: meetings at or before the watermark were handled by an earlier pass
        if watermark is not None:
            meeting_created_at = parse_timestamp(meeting.get("created_at"))
            if meeting_created_at is not None and meeting_created_at <= watermark:
                return

        try:
            if await self._meetings.exists(user_id, external_id):
                logger.info(f"⏭️ Skipping meeting {external_id} - already exists in database: {title}")
                skip(SKIP_ALREADY_EXISTS)
                return
        except PersistenceError as e:
            logger.error(f"❌ Existence check failed for {external_id}: {e}")
            skip(SKIP_ERROR, str(e))
            return

        logger.info(f"🗂️ Fetching transcript for: {external_id} - {title}")
        try:
            transcript = await self._fathom.get_transcript(user_id, external_id)
        except SyncError as e:
            logger.error(f"❌ Failed to fetch transcript for {external_id}: {e}")
            skip(SKIP_ERROR, str(e))
            return

        record = build_meeting_record(meeting, transcript)
        try:
            inserted = await self._meetings.insert_meeting(user_id, record, source="sync")
        except PersistenceError as e:
            logger.error(f"❌ Database insert error for {external_id}: {e}")
            skip(SKIP_ERROR, str(e))
            return

        if not inserted:
            # Lost a race with the webhook path or another writer
            logger.info(f"⏭️ Meeting {external_id} was stored concurrently, skipping")
            skip(SKIP_ALREADY_EXISTS)
            return

        result.meetings.append(
            ImportedMeeting(
                external_id=external_id,
                title=title,
                created_at=created_at,
                transcript_items=len(record["transcript"]),
            )
        )
        logger.info(f"✅ Saved transcript to database for: {external_id}")

    async def _advance_watermark(
        self,
        user_id: str,
        started_at: datetime,
        previous: Optional[datetime],
        result: SyncResult,
    ):
        synced_at = max(started_at, previous) if previous is not None else started_at
        try:
            await self._connections.update_last_sync_at(user_id, self.provider, synced_at)
        except PersistenceError as e:
            logger.warning(f"⚠️ Could not update last_sync_at for user {user_id}: {e}")
            return

        result.watermark_advanced = True
        logger.info(f"✅ Updated last_sync_at for user {user_id} to {synced_at.isoformat()}")
