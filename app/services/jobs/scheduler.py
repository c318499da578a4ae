"""
Automatic Sync Scheduler
Runs a sync pass for every connected Fathom user on a fixed interval

Runs inside the API process (started from the FastAPI lifespan) or standalone
via worker.py. One user's failure never stops the others.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.models.schemas.sync import SchedulerRunSummary, SyncResult
from app.services.sync.database import ConnectionStore
from app.services.sync.errors import PersistenceError
from app.services.sync.orchestration.meeting_sync import MeetingSyncEngine

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "fathom_auto_sync"


class SyncScheduler:
    """
    Periodic Fathom sync for all connected users.

    Example usage:
        scheduler = SyncScheduler(connection_store, sync_engine, interval_minutes=30)
        await scheduler.start()
        ...
        await scheduler.shutdown()
    """

    def __init__(
        self,
        connection_store: ConnectionStore,
        sync_engine: MeetingSyncEngine,
        interval_minutes: int = 30,
        concurrency: int = 1,
        enabled: bool = True,
        run_on_start: bool = False,
        shutdown_timeout: float = 30.0,
    ):
        self._connections = connection_store
        self._engine = sync_engine
        self._interval_minutes = interval_minutes
        self._concurrency = max(1, concurrency)
        self._enabled = enabled
        self._run_on_start = run_on_start
        self._shutdown_timeout = shutdown_timeout
        self._tick_task: Optional[asyncio.Task] = None
        self._scheduler: Optional[AsyncIOScheduler] = None
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[SchedulerRunSummary] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self):
        """Start the interval job (no-op when auto sync is disabled or already running)."""
        if not self._enabled:
            logger.info("ℹ️  Auto sync disabled (ENABLE_AUTO_SYNC=false)")
            return
        if self.running:
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        job_kwargs = {}
        if self._run_on_start:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            self._scheduled_run,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=AUTO_SYNC_JOB_ID,
            name="Fathom auto sync",
            replace_existing=True,
            coalesce=True,  # Skip missed runs
            max_instances=1,  # Don't overlap
            **job_kwargs,
        )
        self._scheduler.start()
        logger.info(
            f"⏰ Auto sync scheduler started (every {self._interval_minutes} min, "
            f"concurrency {self._concurrency}, run on start: {self._run_on_start})"
        )

    async def shutdown(self):
        """
        Stop the scheduler and let an in-flight tick finish.

        A tick still running after shutdown_timeout seconds is cancelled, so the
        caller can close the shared HTTP client without failing live syncs.
        """
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("⏰ Auto sync scheduler stopped")
        self._scheduler = None

        task = self._tick_task
        if task is None or task.done():
            return

        logger.info(f"⏳ Waiting up to {self._shutdown_timeout}s for the running auto sync to finish")
        done, _ = await asyncio.wait({task}, timeout=self._shutdown_timeout)
        if not done:
            logger.warning("⚠️ Auto sync still running at shutdown, cancelling it")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _scheduled_run(self) -> SchedulerRunSummary:
        """Interval job body: runs a tick as a task shutdown() can wait for."""
        self._tick_task = asyncio.ensure_future(self.run_once())
        try:
            return await self._tick_task
        finally:
            self._tick_task = None

    async def run_once(self) -> SchedulerRunSummary:
        """
        Sync every user with a stored Fathom access token.

        Returns:
            Summary with total/succeeded/failed counts and each user's SyncResult
        """
        self.last_run_at = datetime.now(timezone.utc)
        logger.info("🔄 Starting automatic sync for all connected users")

        try:
            user_ids = await self._connections.list_connected_user_ids(self._engine.provider)
        except PersistenceError as e:
            logger.error(f"❌ Could not list connected users, skipping this run: {e}")
            summary = SchedulerRunSummary()
            self.last_summary = summary
            return summary

        if not user_ids:
            logger.info("ℹ️  No users with Fathom connections found")

        semaphore = asyncio.Semaphore(self._concurrency)

        async def sync_user(user_id: str) -> SyncResult:
            async with semaphore:
                try:
                    return await self._engine.sync(user_id)
                except Exception as e:
                    logger.exception(f"❌ Auto sync failed for user {user_id}")
                    return SyncResult(user_id=user_id, error=str(e) or type(e).__name__, error_type=type(e).__name__)

        results: List[SyncResult] = await asyncio.gather(*(sync_user(user_id) for user_id in user_ids))

        succeeded = sum(1 for result in results if result.succeeded)
        summary = SchedulerRunSummary(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=list(results),
        )
        self.last_summary = summary

        for result in results:
            if result.succeeded:
                logger.info(f"✅ Auto sync for user {result.user_id}: {result.imported} imported, {result.skipped} skipped")
            else:
                logger.error(f"❌ Auto sync for user {result.user_id} failed: {result.error}")

        logger.info(
            f"🎉 Automatic sync completed: {summary.total} users, "
            f"{summary.succeeded} succeeded, {summary.failed} failed"
        )
        return summary
