"""
Standalone Sync Worker
Runs the automatic Fathom sync without the HTTP API

Usage:
    python worker.py            # run the scheduler until interrupted
    python worker.py --once     # run one sync for all connected users and exit

Deployment:
    - Type: Background Worker
    - Start Command: python worker.py
    - Environment: Same as main app (DATABASE_URL, FATHOM_CLIENT_ID, etc.)
    - Set ENABLE_AUTO_SYNC=false on the web service to avoid double scheduling
"""
import asyncio
import logging
import signal
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

from app.core.config import settings
from app.core.dependencies import get_scheduler, initialize_clients, shutdown_clients

# Initialize Sentry for error tracking (if configured)
if settings.sentry_dsn:
    try:
        import sentry_sdk
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,  # 10% of runs for performance monitoring
            profiles_sample_rate=0.1,
            integrations=[
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
            ]
        )
        logger.info("✅ Sentry initialized in worker")
    except Exception as e:
        logger.warning(f"⚠️  Failed to initialize Sentry in worker: {e}")
else:
    logger.info("ℹ️  Sentry not configured (SENTRY_DSN not set)")


async def run_worker(once: bool = False) -> int:
    """Run the scheduler until SIGINT/SIGTERM, or a single sync with once=True."""
    await initialize_clients()
    try:
        scheduler = get_scheduler()

        if once:
            summary = await scheduler.run_once()
            return 0 if summary.failed == 0 else 1

        if not scheduler.enabled:
            logger.error("❌ ENABLE_AUTO_SYNC is false, nothing to do")
            return 1

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass  # Windows

        await scheduler.start()
        logger.info("✅ Sync worker running")
        await stop_event.wait()
        logger.info("Stopping sync worker...")
        return 0
    finally:
        await shutdown_clients()


if __name__ == "__main__":
    sys.exit(asyncio.run(run_worker(once="--once" in sys.argv[1:])))
