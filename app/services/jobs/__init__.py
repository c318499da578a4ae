"""
Background Jobs
APScheduler-based periodic meeting sync
"""
from app.services.jobs.scheduler import SyncScheduler

__all__ = ["SyncScheduler"]
