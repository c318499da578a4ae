"""
Data Sync System
Meeting sync orchestration for OAuth-connected providers
"""
from app.services.sync.errors import (
    NotConnectedError,
    PersistenceError,
    RefreshFailedError,
    RemoteFetchError,
    SyncError,
    TokenError,
    TokenExchangeError,
)
from app.services.sync.database import ConnectionStore, MeetingStore, ensure_schema
from app.services.sync.oauth import TokenRefresher
from app.services.sync.providers.fathom import FathomClient
from app.services.sync.orchestration.meeting_sync import MeetingSyncEngine

__all__ = [
    "NotConnectedError",
    "PersistenceError",
    "RefreshFailedError",
    "RemoteFetchError",
    "SyncError",
    "TokenError",
    "TokenExchangeError",
    "ConnectionStore",
    "MeetingStore",
    "ensure_schema",
    "TokenRefresher",
    "FathomClient",
    "MeetingSyncEngine",
]
