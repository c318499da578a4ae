"""
Database helper functions for the sync engine
Handles OAuth connections (credential store), sync watermarks, and meeting persistence

Tables:
- oauth_connections: one row per (user_id, provider) with tokens, last_sync_at watermark and webhook_id
- meeting_transcripts: one row per (user_id, external_id), enforced by a UNIQUE constraint
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from app.services.sync.errors import PersistenceError

logger = logging.getLogger(__name__)


# ============================================================================
# SCHEMA
# ============================================================================

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS oauth_connections (
        user_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        access_token TEXT,
        refresh_token TEXT,
        token_expires_at BIGINT,
        last_sync_at TIMESTAMPTZ,
        webhook_id TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (user_id, provider)
    )
    """,
    """
    ALTER TABLE oauth_connections ADD COLUMN IF NOT EXISTS webhook_id TEXT
    """,
    """
    CREATE TABLE IF NOT EXISTS meeting_transcripts (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        external_id TEXT NOT NULL,
        title TEXT,
        transcript JSONB NOT NULL DEFAULT '[]'::jsonb,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        source TEXT NOT NULL DEFAULT 'sync',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        inserted_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT uq_meeting_transcripts_user_external UNIQUE (user_id, external_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_meeting_transcripts_user_created
        ON meeting_transcripts (user_id, created_at DESC)
    """,
]


# ============================================================================
# DATABASE CONNECTION
# ============================================================================

async def get_db_connection(database_url: str) -> psycopg.AsyncConnection:
    """Open a new async database connection.

    Note: Creates a new connection each time. Rows are returned as dicts.
    """
    return await psycopg.AsyncConnection.connect(database_url, autocommit=False, row_factory=dict_row)


async def ensure_schema(database_url: str):
    """Create tables and indexes if they don't exist (called on startup)."""
    try:
        async with await get_db_connection(database_url) as conn:
            async with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    await cur.execute(statement)
        logger.info("✅ Database schema verified")
    except psycopg.Error as e:
        logger.error(f"❌ Failed to apply database schema: {e}")
        raise PersistenceError(f"Failed to apply database schema: {e}") from e


class _Store:
    """Shared plumbing: one short-lived connection per call, psycopg errors wrapped."""

    def __init__(self, database_url: str):
        self._database_url = database_url

    async def _fetchone(self, query: str, params: tuple) -> Optional[Dict[str, Any]]:
        try:
            async with await get_db_connection(self._database_url) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    return await cur.fetchone()
        except psycopg.Error as e:
            raise PersistenceError(str(e)) from e

    async def _fetchall(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        try:
            async with await get_db_connection(self._database_url) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    return await cur.fetchall()
        except psycopg.Error as e:
            raise PersistenceError(str(e)) from e

    async def _execute(self, query: str, params: tuple) -> int:
        try:
            async with await get_db_connection(self._database_url) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    return cur.rowcount
        except psycopg.Error as e:
            raise PersistenceError(str(e)) from e


# ============================================================================
# CONNECTION MANAGEMENT (credential store)
# ============================================================================

class ConnectionStore(_Store):
    """Per-user OAuth credentials and the sync watermark."""

    async def get_connection(self, user_id: str, provider: str) -> Optional[Dict[str, Any]]:
        """
        Get the stored connection row for a user/provider.

        Returns:
            Dict with access_token, refresh_token, token_expires_at, last_sync_at, webhook_id; None if missing
        """
        return await self._fetchone(
            """
            SELECT user_id, provider, access_token, refresh_token, token_expires_at, last_sync_at, webhook_id
            FROM oauth_connections
            WHERE user_id = %s AND provider = %s
            """,
            (user_id, provider)
        )

    async def save_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        token_expires_at: int
    ):
        """
        Save or update tokens for a user/provider (upsert).

        The watermark (last_sync_at) is never touched here.
        """
        await self._execute(
            """
            INSERT INTO oauth_connections (user_id, provider, access_token, refresh_token, token_expires_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (user_id, provider)
            DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                token_expires_at = EXCLUDED.token_expires_at,
                updated_at = now()
            """,
            (user_id, provider, access_token, refresh_token, int(token_expires_at))
        )
        logger.info(f"Saved {provider} tokens for user {user_id}")

    async def get_last_sync_at(self, user_id: str, provider: str) -> Optional[datetime]:
        """Get the sync watermark for a user (None = never synced)."""
        row = await self._fetchone(
            "SELECT last_sync_at FROM oauth_connections WHERE user_id = %s AND provider = %s",
            (user_id, provider)
        )
        return row["last_sync_at"] if row else None

    async def update_last_sync_at(self, user_id: str, provider: str, synced_at: datetime):
        """
        Advance the sync watermark.

        GREATEST keeps the watermark monotonic even if a stale pass finishes late.
        """
        await self._execute(
            """
            UPDATE oauth_connections
            SET last_sync_at = GREATEST(COALESCE(last_sync_at, %s), %s),
                updated_at = now()
            WHERE user_id = %s AND provider = %s
            """,
            (synced_at, synced_at, user_id, provider)
        )

    async def save_webhook_id(self, user_id: str, provider: str, webhook_id: str):
        """Remember the provider webhook subscription created for this connection."""
        await self._execute(
            """
            UPDATE oauth_connections
            SET webhook_id = %s,
                updated_at = now()
            WHERE user_id = %s AND provider = %s
            """,
            (webhook_id, user_id, provider)
        )
        logger.info(f"Saved {provider} webhook {webhook_id} for user {user_id}")

    async def list_connected_user_ids(self, provider: str) -> List[str]:
        """List users with a stored access token for the provider."""
        rows = await self._fetchall(
            """
            SELECT user_id FROM oauth_connections
            WHERE provider = %s AND access_token IS NOT NULL
            ORDER BY user_id
            """,
            (provider,)
        )
        return [row["user_id"] for row in rows]


# ============================================================================
# MEETING PERSISTENCE (record store)
# ============================================================================

class MeetingStore(_Store):
    """Meeting transcripts keyed by (user_id, external_id)."""

    async def exists(self, user_id: str, external_id: str) -> bool:
        row = await self._fetchone(
            "SELECT 1 AS found FROM meeting_transcripts WHERE user_id = %s AND external_id = %s",
            (user_id, external_id)
        )
        return row is not None

    async def insert_meeting(self, user_id: str, meeting: Dict[str, Any], source: str = "sync") -> bool:
        """
        Insert a meeting unless (user_id, external_id) already exists.

        Args:
            user_id: Owner of the meeting
            meeting: Canonical meeting record (see canonical.build_meeting_record)
            source: "sync" or "webhook"

        Returns:
            True if a row was inserted, False if it already existed
        """
        row = await self._fetchone(
            """
            INSERT INTO meeting_transcripts (user_id, external_id, title, transcript, metadata, source, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, now()))
            ON CONFLICT (user_id, external_id) DO NOTHING
            RETURNING id
            """,
            (
                user_id,
                meeting["external_id"],
                meeting.get("title"),
                Jsonb(meeting.get("transcript") or []),
                Jsonb(meeting.get("metadata") or {}),
                source,
                meeting.get("created_at"),
            )
        )
        return row is not None

    async def list_meetings(self, user_id: str) -> List[Dict[str, Any]]:
        """Get stored meetings for a user, newest first."""
        return await self._fetchall(
            """
            SELECT external_id, title, transcript, metadata, source, created_at
            FROM meeting_transcripts
            WHERE user_id = %s
            ORDER BY created_at DESC
            """,
            (user_id,)
        )
