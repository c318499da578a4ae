"""
Fathom API client
Paginated meeting listing, transcript download and payload normalization
"""
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from app.services.sync.errors import RemoteFetchError
from app.services.sync.providers import FATHOM

logger = logging.getLogger(__name__)


def _first(record: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among keys (snake_case API vs camelCase SDK payloads)."""
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_fathom_meeting(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a Fathom meeting (list item or webhook payload) into our schema.

    Fathom meeting structure (HTTP API):
    {
        "title": "Weekly sync",
        "meeting_title": "Weekly sync",
        "recording_id": 123456,
        "created_at": "2024-05-01T10:00:00Z",
        "recording_start_time": "2024-05-01T10:00:05Z",
        "recording_end_time": "2024-05-01T10:31:00Z",
        "transcript": [...]          # webhook payloads / include_transcript=true only
    }

    Returns:
        Dict with external_id (str or None), title, created_at, recording_start_time,
        recording_end_time, transcript (None when not included)
    """
    recording_id = _first(record, "recording_id", "recordingId")

    return {
        "external_id": str(recording_id) if recording_id is not None else None,
        "title": _first(record, "meeting_title", "meetingTitle", "title"),
        "created_at": _first(record, "created_at", "createdAt"),
        "recording_start_time": _first(record, "recording_start_time", "recordingStartTime"),
        "recording_end_time": _first(record, "recording_end_time", "recordingEndTime"),
        "transcript": record.get("transcript"),
    }


def extract_transcript(payload: Any) -> List[Any]:
    """
    Pull the utterance list out of a transcript response.

    Accepts a bare list, {"transcript": [...]} or {"items": [...]}; anything else is empty.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("transcript", "items"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class FathomClient:
    """
    Fathom public API wrapper.

    Every request asks the token source for a currently-valid access token, so
    a long pass transparently picks up refreshed tokens between pages.
    """

    def __init__(self, http_client: httpx.AsyncClient, token_source, base_url: str):
        """
        Args:
            http_client: Shared async HTTP client (carries the request timeout)
            token_source: Object exposing get_valid_access_token(user_id, provider)
            base_url: Fathom API base, e.g. https://api.fathom.ai/external/v1
        """
        self._http = http_client
        self._tokens = token_source
        self._base_url = base_url.rstrip("/")

    async def _request_json(
        self,
        method: str,
        user_id: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        access_token = await self._tokens.get_valid_access_token(user_id, FATHOM)
        url = f"{self._base_url}{path}"

        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=body,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Fathom request failed: {method} {path} - {type(e).__name__}: {e}")
            raise RemoteFetchError(f"Request to Fathom failed: {type(e).__name__}: {e}") from e

        if response.is_error:
            logger.error(f"❌ Fathom API error: {method} {path} - {response.status_code} {response.text[:500]}")
            raise RemoteFetchError(f"API returned {response.status_code}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteFetchError(f"Invalid JSON from Fathom for {method} {path}") from e

    async def list_meetings(self, user_id: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Lazily iterate over all of the user's meetings, page by page.

        Always starts from the first page. A failed page raises RemoteFetchError
        and the remaining pages are not fetched.

        Yields:
            Normalized meetings (see normalize_fathom_meeting)
        """
        cursor: Optional[str] = None
        page_number = 0

        while True:
            page_number += 1
            params = {"cursor": cursor} if cursor else None
            data = await self._request_json("GET", user_id, "/meetings", params)

            items = (data or {}).get("items") or []
            logger.info(f"📄 Processing page {page_number} with {len(items)} meetings for user {user_id}")

            for item in items:
                yield normalize_fathom_meeting(item)

            next_cursor = (data or {}).get("next_cursor")
            if not next_cursor:
                break
            if next_cursor == cursor:
                logger.warning(f"⚠️ Fathom returned the same cursor twice for user {user_id}, stopping pagination")
                break
            cursor = next_cursor

    async def get_transcript(self, user_id: str, external_id: str) -> List[Any]:
        """Fetch the transcript for one recording."""
        data = await self._request_json("GET", user_id, f"/recordings/{external_id}/transcript")
        transcript = extract_transcript(data)
        logger.info(f"✅ Got transcript with {len(transcript)} items for {external_id}")
        return transcript

    async def create_webhook(self, user_id: str, destination_url: str) -> str:
        """
        Subscribe a webhook that pushes the user's new meetings (with transcripts).

        Returns:
            The Fathom webhook id
        """
        data = await self._request_json(
            "POST",
            user_id,
            "/webhooks",
            body={
                "destination_url": destination_url,
                "include_transcript": True,
                "include_summary": True,
                "triggered_for": ["my_recordings"],
            },
        )

        webhook_id = data.get("id") if isinstance(data, dict) else None
        if webhook_id is None:
            raise RemoteFetchError("Fathom did not return a webhook id")

        logger.info(f"🪝 Created Fathom webhook {webhook_id} for user {user_id}")
        return str(webhook_id)
