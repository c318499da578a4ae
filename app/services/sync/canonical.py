"""
Canonical meeting records
Builds the row persisted for a meeting from a normalized remote meeting + transcript

Both the sync engine and the webhook ingress go through build_meeting_record,
so a meeting stored by either path has the same shape.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with "Z" or an offset), epoch seconds, or datetimes.
    Naive values are assumed to be UTC. Returns None when the value is missing or invalid.

    Examples:
        >>> parse_timestamp("2024-05-01T10:00:00Z")
        datetime.datetime(2024, 5, 1, 10, 0, tzinfo=datetime.timezone.utc)

        >>> parse_timestamp(None) is None
        True
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def compute_call_duration(start: Any, end: Any) -> Optional[int]:
    """
    Call duration in whole minutes (rounded), or None.

    None when either timestamp is missing/invalid or end is not after start.
    """
    start_time = parse_timestamp(start)
    end_time = parse_timestamp(end)
    if not start_time or not end_time:
        return None

    seconds = (end_time - start_time).total_seconds()
    if seconds <= 0:
        return None
    return int(round(seconds / 60))


def build_meeting_record(meeting: Dict[str, Any], transcript: List[Any]) -> Dict[str, Any]:
    """
    Build the canonical meeting record to persist.

    Args:
        meeting: Normalized meeting (see providers.fathom.normalize_fathom_meeting)
        transcript: Ordered list of utterance entries

    Returns:
        Dict with external_id, title, created_at, transcript, metadata
    """
    created_at = parse_timestamp(meeting.get("created_at"))
    call_date = (
        meeting.get("recording_start_time")
        or meeting.get("created_at")
        or datetime.now(timezone.utc).isoformat()
    )

    call_duration = compute_call_duration(
        meeting.get("recording_start_time"),
        meeting.get("recording_end_time"),
    )
    if call_duration is not None:
        logger.debug(f"⏱️ Calculated duration: {call_duration} min for {meeting.get('external_id')}")

    return {
        "external_id": meeting["external_id"],
        "title": meeting.get("title"),
        "created_at": created_at,
        "transcript": list(transcript or []),
        "metadata": {
            "meeting_id": meeting["external_id"],
            "call_duration": call_duration,
            "call_date": call_date.isoformat() if isinstance(call_date, datetime) else call_date,
        },
    }
