"""Tests for request identity, OAuth state, CORS origins and error mapping helpers."""

import base64

import pytest

from app.core.security import decode_oauth_state, encode_oauth_state, sanitize_for_logging
from app.middleware.cors import parse_allowed_origins
from app.middleware.error_handler import status_for_error
from app.services.sync.errors import (
    NotConnectedError,
    PersistenceError,
    RefreshFailedError,
    RemoteFetchError,
    TokenExchangeError,
)
from app.services.sync.persistence import prepare_webhook_meeting


class TestOAuthState:
    def test_state_is_base64_json(self) -> None:
        state = encode_oauth_state("user-1")

        assert base64.b64decode(state) == b'{"userId": "user-1"}'
        assert decode_oauth_state(state) == "user-1"

    @pytest.mark.parametrize("state", [
        "%%%",
        base64.b64encode(b"not json").decode(),
        base64.b64encode(b'["user-1"]').decode(),
        base64.b64encode(b'{"userId": "   "}').decode(),
        base64.b64encode(b'{"userId": 42}').decode(),
    ])
    def test_malformed_state(self, state) -> None:
        assert decode_oauth_state(state) is None


class TestSanitizeForLogging:
    def test_masks_email(self) -> None:
        assert sanitize_for_logging("user@example.com") == "u***@example.com"

    def test_truncates(self) -> None:
        assert sanitize_for_logging("abcdefghij", max_length=4) == "abcd..."

    def test_empty(self) -> None:
        assert sanitize_for_logging("") == ""


class TestCorsOrigins:
    def test_splits_and_dedupes(self) -> None:
        origins = parse_allowed_origins(
            "https://a.example, https://b.example/ ,null,,https://a.example",
            "https://api.example",
        )

        assert origins == ["https://a.example", "https://b.example", "https://api.example"]


class TestStatusForError:
    @pytest.mark.parametrize("error, status_code", [
        (NotConnectedError("u1", "fathom"), 400),
        (RefreshFailedError("rejected"), 401),
        (TokenExchangeError("rejected"), 500),
        (RemoteFetchError("down"), 502),
        (PersistenceError("db down"), 503),
        (RuntimeError("boom"), 500),
        ("NotConnectedError", 400),
        ("RefreshFailedError", 401),
        ("RemoteFetchError", 502),
        ("ValueError", 500),
        (None, 500),
    ])
    def test_mapping(self, error, status_code) -> None:
        assert status_for_error(error) == status_code


class TestPrepareWebhookMeeting:
    def test_builds_record_with_transcript(self) -> None:
        record = prepare_webhook_meeting({
            "recording_id": 12,
            "title": "Intro",
            "created_at": "2024-05-01T10:00:00Z",
            "recording_start_time": "2024-05-01T10:00:00Z",
            "recording_end_time": "2024-05-01T10:20:00Z",
            "transcript": [{"text": "hello"}],
        })

        assert record["external_id"] == "12"
        assert record["transcript"] == [{"text": "hello"}]
        assert record["metadata"]["call_duration"] == 20

    def test_without_recording_id(self) -> None:
        assert prepare_webhook_meeting({"title": "Intro"}) is None
