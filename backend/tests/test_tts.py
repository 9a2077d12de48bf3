"""
Tests for text-to-speech
========================
Covers:
- normalise_request: required text / user id, voice and model allow-lists,
  speed clamp, userId alias
- TextToSpeechService.synthesize: request body and auth header, non-2xx and
  transport errors -> TextToSpeechError
- record_usage: tts_usage row with truncated snippet, failures swallowed
- POST /api/v1/tts: bearer token required (401), body user_id must match
  the token (403), audio bytes with cache header, base64 encoding,
  400 on empty text, 502 on upstream failure

Run: pytest tests/test_tts.py -v
"""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from httpx import Response

from conftest import AUTH_HEADER, OTHER_USER_ID, USER_ID, FakeSupabase
from haven.models.tts import NormalisedTTSRequest, TTSRequest
from haven.services.tts import (
    InvalidTTSRequest,
    TextToSpeechError,
    TextToSpeechService,
    content_snippet,
    normalise_request,
)

_URL = "https://api.openai.com/v1/audio/speech"
_AUDIO = b"ID3\x04fake-mp3-bytes"


def _request(**overrides) -> NormalisedTTSRequest:
    fields = {"text": "Breathe in slowly.", "voice": "nova", "model": "tts-1", "speed": 1.0, "user_id": USER_ID}
    fields.update(overrides)
    return NormalisedTTSRequest(**fields)


# ---------------------------------------------------------------------------
# Request rules
# ---------------------------------------------------------------------------

class TestNormalise:

    def test_defaults(self):
        req = normalise_request(TTSRequest(text="hello", userId=USER_ID))
        assert (req.voice, req.model, req.speed) == ("nova", "tts-1", 1.0)
        assert req.user_id == USER_ID

    def test_valid_choices_are_kept(self):
        req = normalise_request(TTSRequest(text="hi", voice="onyx", model="tts-1-hd", user_id=USER_ID))
        assert (req.voice, req.model) == ("onyx", "tts-1-hd")

    def test_unknown_voice_and_model_fall_back(self):
        req = normalise_request(TTSRequest(text="hi", voice="robot", model="tts-9", user_id=USER_ID))
        assert (req.voice, req.model) == ("nova", "tts-1")

    @pytest.mark.parametrize("speed, expected", [(0.1, 0.25), (10, 4.0), (1.5, 1.5), (-3, 0.25)])
    def test_speed_is_clamped(self, speed, expected):
        assert normalise_request(TTSRequest(text="hi", speed=speed, user_id=USER_ID)).speed == expected

    def test_empty_text_is_rejected(self):
        with pytest.raises(InvalidTTSRequest, match="Text input is required"):
            normalise_request(TTSRequest(text="", user_id=USER_ID))

    def test_missing_user_is_rejected(self):
        with pytest.raises(InvalidTTSRequest, match="User ID is required"):
            normalise_request(TTSRequest(text="hi"))


class TestSnippet:

    def test_short_text_is_unchanged(self):
        assert content_snippet("short") == "short"

    def test_long_text_is_truncated(self):
        text = "a" * 150
        assert content_snippet(text) == "a" * 100 + "..."

    def test_exactly_limit_is_unchanged(self):
        assert content_snippet("b" * 100) == "b" * 100


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TestSynthesize:

    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_speech_request(self):
        route = respx.post(_URL).mock(return_value=Response(200, content=_AUDIO))
        service = TextToSpeechService(api_key="sk-test", url=_URL)

        audio = await service.synthesize(_request(speed=0.9))

        assert audio == _AUDIO
        sent = route.calls.last.request
        assert sent.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(sent.content) == {
            "model": "tts-1",
            "voice": "nova",
            "input": "Breathe in slowly.",
            "speed": 0.9,
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_2xx_raises(self):
        respx.post(_URL).mock(return_value=Response(429, text="rate limited"))
        service = TextToSpeechService(api_key="sk-test", url=_URL)

        with pytest.raises(TextToSpeechError) as exc_info:
            await service.synthesize(_request())

        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "rate limited"

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_raises(self):
        respx.post(_URL).mock(side_effect=httpx.ConnectError("dns failure"))
        service = TextToSpeechService(api_key="sk-test", url=_URL)

        with pytest.raises(TextToSpeechError) as exc_info:
            await service.synthesize(_request())

        assert exc_info.value.status_code == 503


class TestRecordUsage:

    @pytest.mark.asyncio
    async def test_inserts_usage_row(self):
        db = FakeSupabase()
        service = TextToSpeechService(api_key="k", url=_URL, client=db)

        assert await service.record_usage(_request(text="x" * 120, voice="echo")) is True

        (chain,) = db.queries["tts_usage"]
        (row,), _ = chain.insert.call_args
        assert row == {
            "user_id": USER_ID,
            "characters": 120,
            "model": "tts-1",
            "voice": "echo",
            "content_snippet": "x" * 100 + "...",
        }

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        db = FakeSupabase()
        db.set_table("tts_usage", error=RuntimeError("insert denied"))
        service = TextToSpeechService(api_key="k", url=_URL, client=db)

        with caplog.at_level("WARNING", logger="haven.services.tts"):
            assert await service.record_usage(_request()) is False
        assert "insert denied" in caplog.text

    @pytest.mark.asyncio
    async def test_without_client(self):
        service = TextToSpeechService(api_key="k", url=_URL)
        assert await service.record_usage(_request()) is False


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

def _mock_service(audio: bytes = _AUDIO, error: Exception | None = None) -> MagicMock:
    service = MagicMock()
    service.synthesize = AsyncMock(return_value=audio, side_effect=error)
    service.record_usage = AsyncMock(return_value=True)
    return service


def _post(service: MagicMock, body: dict, *, path: str = "/api/v1/tts", headers=AUTH_HEADER, db=None):
    db = db or FakeSupabase()
    with (
        patch("haven.routers.tts.get_tts_service", return_value=service),
        patch("haven.routers.tts.get_supabase_client", return_value=db),
    ):
        from haven.main import app
        client = TestClient(app)
        return client.post(path, json=body, headers=headers)


class TestEndpoint:

    def test_returns_audio_with_cache_header(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax", "userId": USER_ID, "voice": "bogus"})

        assert resp.status_code == 200
        assert resp.content == _AUDIO
        assert resp.headers["content-type"] == "audio/mpeg"
        assert resp.headers["cache-control"] == "public, max-age=604800"
        sent = service.synthesize.await_args.args[0]
        assert sent.voice == "nova"
        service.record_usage.assert_awaited_once()

    def test_base64_encoding(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax", "user_id": USER_ID}, path="/api/v1/tts?encoding=base64")

        assert resp.status_code == 200
        data = resp.json()
        assert base64.b64decode(data["audio_base64"]) == _AUDIO
        assert data["content_type"] == "audio/mpeg"

    def test_user_id_defaults_to_token_user(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax"})

        assert resp.status_code == 200
        assert service.record_usage.await_args.args[0].user_id == USER_ID

    def test_missing_token_is_401(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax", "userId": USER_ID}, headers={"Authorization": "Token abc"})

        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "auth_required"
        service.synthesize.assert_not_awaited()
        service.record_usage.assert_not_awaited()

    def test_rejected_token_is_401(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax"}, db=FakeSupabase(user_id=None))

        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "auth_invalid"
        service.synthesize.assert_not_awaited()

    def test_other_users_id_is_403(self):
        service = _mock_service()

        resp = _post(service, {"text": "Relax", "userId": OTHER_USER_ID})

        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "user_mismatch"
        service.synthesize.assert_not_awaited()
        service.record_usage.assert_not_awaited()

    def test_empty_text_is_400(self):
        service = _mock_service()

        resp = _post(service, {"text": "", "userId": USER_ID})

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_request"
        service.synthesize.assert_not_awaited()

    def test_upstream_failure_is_502(self):
        service = _mock_service(error=TextToSpeechError(500, "server error"))

        resp = _post(service, {"text": "Relax", "userId": USER_ID})

        assert resp.status_code == 502
        assert resp.json()["detail"]["code"] == "tts_upstream_error"
        service.record_usage.assert_not_awaited()
