"""
Text-to-Speech Service
======================
Turns meditation scripts into speech through the OpenAI audio API.

    normalise_request()  apply defaults, allow-lists and the speed clamp
    synthesize()         POST to /v1/audio/speech, return MP3 bytes
    record_usage()       insert a tts_usage row for billing and analytics

Usage logging is best-effort: a failed insert is logged and never blocks
the audio response.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional

import httpx

from haven.config import get_settings
from haven.db.supabase import get_supabase_client
from haven.models.tts import (
    DEFAULT_MODEL,
    DEFAULT_VOICE,
    MAX_SPEED,
    MIN_SPEED,
    SNIPPET_LENGTH,
    VALID_MODELS,
    VALID_VOICES,
    NormalisedTTSRequest,
    TTSRequest,
)
from haven.sync.query import run_query

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TextToSpeechError(Exception):
    """Non-2xx response (or transport failure) from the speech API."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Speech API error {status_code}: {body}")


class InvalidTTSRequest(ValueError):
    """The request can't be synthesised (no text, no user)."""


# ---------------------------------------------------------------------------
# Request rules
# ---------------------------------------------------------------------------

def normalise_request(request: TTSRequest) -> NormalisedTTSRequest:
    """Validate required fields and coerce the rest to supported values.

    Raises InvalidTTSRequest for empty text or a missing user id.
    """
    if not request.text:
        raise InvalidTTSRequest("Text input is required")
    if not request.user_id:
        raise InvalidTTSRequest("User ID is required")

    voice = request.voice if request.voice in VALID_VOICES else DEFAULT_VOICE
    model = request.model if request.model in VALID_MODELS else DEFAULT_MODEL
    speed = min(max(MIN_SPEED, request.speed), MAX_SPEED)

    return NormalisedTTSRequest(
        text=request.text,
        voice=voice,
        model=model,
        speed=speed,
        user_id=request.user_id,
    )


def content_snippet(text: str) -> str:
    if len(text) > SNIPPET_LENGTH:
        return text[:SNIPPET_LENGTH] + "..."
    return text


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TextToSpeechService:
    def __init__(
        self,
        api_key: str,
        url: str,
        timeout: float = 30.0,
        client: Optional[Any] = None,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._timeout = timeout
        self._db = client

    async def synthesize(self, request: NormalisedTTSRequest) -> bytes:
        """Return MP3 audio for *request*. Raises TextToSpeechError."""
        payload = {
            "model": request.model,
            "voice": request.voice,
            "input": request.text,
            "speed": request.speed,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Speech API unreachable: %s", exc)
            raise TextToSpeechError(503, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise TextToSpeechError(response.status_code, response.text)

        logger.info(
            "Synthesised %d chars with %s/%s for user %s",
            len(request.text), request.model, request.voice, request.user_id,
        )
        return response.content

    async def record_usage(self, request: NormalisedTTSRequest) -> bool:
        if self._db is None:
            return False
        row = {
            "user_id": request.user_id,
            "characters": len(request.text),
            "model": request.model,
            "voice": request.voice,
            "content_snippet": content_snippet(request.text),
        }
        db = self._db
        result = await run_query(lambda: db.table("tts_usage").insert(row).execute())
        if not result.ok:
            logger.warning("Could not record TTS usage for %s: %s", request.user_id, result.error)
        return result.ok


@lru_cache
def get_tts_service() -> TextToSpeechService:
    settings = get_settings()
    return TextToSpeechService(
        api_key=settings.openai_api_key,
        url=settings.openai_tts_url,
        timeout=settings.tts_timeout_seconds,
        client=get_supabase_client(),
    )
