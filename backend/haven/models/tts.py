"""
Text-to-Speech Schemas
======================
Request contract for POST /api/v1/tts. Fields are deliberately lenient:
unknown voices/models fall back to defaults and speed is clamped rather
than rejected, so the app never fails to play a meditation over a typo.
Only empty text and a missing user id are hard errors.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

VALID_VOICES = frozenset({"alloy", "echo", "fable", "onyx", "nova", "shimmer"})
VALID_MODELS = frozenset({"tts-1", "tts-1-hd"})
DEFAULT_VOICE = "nova"
DEFAULT_MODEL = "tts-1"
MIN_SPEED = 0.25
MAX_SPEED = 4.0
SNIPPET_LENGTH = 100


class TTSRequest(BaseModel):
    text: str = ""
    voice: str = DEFAULT_VOICE
    model: str = DEFAULT_MODEL
    speed: float = 1.0
    user_id: Optional[str] = Field(default=None, alias="userId")

    model_config = {"populate_by_name": True}


class NormalisedTTSRequest(BaseModel):
    """A TTSRequest after allow-list and clamping rules were applied."""

    text: str
    voice: str
    model: str
    speed: float
    user_id: str


class TTSBase64Response(BaseModel):
    audio_base64: str
    content_type: str = "audio/mpeg"
