"""
Text-to-Speech Router
=====================
POST /api/v1/tts  synthesise speech for a meditation script.

Returns ``audio/mpeg`` bytes cached for a week, or with
``?encoding=base64`` a JSON body the app can drop into a data URL.
Requires a Supabase bearer token. Usage is recorded against the token's
user; a body ``user_id`` naming anyone else is refused. Invalid voices
and models fall back to defaults; only empty text is rejected.
"""

from __future__ import annotations

import base64
import logging
from typing import Literal, Optional, Union

from fastapi import APIRouter, Header, HTTPException, Query, Response, status

from haven.db.supabase import get_supabase_client
from haven.models.tts import TTSBase64Response, TTSRequest
from haven.routers.deps import get_authenticated_user_id
from haven.services.tts import InvalidTTSRequest, TextToSpeechError, get_tts_service, normalise_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tts", tags=["tts"])

AUDIO_CACHE_CONTROL = "public, max-age=604800"


@router.post(
    "",
    summary="Synthesise speech",
    response_model=None,
    responses={
        200: {"content": {"audio/mpeg": {}}, "description": "MP3 audio"},
        400: {"description": "Missing text"},
        401: {"description": "Authentication required"},
        403: {"description": "user_id does not match the token"},
        502: {"description": "Speech provider failed"},
    },
)
async def synthesise(
    body: TTSRequest,
    encoding: Optional[Literal["base64"]] = Query(default=None),
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> Union[Response, TTSBase64Response]:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    if body.user_id and body.user_id != user_id:
        logger.warning("TTS request for %s rejected: token belongs to %s", body.user_id, user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "user_id does not match the authenticated user", "code": "user_mismatch"},
        )

    try:
        request = normalise_request(body.model_copy(update={"user_id": user_id}))
    except InvalidTTSRequest as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "code": "invalid_request"},
        ) from exc

    service = get_tts_service()
    try:
        audio = await service.synthesize(request)
    except TextToSpeechError as exc:
        logger.error("Speech synthesis failed (%s): %s", exc.status_code, exc.body)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": "Error generating speech", "code": "tts_upstream_error"},
        ) from exc

    await service.record_usage(request)

    if encoding == "base64":
        return TTSBase64Response(audio_base64=base64.b64encode(audio).decode("ascii"))
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": AUDIO_CACHE_CONTROL},
    )
