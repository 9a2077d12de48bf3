"""
AI Chat Router
==============
POST /api/v1/chat/messages  reply to a therapy chat message

Free users get ``max_free_chat_messages`` replies per calendar month.
Premium status comes from the caller's profile, never from the request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from haven.config import get_settings
from haven.db.supabase import get_supabase_client
from haven.models.chat import ChatRequest, ChatResponse
from haven.routers.deps import get_authenticated_user_id
from haven.services.chat import (
    LIMIT_MESSAGE,
    ChatUsageError,
    UsageLimitReached,
    consume_message,
    generate_reply,
    record_exchange,
)
from haven.services.subscription import SubscriptionError, check_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.post(
    "/messages",
    response_model=ChatResponse,
    summary="Send a chat message",
    responses={
        401: {"description": "Missing or invalid bearer token"},
        403: {"description": "Monthly free message limit reached"},
        500: {"description": "Subscription or usage lookup failed"},
    },
)
async def send_message(
    body: ChatRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ChatResponse:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)
    limit = get_settings().max_free_chat_messages

    try:
        is_premium = (await check_subscription(db, user_id)).is_premium
        used = None if is_premium else await consume_message(db, user_id, limit=limit)
    except UsageLimitReached as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Usage limit reached", "message": LIMIT_MESSAGE, "code": "usage_limit_reached"},
        ) from exc
    except (SubscriptionError, ChatUsageError) as exc:
        logger.error("Error processing AI chat for %s: %s", user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to check chat usage", "code": "db_error"},
        ) from exc

    reply = generate_reply(body.message, body.history, is_premium=is_premium)
    await record_exchange(db, user_id, body.message, reply)
    logger.info("Processed AI chat for user %s. Premium: %s", user_id, is_premium)

    return ChatResponse(
        response=reply.response,
        premium_features_used=is_premium,
        emotion=reply.emotion,
        intensity=reply.intensity,
        stage=reply.stage,
        messages_used=used,
        messages_limit=None if is_premium else limit,
    )
