"""
AI Chat Schemas
===============
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    history: list[str] = Field(
        default_factory=list,
        description="Earlier messages in this conversation, oldest first.",
    )


class ChatResponse(BaseModel):
    response: str
    premium_features_used: bool
    emotion: str
    intensity: str
    stage: str
    messages_used: Optional[int] = Field(
        default=None, description="Messages counted this month. None for premium users."
    )
    messages_limit: Optional[int] = None
