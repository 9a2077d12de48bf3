"""
Profile & Subscription Schemas
==============================
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field


class UserProfileDraft(BaseModel):
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_premium: Optional[bool] = False
    ai_messages_limit: Optional[int] = None
    journal_entries_limit: Optional[int] = None


class UserProfile(BaseModel):
    """A row of ``profiles``. The row id is the auth user id."""

    id: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_premium: Optional[bool] = False
    ai_messages_limit: Optional[int] = None
    journal_entries_limit: Optional[int] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class UserLimits(BaseModel):
    ai_messages_limit: int
    journal_entries_limit: int


class SubscriptionStatus(BaseModel):
    is_premium: bool


class CheckoutSession(BaseModel):
    id: str = Field(..., description="Mock checkout session id, 'cs_' prefixed.")
    url: str


class CheckoutResponse(BaseModel):
    success: bool
    session: CheckoutSession
    is_premium: bool
