"""
Therapy Schemas
===============
Therapy goals, sessions, and the links between them.
"""

from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field

GoalStatus = Literal["not_started", "in_progress", "completed"]
GoalProgress = Literal["not_started", "in_progress", "good", "completed"]


class TherapyGoalDraft(BaseModel):
    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    status: GoalStatus = "not_started"
    completed_at: Optional[dt.datetime] = None


class TherapyGoal(BaseModel):
    """A row of ``therapy_goals``."""

    id: str
    user_id: str
    title: str
    description: str = ""
    status: GoalStatus = "not_started"
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None


class TherapySessionDraft(BaseModel):
    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    summary: str = ""
    notes: str = ""
    duration: int = Field(default=30, ge=0, description="Length in minutes.")
    date: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


class TherapySession(BaseModel):
    """A row of ``therapy_sessions``."""

    id: str
    user_id: str
    title: str
    summary: Optional[str] = ""
    notes: Optional[str] = ""
    duration: Optional[int] = None
    date: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    @property
    def held_at(self) -> dt.datetime:
        return self.date or self.created_at


class SessionGoalDraft(BaseModel):
    session_id: str = Field(..., min_length=1)
    goal_id: str = Field(..., min_length=1)
    progress: GoalProgress = "in_progress"
    notes: str = ""


class SessionGoal(BaseModel):
    """A row of ``session_goals``, linking a session to a goal."""

    id: str
    session_id: str
    goal_id: str
    progress: GoalProgress = "in_progress"
    notes: Optional[str] = ""
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None


# ---------------------------------------------------------------------------
# Analysis / API
# ---------------------------------------------------------------------------

class SessionMoodImpact(BaseModel):
    """Average mood in the 48 hours before vs after therapy sessions."""

    trend: Literal["positive", "negative", "neutral"]
    message: str
    average_before: Optional[float] = None
    average_after: Optional[float] = None


class TherapyOverviewResponse(BaseModel):
    goals: list[TherapyGoal]
    sessions: list[TherapySession]
    session_goals: list[SessionGoal]
    is_using_fallback: bool
    error: Optional[str] = None
    mood_impact: SessionMoodImpact
