"""
Mood Schemas
============
Pydantic models for mood entries, shared by the MoodStore and the mood
API routes.

Key design decisions:
- ``mood`` is a free label ("happy", "Anxious", "very_happy"); numeric
  analysis maps it through MOOD_VALUES and ignores labels it doesn't know.
- ``factors`` holds optional lifestyle measurements (sleep, exercise, ...)
  used by the correlation analysis. Unknown keys are kept as-is.
- ``id``/``created_at`` are server-assigned; drafts never carry them.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Allowed values
# ---------------------------------------------------------------------------

MOOD_VALUES: dict[str, int] = {
    "very_happy": 5,
    "happy": 4,
    "calm": 3,
    "refreshed": 3,
    "neutral": 2,
    "sleepy": 2,
    "anxious": 1,
    "sad": 0,
}

FACTOR_NAMES: dict[str, str] = {
    "sleep_hours": "Sleep Duration",
    "sleep_quality": "Sleep Quality",
    "exercise_minutes": "Exercise",
    "meditation_minutes": "Meditation",
    "outdoor_time_minutes": "Time Outdoors",
    "social_interaction": "Social Interaction",
    "hydration": "Hydration",
}


def mood_value(label: str) -> Optional[int]:
    """Numeric value for a mood label, or None if the label is unknown."""
    return MOOD_VALUES.get(label.strip().lower().replace(" ", "_"))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class MoodEntryDraft(BaseModel):
    """What a caller supplies when logging a mood."""

    user_id: str = Field(..., min_length=1)
    mood: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = Field(default="", max_length=2000)
    date: dt.date = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).date())
    factors: dict[str, Any] = Field(default_factory=dict)

    @field_validator("mood")
    @classmethod
    def _mood_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("mood must not be blank")
        return value.strip()


class MoodEntry(BaseModel):
    """A row of ``mood_entries``."""

    id: str
    user_id: str
    mood: str
    notes: Optional[str] = None
    date: dt.date
    factors: Optional[dict[str, Any]] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    @property
    def value(self) -> Optional[int]:
        return mood_value(self.mood)


class MoodStatistics(BaseModel):
    """Summary of a user's mood history."""

    user_id: str
    total_entries: int = 0
    mood_counts: dict[str, int] = Field(default_factory=dict)
    average_value: Optional[float] = None
    most_common_mood: Optional[str] = None
    entries_last_7_days: int = 0
    computed_locally: bool = Field(
        default=False,
        description="True when the statistics view was unreachable and the "
        "summary was computed from cached entries.",
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

class MoodEntryCreateRequest(BaseModel):
    """Payload the app sends when the user logs a mood."""

    mood: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)
    date: Optional[dt.date] = None
    factors: Optional[dict[str, Any]] = None


class MoodEntriesResponse(BaseModel):
    entries: list[MoodEntry]
    is_using_fallback: bool = Field(
        ...,
        description="True when the database was unreachable and demo entries are shown.",
    )
    error: Optional[str] = None


class FactorCorrelation(BaseModel):
    """Relationship between one lifestyle factor and mood."""

    factor: str
    factor_name: str
    correlation: float = Field(..., ge=-1.0, le=1.0)
    p_value: Optional[float] = None
    description: str
    strength: str  # strong | moderate | weak | none
    direction: str  # positive | negative | neutral
    data_points: int


class MoodCorrelationsResponse(BaseModel):
    correlations: list[FactorCorrelation]
    entries_analysed: int
    is_using_fallback: bool
