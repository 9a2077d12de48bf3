"""
Meditation Schemas
==================
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class MeditationGenerationParams(BaseModel):
    duration: int = Field(..., gt=0, le=3 * 60 * 60, description="Length in seconds.")
    focus: str = "mindfulness"
    user_prompt: Optional[str] = Field(default=None, max_length=500)
    voice: Optional[str] = None
    background_sound: Optional[str] = None


class GeneratedMeditation(BaseModel):
    id: str
    title: str
    description: str
    script: str
    duration: int
    instructor: str = "AI Guide"
    category: list[str]
    cover_image: str
    background_sound_url: str
    voice: Optional[str] = None
