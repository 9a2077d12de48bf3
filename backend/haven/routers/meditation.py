"""
Meditation Router
=================
POST /api/v1/meditations/generate  build a guided meditation script
"""

from __future__ import annotations

from fastapi import APIRouter

from haven.models.meditation import GeneratedMeditation, MeditationGenerationParams
from haven.services.meditation_generator import generate_meditation

router = APIRouter(prefix="/api/v1/meditations", tags=["meditations"])


@router.post("/generate", response_model=GeneratedMeditation, summary="Generate a meditation")
async def generate(body: MeditationGenerationParams) -> GeneratedMeditation:
    return generate_meditation(body)
