"""
Therapy Router
==============
GET /api/v1/therapy/overview  goals, sessions, their links, and how mood
                              moves around sessions
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header

from haven.db.supabase import get_supabase_client
from haven.models.therapy import TherapyOverviewResponse
from haven.routers.deps import get_authenticated_user_id, request_container
from haven.services.mood_analysis import session_mood_impact

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/therapy", tags=["therapy"])


@router.get("/overview", response_model=TherapyOverviewResponse, summary="Therapy overview")
async def therapy_overview(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> TherapyOverviewResponse:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    container = request_container(db)
    therapy = container.therapy
    await therapy.load(user_id)
    moods = await container.moods.fetch_user_moods(user_id)

    return TherapyOverviewResponse(
        goals=therapy.therapy_goals,
        sessions=therapy.therapy_sessions,
        session_goals=therapy.session_goal_links,
        is_using_fallback=therapy.is_using_fallback,
        error=therapy.error,
        mood_impact=session_mood_impact(therapy.therapy_sessions, moods),
    )
