"""
Mood Router
===========
GET  /api/v1/mood/entries       the caller's mood history
POST /api/v1/mood/entries       log a mood
GET  /api/v1/mood/statistics    counts, average, most common mood
GET  /api/v1/mood/correlations  lifestyle factors vs mood

Reads go through the MoodStore, so a database outage returns demo entries
with ``is_using_fallback=true`` instead of an error.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from haven.db.supabase import get_supabase_client
from haven.models.mood import (
    MoodCorrelationsResponse,
    MoodEntriesResponse,
    MoodEntry,
    MoodEntryCreateRequest,
    MoodStatistics,
)
from haven.routers.deps import get_authenticated_user_id, request_container
from haven.services.mood_analysis import analyse_factor_correlations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/mood", tags=["mood"])


@router.get("/entries", response_model=MoodEntriesResponse, summary="List mood entries")
async def list_mood_entries(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> MoodEntriesResponse:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    moods = request_container(db).moods
    entries = await moods.fetch_user_moods(user_id)
    return MoodEntriesResponse(
        entries=entries,
        is_using_fallback=moods.is_using_fallback,
        error=moods.error,
    )


@router.post(
    "/entries",
    response_model=MoodEntry,
    status_code=status.HTTP_201_CREATED,
    summary="Log a mood",
    responses={
        401: {"description": "Authentication required"},
        422: {"description": "Validation error"},
        502: {"description": "Database rejected the insert"},
    },
)
async def create_mood_entry(
    body: MoodEntryCreateRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> MoodEntry:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    moods = request_container(db).moods
    draft = {"user_id": user_id, **body.model_dump(exclude_none=True)}
    saved = await moods.add(draft)
    if saved is None:
        logger.error("Failed to save mood entry for user %s: %s", user_id, moods.error)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": moods.error or "Failed to save mood entry", "code": "db_error"},
        )
    return saved


@router.get("/statistics", response_model=MoodStatistics, summary="Mood statistics")
async def mood_statistics(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> MoodStatistics:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    moods = request_container(db).moods
    await moods.fetch_user_moods(user_id)
    return await moods.get_statistics(user_id)


@router.get("/correlations", response_model=MoodCorrelationsResponse, summary="Factor correlations")
async def mood_correlations(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> MoodCorrelationsResponse:
    db = get_supabase_client()
    user_id = get_authenticated_user_id(authorization, db)

    moods = request_container(db).moods
    entries = await moods.fetch_user_moods(user_id)
    return MoodCorrelationsResponse(
        correlations=analyse_factor_correlations(entries),
        entries_analysed=len(entries),
        is_using_fallback=moods.is_using_fallback,
    )
