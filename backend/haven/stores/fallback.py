"""
Fallback Data
=============
Demo records shown when the database is unreachable, so screens render
something useful instead of an error. Each factory takes the current
owner id and stamps it onto every row; timestamps are computed at call
time so the demo history always looks recent.

Fallback ids use the all-zero UUID range, which Postgres'
gen_random_uuid() never produces.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

Row = dict[str, Any]


def _demo_id(n: int) -> str:
    return f"00000000-0000-0000-0000-{n:012d}"


def _iso(moment: datetime) -> str:
    return moment.isoformat()


def therapy_goal_rows(owner_id: str) -> list[Row]:
    now = _iso(datetime.now(timezone.utc))
    goals = [
        ("Reduce anxiety", "Practice mindfulness techniques to manage daily anxiety"),
        ("Improve sleep habits", "Develop a consistent sleep schedule"),
        ("Practice self-compassion", "Reduce negative self-talk and develop kinder inner dialogue"),
    ]
    return [
        {
            "id": _demo_id(i),
            "user_id": owner_id,
            "title": title,
            "description": description,
            "status": "in_progress",
            "created_at": now,
            "updated_at": now,
            "completed_at": None,
        }
        for i, (title, description) in enumerate(goals, start=1)
    ]


def therapy_session_rows(owner_id: str) -> list[Row]:
    now = datetime.now(timezone.utc)
    sessions = [
        (14, "Initial Assessment", "First session to understand your needs",
         "Discussed main concerns and goals for therapy", 30),
        (7, "Anxiety Management", "Exploring techniques to manage anxiety",
         "Introduced breathing exercises and mindfulness practices", 45),
        (2, "Progress Check-in", "Reviewing progress on therapeutic goals",
         "Discussed improvements in sleep quality and continued challenges with work stress", 30),
    ]
    rows = []
    for i, (days_ago, title, summary, notes, duration) in enumerate(sessions, start=1):
        held = _iso(now - timedelta(days=days_ago))
        rows.append({
            "id": _demo_id(i),
            "user_id": owner_id,
            "title": title,
            "summary": summary,
            "notes": notes,
            "duration": duration,
            "date": held,
            "created_at": held,
            "updated_at": held,
        })
    return rows


def session_goal_rows(owner_id: str) -> list[Row]:
    """Link each demo session to a demo goal, one to one."""
    goals = therapy_goal_rows(owner_id)
    sessions = therapy_session_rows(owner_id)
    return [
        {
            "id": _demo_id(i),
            "session_id": session["id"],
            "goal_id": goals[(i - 1) % len(goals)]["id"],
            "progress": "good" if i % 2 == 0 else "in_progress",
            "notes": "Demo progress note",
            "created_at": session["created_at"],
            "updated_at": session["updated_at"],
        }
        for i, session in enumerate(sessions, start=1)
    ]


def mood_entry_rows(owner_id: str) -> list[Row]:
    """A short, most-recent-first week of demo moods."""
    now = datetime.now(timezone.utc)
    moods = [
        (0, "calm", "Evening walk helped", {"sleep_hours": 7.5, "exercise_minutes": 30}),
        (1, "happy", "Good day with friends", {"sleep_hours": 8, "social_interaction": 4}),
        (3, "anxious", "Deadline stress", {"sleep_hours": 5.5, "exercise_minutes": 0}),
        (5, "neutral", "", {"sleep_hours": 7, "meditation_minutes": 10}),
    ]
    rows = []
    for i, (days_ago, mood, notes, factors) in enumerate(moods, start=1):
        moment = now - timedelta(days=days_ago)
        rows.append({
            "id": _demo_id(i),
            "user_id": owner_id,
            "mood": mood,
            "notes": notes,
            "date": moment.date().isoformat(),
            "factors": factors,
            "created_at": _iso(moment),
            "updated_at": None,
        })
    return rows


def profile_rows(owner_id: str) -> list[Row]:
    """A free-tier profile so limits and premium checks still work offline."""
    return [{
        "id": owner_id,
        "name": None,
        "avatar_url": None,
        "is_premium": False,
        "ai_messages_limit": None,
        "journal_entries_limit": None,
        "created_at": None,
        "updated_at": None,
    }]
