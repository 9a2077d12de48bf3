"""
Tests for the AI chat usage gate and replies
============================================
Covers:
- consume_message: monthly row lookup, upsert of count + 1, refusal at the limit
- detect_emotion / therapy_stage / integrate_response
- generate_reply: premium-only replies, stage from history length
- POST /api/v1/chat/messages: auth, 403 at the free limit, premium users
  uncounted, history insert failures tolerated

Run: pytest tests/test_chat.py -v
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import AUTH_HEADER, USER_ID, FakeSupabase
from haven.services.chat import (
    LIMIT_MESSAGE,
    PREMIUM_REPLIES,
    STANDARD_REPLIES,
    ChatUsageError,
    UsageLimitReached,
    consume_message,
    current_period,
    detect_emotion,
    generate_reply,
    get_usage,
    integrate_response,
    therapy_stage,
)

_MARCH = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def _fixed_rng(reply_index: int) -> MagicMock:
    rng = MagicMock(spec=random.Random)
    rng.randrange.return_value = reply_index
    rng.choice.side_effect = lambda seq: seq[0]
    return rng


def _send(db: FakeSupabase, body: dict, headers: dict = AUTH_HEADER):
    with patch("haven.routers.chat.get_supabase_client", return_value=db):
        from haven.main import app
        return TestClient(app).post("/api/v1/chat/messages", json=body, headers=headers)


def _upserts(db: FakeSupabase) -> list[MagicMock]:
    return [q for q in db.queries.get("ai_chat_usage", []) if q.upsert.called]


class TestUsageGate:

    def test_period_is_calendar_month(self):
        assert current_period(_MARCH) == (3, 2026)

    @pytest.mark.asyncio
    async def test_missing_row_counts_as_zero(self):
        db = FakeSupabase()
        db.set_table("ai_chat_usage", data=None)

        assert await get_usage(db, USER_ID, _MARCH) == 0

        chain = db.queries["ai_chat_usage"][0]
        chain.select.assert_called_once_with("count")
        assert [c.args for c in chain.eq.call_args_list] == [("user_id", USER_ID), ("month", 3), ("year", 2026)]

    @pytest.mark.asyncio
    async def test_below_limit_increments(self):
        db = FakeSupabase()
        db.set_table("ai_chat_usage", data={"count": 4})

        used = await consume_message(db, USER_ID, limit=10, now=_MARCH)

        assert used == 5
        (chain,) = _upserts(db)
        chain.upsert.assert_called_once_with(
            {"user_id": USER_ID, "month": 3, "year": 2026, "count": 5},
            on_conflict="user_id,month,year",
        )

    @pytest.mark.asyncio
    async def test_last_free_message_is_allowed(self):
        db = FakeSupabase()
        db.set_table("ai_chat_usage", data={"count": 9})

        assert await consume_message(db, USER_ID, limit=10, now=_MARCH) == 10

    @pytest.mark.asyncio
    async def test_at_limit_is_refused_without_write(self):
        db = FakeSupabase()
        db.set_table("ai_chat_usage", data={"count": 10})

        with pytest.raises(UsageLimitReached) as caught:
            await consume_message(db, USER_ID, limit=10, now=_MARCH)

        assert (caught.value.used, caught.value.limit) == (10, 10)
        assert _upserts(db) == []

    @pytest.mark.asyncio
    async def test_database_error_raises(self):
        db = FakeSupabase()
        db.set_table("ai_chat_usage", error=RuntimeError("connection reset"))

        with pytest.raises(ChatUsageError):
            await consume_message(db, USER_ID, limit=10, now=_MARCH)


class TestEmotion:

    def test_mild_anxiety(self):
        reading = detect_emotion("I'm a bit anxious about work")
        assert (reading.emotion, reading.intensity) == ("anxiety", "mild")

    def test_strong_sadness(self):
        reading = detect_emotion("I feel extremely sad")
        assert (reading.emotion, reading.intensity) == ("sadness", "strong")

    def test_loneliness_defaults_to_moderate(self):
        reading = detect_emotion("I feel so alone lately")
        assert (reading.emotion, reading.intensity) == ("loneliness", "moderate")

    def test_no_match(self):
        reading = detect_emotion("Nothing much today")
        assert reading.emotion == "mixed emotions"
        assert reading.pattern is None


class TestStages:

    @pytest.mark.parametrize("index, total, stage", [
        (0, 2, "opening"),
        (1, 10, "opening"),
        (2, 10, "assessment"),
        (5, 10, "intervention"),
        (9, 10, "closing"),
    ])
    def test_therapy_stage(self, index, total, stage):
        assert therapy_stage(index, total) == stage

    def test_opening_leads_with_therapeutic_line(self):
        assert integrate_response("One. Two.", "T.", "opening") == "T. One. Two."

    def test_assessment_after_first_sentence(self):
        assert integrate_response("One. Two. Three.", "T.", "assessment") == "One. T. Two. Three."

    def test_assessment_single_sentence(self):
        assert integrate_response("One.", "T.", "assessment") == "T. One."

    def test_intervention_after_first_third(self):
        reply = "S1. S2. S3. S4. S5. S6."
        assert integrate_response(reply, "T.", "intervention") == "S1. S2. T. S3. S4. S5. S6."

    def test_closing_ends_with_therapeutic_line(self):
        assert integrate_response("One. Two.", "T.", "closing") == "One. Two. T."


class TestReplies:

    def test_first_message_is_opening(self):
        reply = generate_reply("I'm a bit anxious about work", [], rng=_fixed_rng(0))

        assert reply.stage == "opening"
        assert reply.emotion == "anxiety"
        assert reply.response.endswith(STANDARD_REPLIES[0])
        assert reply.is_premium_response is False

    def test_later_message_is_intervention(self):
        reply = generate_reply("I feel extremely sad", ["hi", "hello", "how are you"], rng=_fixed_rng(0))
        assert reply.stage == "intervention"

    def test_premium_pool_only_for_premium(self):
        rng = random.Random(11)
        for _ in range(50):
            reply = generate_reply("hello", [], rng=rng)
            assert not any(text in reply.response for text in PREMIUM_REPLIES)

    def test_premium_reply_flagged(self):
        reply = generate_reply("hello", [], is_premium=True, rng=_fixed_rng(len(STANDARD_REPLIES)))

        assert reply.is_premium_response is True
        assert reply.response.endswith(PREMIUM_REPLIES[0])


class TestEndpoint:

    def test_free_user_is_counted(self):
        db = FakeSupabase()
        db.set_table("profiles", data={"is_premium": False})
        db.set_table("ai_chat_usage", data={"count": 9})

        resp = _send(db, {"message": "I'm a bit anxious about work"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["premium_features_used"] is False
        assert (data["messages_used"], data["messages_limit"]) == (10, 10)
        assert data["emotion"] == "anxiety"
        (chain,) = _upserts(db)
        assert chain.upsert.call_args.args[0]["count"] == 10

    def test_limit_reached_is_403(self):
        db = FakeSupabase()
        db.set_table("profiles", data={"is_premium": False})
        db.set_table("ai_chat_usage", data={"count": 10})

        resp = _send(db, {"message": "hello"})

        assert resp.status_code == 403
        detail = resp.json()["detail"]
        assert detail["error"] == "Usage limit reached"
        assert detail["message"] == LIMIT_MESSAGE
        assert detail["code"] == "usage_limit_reached"
        assert "ai_chat_history" not in db.queries

    def test_premium_user_skips_the_gate(self):
        db = FakeSupabase()
        db.set_table("profiles", data={"is_premium": True})
        db.set_table("ai_chat_usage", data={"count": 500})

        resp = _send(db, {"message": "hello", "isPremium": False})

        assert resp.status_code == 200
        data = resp.json()
        assert data["premium_features_used"] is True
        assert data["messages_used"] is None
        assert "ai_chat_usage" not in db.queries

    def test_exchange_is_recorded(self):
        db = FakeSupabase()
        db.set_table("profiles", data={"is_premium": False})
        db.set_table("ai_chat_usage", data=None)

        resp = _send(db, {"message": "hello"})

        (chain,) = db.queries["ai_chat_history"]
        (row,), _ = chain.insert.call_args
        assert row["user_id"] == USER_ID
        assert row["user_message"] == "hello"
        assert row["ai_response"] == resp.json()["response"]
        assert row["is_premium_response"] is False

    def test_history_failure_still_replies(self):
        db = FakeSupabase()
        db.set_table("profiles", data={"is_premium": False})
        db.set_table("ai_chat_usage", data={"count": 0})
        db.set_table("ai_chat_history", error=RuntimeError("relation does not exist"))

        resp = _send(db, {"message": "hello"})

        assert resp.status_code == 200
        assert resp.json()["messages_used"] == 1

    def test_subscription_lookup_failure_is_500(self):
        db = FakeSupabase()
        db.set_table("profiles", error=RuntimeError("connection reset"))

        resp = _send(db, {"message": "hello"})

        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "db_error"

    def test_requires_auth(self):
        resp = _send(FakeSupabase(user_id=None), {"message": "hello"})

        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "auth_invalid"

    def test_missing_token_is_401(self):
        resp = _send(FakeSupabase(), {"message": "hello"}, headers={"Authorization": "Token abc"})

        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "auth_required"

    def test_empty_message_is_422(self):
        resp = _send(FakeSupabase(), {"message": ""})
        assert resp.status_code == 422
