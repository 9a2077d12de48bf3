"""
AI Chat Service
===============
Free-tier usage gate and templated replies for the therapy chat.

Usage lives in ``ai_chat_usage`` as one row per user per calendar month
(``user_id, month, year, count``). Free users are refused once ``count``
reaches the limit; premium users are never counted.

Replies are picked from a fixed pool and then shaped by what the user
wrote: the detected emotion supplies a therapeutic line, and the
conversation stage decides where that line goes.

    opening       therapeutic line first
    assessment    after the reply's first sentence
    intervention  after the first third of the reply
    closing       at the end
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from haven.sync.query import run_query

logger = logging.getLogger(__name__)

USAGE_TABLE = "ai_chat_usage"
HISTORY_TABLE = "ai_chat_history"
LIMIT_MESSAGE = (
    "You've reached your monthly limit for AI therapy messages. "
    "Upgrade to premium for unlimited access."
)


class ChatUsageError(Exception):
    """Usage could not be read or recorded."""


class UsageLimitReached(Exception):
    def __init__(self, used: int, limit: int) -> None:
        super().__init__(f"{used} of {limit} free messages used this month")
        self.used = used
        self.limit = limit


# ---------------------------------------------------------------------------
# Usage gate
# ---------------------------------------------------------------------------

def current_period(now: Optional[datetime] = None) -> tuple[int, int]:
    """(month, year) the usage row is keyed on. Month is 1-12."""
    now = now or datetime.now(timezone.utc)
    return now.month, now.year


async def get_usage(client: Any, user_id: str, now: Optional[datetime] = None) -> int:
    month, year = current_period(now)
    result = await run_query(
        lambda: client.table(USAGE_TABLE)
        .select("count")
        .eq("user_id", user_id)
        .eq("month", month)
        .eq("year", year)
        .maybe_single()
        .execute()
    )
    if not result.ok:
        raise ChatUsageError(result.error)
    row = result.data if isinstance(result.data, dict) else {}
    return int(row.get("count") or 0)


async def consume_message(
    client: Any,
    user_id: str,
    *,
    limit: int,
    now: Optional[datetime] = None,
) -> int:
    """Count one free message for *user_id* and return the new total.

    Raises UsageLimitReached when the month's count is already at
    *limit*, and ChatUsageError if the usage row can't be read or written.
    """
    month, year = current_period(now)
    used = await get_usage(client, user_id, now)
    if used >= limit:
        logger.info("User %s hit the free chat limit (%d/%d)", user_id, used, limit)
        raise UsageLimitReached(used, limit)

    row = {"user_id": user_id, "month": month, "year": year, "count": used + 1}
    result = await run_query(
        lambda: client.table(USAGE_TABLE).upsert(row, on_conflict="user_id,month,year").execute()
    )
    if not result.ok:
        raise ChatUsageError(result.error)
    return used + 1


# ---------------------------------------------------------------------------
# Emotion detection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EmotionPattern:
    name: str
    patterns: tuple[str, ...]
    strong_markers: tuple[str, ...]
    validation: tuple[str, ...]
    exploration: tuple[str, ...]
    support: tuple[str, ...]


MILD_MARKERS = ("a bit", "slightly", "somewhat", "a little", "mild")
MODERATE_MARKERS = ("quite", "rather", "pretty", "moderately", "fairly")
STRONG_MARKERS = ("extremely", "severely", "intensely", "overwhelmingly", "unbearably")

EMOTION_PATTERNS: tuple[EmotionPattern, ...] = (
    EmotionPattern(
        "anxiety",
        ("anxious", "nervous", "worry", "scared", "fear", "stress", "panic", "overwhelm",
         "afraid", "uneasy", "dread", "tense", "on edge", "restless", "freaking out"),
        ("terrified",),
        (
            "I hear that you're feeling anxious right now. That's a really normal response when facing uncertainty.",
            "Anxiety can be really uncomfortable, and I appreciate you sharing these feelings with me.",
        ),
        (
            "When you feel anxious, where do you notice it most in your body?",
            "Have you noticed any patterns about when this anxiety tends to show up?",
        ),
        (
            "Taking some slow, deep breaths might help in this moment. Would you like to try that together?",
            "It can help to remind yourself that anxiety, while uncomfortable, is temporary and will pass.",
        ),
    ),
    EmotionPattern(
        "sadness",
        ("sad", "depress", "unhappy", "miserable", "hopeless", "despair", "grief",
         "heartbroken", "empty", "gloomy", "discouraged"),
        ("devastated",),
        (
            "I can hear the sadness in what you're sharing. It's really hard to carry that heaviness.",
            "Feeling sad after what you've described makes complete sense. Your feelings are valid.",
        ),
        (
            "How long have you been feeling this sadness?",
            "Are there moments when the sadness feels lighter or heavier?",
        ),
        (
            "Being gentle with yourself when feeling sad is important. "
            "What small act of self-care might feel possible today?",
            "While it might not feel like it now, emotions do shift and change.",
        ),
    ),
    EmotionPattern(
        "anger",
        ("angry", "mad", "furious", "irritat", "frustrat", "resent", "hate", "rage",
         "bitter", "annoy", "upset", "livid"),
        ("furious",),
        (
            "I can understand why you'd feel angry in this situation. Your reaction makes sense.",
            "Anger is often a signal that something important to us has been threatened or violated.",
        ),
        (
            "If your anger could speak, what would it be saying?",
            "Is there something beneath the anger, perhaps hurt or fear, that you're also feeling?",
        ),
        (
            "Taking a moment to breathe deeply can help create some space between feeling anger and acting on it.",
        ),
    ),
    EmotionPattern(
        "loneliness",
        ("lonely", "alone", "isolat", "abandon", "reject", "disconnected", "unwanted",
         "left out", "no friends", "estranged"),
        (),
        (
            "Feeling lonely can be so painful. Thank you for telling me about it.",
        ),
        (
            "Are there particular situations when the loneliness feels strongest?",
        ),
        (
            "Even small moments of connection can matter. Is there someone you could reach out to this week?",
        ),
    ),
    EmotionPattern(
        "overwhelmed",
        ("too much", "can't cope", "can't handle", "drowning", "swamped", "overload",
         "stretched thin", "at my limit", "breaking point", "burning out"),
        (),
        (
            "It sounds like there's a lot on your plate right now. Feeling overwhelmed makes sense.",
        ),
        (
            "What feels most pressing out of everything you're carrying?",
        ),
        (
            "Sometimes breaking things down into very small, manageable steps can help when we're feeling overwhelmed.",
        ),
    ),
    EmotionPattern(
        "joy",
        ("joy", "happy", "delight", "excite", "thrill", "glad", "cheer", "pleased"),
        (),
        (
            "It's wonderful to hear you're feeling good. Thank you for sharing that with me.",
        ),
        (
            "What do you think contributed to feeling this way?",
        ),
        (
            "It can help to notice and savour moments like this one.",
        ),
    ),
)

GENERAL_RESPONSES = (
    "I'm here to listen. Could you tell me more about what you're experiencing?",
    "Thank you for sharing that with me. How are you feeling about this situation?",
    "I appreciate you opening up. What would be most helpful for us to focus on?",
)

DEFAULT_EMOTION = "mixed emotions"


@dataclass(frozen=True)
class EmotionReading:
    emotion: str
    intensity: str
    pattern: Optional[EmotionPattern] = None


def detect_emotion(text: str) -> EmotionReading:
    """First emotion whose pattern appears in *text*, with an intensity.

    Intensity is the first of mild, moderate, strong whose marker words
    appear; moderate when none do.
    """
    lowered = (text or "").lower()
    for pattern in EMOTION_PATTERNS:
        if not any(word in lowered for word in pattern.patterns):
            continue
        intensity = "moderate"
        for level, markers in (
            ("mild", MILD_MARKERS),
            ("moderate", MODERATE_MARKERS),
            ("strong", STRONG_MARKERS + pattern.strong_markers),
        ):
            if any(marker in lowered for marker in markers):
                intensity = level
                break
        return EmotionReading(pattern.name, intensity, pattern)
    return EmotionReading(DEFAULT_EMOTION, "moderate")


# ---------------------------------------------------------------------------
# Conversation stage
# ---------------------------------------------------------------------------

def therapy_stage(message_index: int, total_messages: int) -> str:
    if message_index < 2:
        return "opening"
    if message_index == total_messages - 1:
        return "closing"
    if message_index < int(total_messages * 0.3):
        return "assessment"
    return "intervention"


def therapeutic_line(reading: EmotionReading, stage: str, rng: random.Random) -> str:
    if reading.pattern is None:
        return rng.choice(GENERAL_RESPONSES)
    pool = {
        "assessment": reading.pattern.exploration,
        "intervention": reading.pattern.support,
    }.get(stage, reading.pattern.validation)
    return rng.choice(pool)


_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def integrate_response(reply: str, therapeutic: str, stage: str) -> str:
    """Place *therapeutic* inside *reply* according to *stage*."""
    sentences = _SENTENCE_BREAK.split(reply.strip())

    if stage == "closing":
        parts = [reply, therapeutic]
    elif stage == "assessment" and len(sentences) >= 2:
        parts = [sentences[0], therapeutic, *sentences[1:]]
    elif stage == "intervention" and len(sentences) >= 3:
        third = len(sentences) // 3
        parts = [*sentences[:third], therapeutic, *sentences[third:]]
    else:
        parts = [therapeutic, reply]
    return " ".join(part.strip() for part in parts if part.strip())


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------

STANDARD_REPLIES = (
    "I understand that must be challenging. Can you tell me more about how that makes you feel?",
    "Thank you for sharing that with me. How long have you been experiencing these feelings?",
    "It sounds like you're going through a lot right now. "
    "What has helped you cope with similar situations in the past?",
    "That's a significant concern. Have you talked to anyone else about this?",
    "I hear you're struggling with this. Let's explore some strategies that might help you manage these feelings.",
    "It's completely normal to feel that way. "
    "Many people have similar experiences when facing these kinds of situations.",
    "Your feelings are valid. What do you think triggered these emotions?",
    "That must be difficult to deal with. How has this been affecting your daily life?",
    "I'm here to support you. What would be most helpful for you right now?",
    "Thank you for your openness. Let's work together to find ways to improve this situation.",
)

PREMIUM_REPLIES = (
    "Based on what you've shared and our previous conversations, I notice a pattern that might be "
    "worth exploring further. Would it help to discuss some deeper cognitive approaches to address this?",
    "I've been looking at our conversation history, and I see connections between this and topics we've "
    "discussed before. Would you like me to share some insights about potential underlying factors?",
    "The experiences you're describing align with research on this topic. There are some evidence-based "
    "techniques specifically designed for this situation that we could explore together.",
    "Taking a holistic approach to what you've shared, I can see several interconnected factors at play. "
    "Let's develop a comprehensive strategy that addresses all of these areas.",
)


@dataclass(frozen=True)
class ChatReply:
    response: str
    emotion: str
    intensity: str
    stage: str
    is_premium_response: bool


def generate_reply(
    message: str,
    history: Optional[list[str]] = None,
    *,
    is_premium: bool = False,
    rng: Optional[random.Random] = None,
) -> ChatReply:
    rng = rng or random.Random()
    history = history or []
    pool = STANDARD_REPLIES + PREMIUM_REPLIES if is_premium else STANDARD_REPLIES
    index = rng.randrange(len(pool))

    reading = detect_emotion(message)
    # The current exchange adds the user's message and this reply.
    stage = therapy_stage(len(history), len(history) + 2)
    response = integrate_response(pool[index], therapeutic_line(reading, stage, rng), stage)

    return ChatReply(
        response=response,
        emotion=reading.emotion,
        intensity=reading.intensity,
        stage=stage,
        is_premium_response=index >= len(STANDARD_REPLIES),
    )


async def record_exchange(client: Any, user_id: str, message: str, reply: ChatReply) -> bool:
    """Append to ``ai_chat_history``. Failure is logged, not raised."""
    row = {
        "user_id": user_id,
        "user_message": message,
        "ai_response": reply.response,
        "is_premium_response": reply.is_premium_response,
    }
    result = await run_query(lambda: client.table(HISTORY_TABLE).insert(row).execute())
    if not result.ok:
        logger.warning("Could not record chat history for %s: %s", user_id, result.error)
        return False
    return True
