"""
Meditation Script Generator
===========================
Assembles a guided meditation script from pooled sections, sized to the
requested duration:

    < 3 min   introduction, breathing, closing
    >= 3 min  + body scan
    >= 5 min  + visualisation and theme prompts (one per 5 minutes)

An optional user intention is woven in as its own paragraph. Randomness
comes from an injectable ``random.Random`` so scripts are reproducible
in tests.
"""

from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass
from typing import Optional

from haven.models.meditation import GeneratedMeditation, MeditationGenerationParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeditationTheme:
    id: str
    name: str
    description: str
    prompts: tuple[str, ...]


# ---------------------------------------------------------------------------
# Themes and section pools
# ---------------------------------------------------------------------------

THEMES: tuple[MeditationTheme, ...] = (
    MeditationTheme(
        "mindfulness", "Mindfulness", "Present moment awareness and acceptance",
        (
            "Notice the sensations in your body without judgment",
            "Bring your attention to the present moment",
            "Observe your thoughts like clouds passing in the sky",
            "Focus on the rhythm of your breath",
        ),
    ),
    MeditationTheme(
        "anxiety-relief", "Anxiety Relief", "Calm your nervous system and find peace",
        (
            "With each exhale, release the tension you are holding",
            "Imagine your worries dissolving with each breath",
            "Feel your body becoming heavier and more relaxed",
            "Your anxiety is like a wave that will naturally subside",
        ),
    ),
    MeditationTheme(
        "sleep", "Deep Sleep", "Prepare for restful and rejuvenating sleep",
        (
            "Allow your body to sink deeper into relaxation",
            "With each breath, you drift further into peaceful sleep",
            "Release all thoughts about tomorrow",
            "Feel a wave of sleepiness wash over you",
        ),
    ),
    MeditationTheme(
        "self-love", "Self-Love", "Cultivate compassion and acceptance for yourself",
        (
            "Place a hand over your heart and send yourself warmth",
            "You are worthy of love and compassion just as you are",
            "Acknowledge your strengths and your struggles with kindness",
            "Embrace all parts of yourself with acceptance",
        ),
    ),
    MeditationTheme(
        "energy", "Energy & Vitality", "Revitalize your body and mind",
        (
            "Visualize vibrant energy filling your body",
            "With each breath, feel yourself becoming more alert and alive",
            "Imagine light and warmth spreading through your limbs",
            "Feel your energy centers awakening and brightening",
        ),
    ),
)

INTRODUCTIONS = (
    "Find a comfortable position and allow your body to relax. Take a deep breath in... and exhale fully.",
    "Welcome to this moment of peace. Settle into a position that feels good for your body, "
    "and let's begin with a deep breath.",
    "As you begin this meditation, give yourself permission to fully arrive in this moment. "
    "Adjust your posture to feel both alert and comfortable.",
    "Allow yourself to be fully present for this meditation. Take a moment to find a comfortable "
    "seat or position where you can be both relaxed and alert.",
    "Thank you for taking this time for yourself. Begin by finding a comfortable position "
    "where your spine can be tall but relaxed.",
)

BREATHING_EXERCISES = (
    "Breathe in slowly for a count of four... hold briefly... and exhale for a count of six. "
    "Feel your body relaxing with each breath.",
    "Take a deep breath in through your nose... filling your lungs completely... and exhale "
    "slowly through your mouth, releasing any tension.",
    "Breathe naturally and begin to notice the rhythm of your breath. There's no need to "
    "change it, simply observe the natural flow.",
    "Inhale deeply, allowing your abdomen to expand... then exhale completely, drawing your "
    "navel toward your spine.",
    "Begin a soothing breath pattern: inhale for four counts, hold for two, exhale for six. "
    "Feel the calming effect this has on your nervous system.",
)

BODY_SCANS = (
    "Bring your awareness to your feet... your legs... your hips... your abdomen... your chest... "
    "your shoulders... your arms... your hands... your neck... and finally your head. "
    "Notice any sensations without judgment.",
    "Starting from the top of your head, slowly scan down through your body, releasing tension "
    "in each area as you go. Face, jaw, neck, shoulders, and downward.",
    "Notice where your body makes contact with the floor or chair. Feel the support beneath you "
    "as you scan from your toes to the crown of your head.",
    "Bring gentle awareness to any areas of tightness or discomfort in your body. As you breathe, "
    "imagine sending your breath to those areas, inviting them to soften.",
    "Feel the weight of your body being supported. Scan from your toes to your head, noticing "
    "sensations of heaviness, lightness, warmth, or coolness.",
)

VISUALIZATIONS = (
    "Imagine yourself in a peaceful garden. Notice the colors, the flowers, the gentle breeze. "
    "This is your safe place where you can always return.",
    "Visualize a warm, healing light surrounding your body. With each breath, this light grows "
    "stronger, filling you with peace and well-being.",
    "Picture yourself standing by a calm lake. The water reflects the sky perfectly. Feel the "
    "tranquility of this scene become part of you.",
    "Imagine a gentle stream of water washing away your stress and worry, leaving you feeling "
    "clean, refreshed, and renewed.",
    "Visualize yourself on a mountain top, looking out over a vast landscape. Feel the "
    "expansiveness and perspective this view gives you.",
)

CLOSINGS = (
    "Gradually bring your awareness back to your surroundings. Wiggle your fingers and toes. "
    "When you're ready, gently open your eyes, carrying this sense of peace with you.",
    "Begin to deepen your breath, bringing gentle movement back to your body. As you transition "
    "back to your day, take this calmness with you.",
    "Slowly return your awareness to the room around you. Notice how you feel now compared to "
    "when you began. Carry this awareness forward as you continue with your day.",
    "Take a final deep breath, filling yourself with renewed energy. As you exhale, open your "
    "eyes if they've been closed, ready to move forward with clarity.",
    "Before we end, take a moment to appreciate yourself for taking this time for your wellbeing. "
    "Gradually reorient to your surroundings, carrying this peaceful feeling with you.",
)

CONTINUATION = "Continue to breathe mindfully, staying present with each moment..."

COVER_IMAGES = {
    "mindfulness": "https://images.unsplash.com/photo-1518241353330-0f7941c2d9b5?w=800&auto=format&fit=crop",
    "anxiety-relief": "https://images.unsplash.com/photo-1528938102132-4a9276b8e320?w=800&auto=format&fit=crop",
    "sleep": "https://images.unsplash.com/photo-1611174797137-3cebecb385b3?w=800&auto=format&fit=crop",
    "self-love": "https://images.unsplash.com/photo-1529693662653-9d480530a697?w=800&auto=format&fit=crop",
    "energy": "https://images.unsplash.com/photo-1611693769319-931a9d89be28?w=800&auto=format&fit=crop",
}
DEFAULT_COVER_IMAGE = "https://images.unsplash.com/photo-1506126613408-eca07ce68773?w=800&auto=format&fit=crop"

BACKGROUND_SOUNDS = {
    "rain": "https://assets.mixkit.co/music/preview/mixkit-rain-and-thunder-1262.mp3",
    "nature": "https://assets.mixkit.co/music/preview/mixkit-forest-stream-1186.mp3",
    "ambient": "https://assets.mixkit.co/music/preview/mixkit-ethereal-fairy-tale-story-852.mp3",
}
DEFAULT_BACKGROUND_SOUND = "https://assets.mixkit.co/music/preview/mixkit-serene-view-443.mp3"

TITLE_STOPWORDS = frozenset({"this", "that", "with", "from", "just"})
MAX_TITLE_KEYWORDS = 2


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_theme(focus: Optional[str]) -> MeditationTheme:
    """Theme for *focus*, or mindfulness when it's unknown."""
    for theme in THEMES:
        if theme.id == focus:
            return theme
    return THEMES[0]


def cover_image_for(focus: Optional[str]) -> str:
    return COVER_IMAGES.get(focus or "mindfulness", DEFAULT_COVER_IMAGE)


def background_sound_url(sound: Optional[str]) -> str:
    return BACKGROUND_SOUNDS.get(sound or "", DEFAULT_BACKGROUND_SOUND)


def title_keywords(user_prompt: Optional[str]) -> list[str]:
    words = (user_prompt or "").lower().split()
    keywords = [w for w in words if len(w) > 3 and w not in TITLE_STOPWORDS]
    return keywords[:MAX_TITLE_KEYWORDS]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_script(params: MeditationGenerationParams, rng: Optional[random.Random] = None) -> str:
    """Build the meditation script text for *params*."""
    rng = rng or random.Random()
    minutes = params.duration // 60
    repetitions = max(1, minutes // 5)
    theme = get_theme(params.focus)

    sections = [rng.choice(INTRODUCTIONS), rng.choice(BREATHING_EXERCISES)]
    if minutes >= 3:
        sections.append(rng.choice(BODY_SCANS))
    if params.user_prompt:
        sections.append(
            f'As you continue this meditation, bring to mind your intention: "{params.user_prompt}". '
            "Allow this to guide your practice today."
        )
    if minutes >= 5:
        count = min(repetitions, len(theme.prompts))
        sections.extend(rng.sample(theme.prompts, count))
        sections.append(rng.choice(VISUALIZATIONS))
    if repetitions > 1:
        sections.append(CONTINUATION)
    sections.append(rng.choice(CLOSINGS))

    return "\n\n".join(sections)


def generate_meditation(
    params: MeditationGenerationParams,
    rng: Optional[random.Random] = None,
) -> GeneratedMeditation:
    rng = rng or random.Random()
    theme = get_theme(params.focus)
    script = generate_script(params, rng)

    title = f"{theme.name} Meditation"
    keywords = title_keywords(params.user_prompt)
    if keywords:
        title = f"{theme.name} for {' '.join(word.capitalize() for word in keywords)}"

    suffix = "".join(rng.choices(string.ascii_letters + string.digits, k=8))
    logger.info("Generated %s-second %s meditation (%d chars)", params.duration, theme.id, len(script))

    return GeneratedMeditation(
        id=f"ai-generated-{suffix}",
        title=title,
        description=theme.description,
        script=script,
        duration=params.duration,
        category=[theme.name, "AI Generated"],
        cover_image=cover_image_for(params.focus),
        background_sound_url=background_sound_url(params.background_sound),
        voice=params.voice,
    )
