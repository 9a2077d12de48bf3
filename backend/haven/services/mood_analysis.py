"""
Mood Analysis Service
=====================
Numeric analysis over a user's mood entries and therapy sessions. All
functions are pure: they take already-loaded records (from the stores,
so fallback data works too) and never touch the database.

    summarize_moods             counts, average value, most common mood,
                                entries in the last 7 days
    analyse_factor_correlations Pearson r between mood value and each
                                lifestyle factor logged with the entry
    session_mood_impact         average mood in the 48 hours before vs
                                after therapy sessions

Mood labels map to numbers through MOOD_VALUES; entries whose label isn't
in the map are left out of numeric calculations rather than counted as 0.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from scipy.stats import pearsonr

from haven.models.mood import FACTOR_NAMES, FactorCorrelation, MoodEntry, MoodStatistics
from haven.models.therapy import SessionMoodImpact, TherapySession

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_CORRELATION_ENTRIES = 3
STRONG_THRESHOLD = 0.7
MODERATE_THRESHOLD = 0.4
WEAK_THRESHOLD = 0.2

IMPACT_WINDOW = timedelta(hours=48)
MIN_IMPACT_MOODS = 3
SIGNIFICANT_IMPROVEMENT = 1.0
NOTICEABLE_CHANGE = 0.2


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def summarize_moods(user_id: str, entries: Iterable[MoodEntry], today: date) -> MoodStatistics:
    """Summarise *entries* the way the ``mood_statistics`` view does."""
    rows = [
        {"mood": e.mood.strip().lower(), "value": e.value, "date": e.date}
        for e in entries
    ]
    if not rows:
        return MoodStatistics(user_id=user_id, computed_locally=True)

    df = pd.DataFrame(rows)
    counts = df["mood"].value_counts()
    values = pd.to_numeric(df["value"], errors="coerce").dropna()
    week_start = today - timedelta(days=6)

    return MoodStatistics(
        user_id=user_id,
        total_entries=len(df),
        mood_counts={str(mood): int(n) for mood, n in counts.items()},
        average_value=round(float(values.mean()), 2) if not values.empty else None,
        most_common_mood=str(counts.idxmax()),
        entries_last_7_days=sum(1 for d in df["date"] if d >= week_start),
        computed_locally=True,
    )


# ---------------------------------------------------------------------------
# Factor correlations
# ---------------------------------------------------------------------------

def _describe(correlation: float, factor_name: str) -> tuple[str, str, str]:
    """Return (description, strength, direction) for a coefficient."""
    name = factor_name.lower()
    magnitude = abs(correlation)
    if magnitude >= STRONG_THRESHOLD:
        strength = "strong"
    elif magnitude >= MODERATE_THRESHOLD:
        strength = "moderate"
    elif magnitude >= WEAK_THRESHOLD:
        strength = "weak"
    else:
        return f"No clear relationship between {name} and your mood.", "none", "neutral"

    direction = "positive" if correlation > 0 else "negative"
    outcome = "better" if correlation > 0 else "worse"
    phrasing = {
        "strong": "is strongly associated with",
        "moderate": "tends to be associated with",
        "weak": "may be slightly associated with",
    }[strength]
    description = (
        f"{strength.capitalize()} {direction} relationship: "
        f"Higher {name} {phrasing} {outcome} mood."
    )
    return description, strength, direction


def analyse_factor_correlations(
    entries: Iterable[MoodEntry],
    factors: Optional[Iterable[str]] = None,
    min_entries: int = MIN_CORRELATION_ENTRIES,
) -> list[FactorCorrelation]:
    """Correlate mood value with each factor, strongest relationship first.

    Factors with fewer than *min_entries* numeric data points are skipped.
    """
    min_entries = max(min_entries, 2)
    selected = list(factors) if factors is not None else list(FACTOR_NAMES)

    rows = []
    for entry in entries:
        value = entry.value
        if value is None or not entry.factors:
            continue
        rows.append({"mood_value": value, **entry.factors})

    if len(rows) < min_entries:
        logger.debug("Only %d entries with factors, need %d", len(rows), min_entries)
        return []

    df = pd.DataFrame(rows)
    results: list[FactorCorrelation] = []

    for factor in selected:
        if factor not in df.columns:
            continue
        pair = pd.DataFrame({
            "mood": df["mood_value"].astype(float),
            "factor": pd.to_numeric(df[factor], errors="coerce"),
        }).dropna()
        if len(pair) < min_entries:
            logger.debug("Skipping %s: %d data points", factor, len(pair))
            continue

        # pearsonr is undefined when either side has no variance
        if np.std(pair["mood"].values) == 0 or np.std(pair["factor"].values) == 0:
            r, p = 0.0, None
        else:
            r, p = pearsonr(pair["factor"].values, pair["mood"].values)
            r = float(np.clip(r, -1.0, 1.0))
            p = float(p)

        factor_name = FACTOR_NAMES.get(factor, factor.replace("_", " ").title())
        description, strength, direction = _describe(r, factor_name)
        results.append(FactorCorrelation(
            factor=factor,
            factor_name=factor_name,
            correlation=r,
            p_value=p,
            description=description,
            strength=strength,
            direction=direction,
            data_points=len(pair),
        ))

    results.sort(key=lambda c: abs(c.correlation), reverse=True)
    return results


# ---------------------------------------------------------------------------
# Session impact
# ---------------------------------------------------------------------------

def _utc(moment) -> pd.Timestamp:
    stamp = pd.Timestamp(moment)
    if stamp.tzinfo is None:
        return stamp.tz_localize("UTC")
    return stamp.tz_convert("UTC")


def session_mood_impact(
    sessions: Iterable[TherapySession],
    moods: Iterable[MoodEntry],
) -> SessionMoodImpact:
    """Compare average mood in the 48h before and after each session."""
    sessions = list(sessions)
    mood_rows = [
        {"at": _utc(m.created_at), "value": m.value}
        for m in moods
        if m.value is not None
    ]
    if not sessions or len(mood_rows) < MIN_IMPACT_MOODS:
        return SessionMoodImpact(trend="neutral", message="Need more data to analyze impact")

    mood_df = pd.DataFrame(mood_rows)
    window = pd.Timedelta(IMPACT_WINDOW)
    before: list[float] = []
    after: list[float] = []

    for session in sessions:
        held = _utc(session.held_at)
        offset = mood_df["at"] - held
        before.extend(mood_df.loc[(offset < pd.Timedelta(0)) & (offset >= -window), "value"])
        after.extend(mood_df.loc[(offset > pd.Timedelta(0)) & (offset <= window), "value"])

    if not before or not after:
        return SessionMoodImpact(trend="neutral", message="Not enough mood data around session times")

    avg_before = float(np.mean(before))
    avg_after = float(np.mean(after))
    difference = avg_after - avg_before

    if difference > SIGNIFICANT_IMPROVEMENT:
        trend, message = "positive", "Sessions appear to significantly improve your mood"
    elif difference > NOTICEABLE_CHANGE:
        trend, message = "positive", "Sessions appear to improve your mood"
    elif difference < -NOTICEABLE_CHANGE:
        trend, message = "negative", "Your mood tends to decrease after sessions"
    else:
        trend, message = "neutral", "Sessions don't appear to have an immediate impact on mood"

    return SessionMoodImpact(
        trend=trend,
        message=message,
        average_before=round(avg_before, 1),
        average_after=round(avg_after, 1),
    )
