"""
Mood Store
==========
Mood entries for the signed-in user, most recent first. Fetches are
served from cache for an hour per owner; the collection, the current
mood, and the fetch time are persisted under ``mood-storage``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from haven.models.mood import MoodEntry, MoodEntryDraft, MoodStatistics
from haven.services.mood_analysis import summarize_moods
from haven.stores.fallback import mood_entry_rows
from haven.sync.query import run_query
from haven.sync.source import FallbackSource, PrimarySource
from haven.sync.store import DomainStore

logger = logging.getLogger(__name__)

CurrentMood = Union[MoodEntry, str, None]


class MoodStore(DomainStore[MoodEntry]):
    record_model = MoodEntry
    draft_model = MoodEntryDraft
    label = "mood entries"
    item_label = "mood entry"
    snapshot_name = "mood-storage"
    default_freshness = timedelta(hours=1)

    table = "mood_entries"
    statistics_view = "mood_statistics"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._current_mood: CurrentMood = None

    @classmethod
    def from_client(cls, client: Any, *, fallback_enabled: bool = True, **kwargs: Any) -> "MoodStore":
        primary = PrimarySource(client, cls.table)
        fallback = FallbackSource(mood_entry_rows) if fallback_enabled else FallbackSource.empty()
        return cls(primary, fallback, **kwargs)

    # ------------------------------------------------------------------
    # Current mood
    # ------------------------------------------------------------------

    @property
    def current_mood(self) -> CurrentMood:
        return self._current_mood

    def set_current_mood(self, mood: CurrentMood) -> None:
        """Accepts a bare label (mood picked, not yet saved) or an entry."""
        self._current_mood = mood

    def _current_id(self) -> Optional[str]:
        return self._current_mood.id if isinstance(self._current_mood, MoodEntry) else None

    def _on_added(self, record: MoodEntry) -> None:
        self._current_mood = record

    def _on_patched(self, record: MoodEntry) -> None:
        if self._current_id() == record.id:
            self._current_mood = record

    def _on_deleted(self, record_id: str) -> None:
        if self._current_id() == record_id:
            self._current_mood = None

    def _on_reset(self) -> None:
        self._current_mood = None

    def _snapshot_extra(self) -> dict[str, Any]:
        if isinstance(self._current_mood, MoodEntry):
            return {"current_mood_id": self._current_mood.id}
        if isinstance(self._current_mood, str):
            return {"current_mood": self._current_mood}
        return {}

    def _restore_extra(self, extra: dict[str, Any]) -> None:
        if "current_mood_id" in extra:
            self._current_mood = self.get(extra["current_mood_id"])
        else:
            self._current_mood = extra.get("current_mood")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def fetch_user_moods(self, user_id: Optional[str], *, force: bool = False) -> list[MoodEntry]:
        return await self.fetch(user_id, force=force)

    async def get_recent(self, user_id: Optional[str], limit: int = 5) -> list[MoodEntry]:
        """The newest *limit* entries, from cache when it's fresh and big enough."""
        if not user_id:
            return []
        if self.is_fresh(user_id) and len(self.records) >= limit:
            return self.records[:limit]
        return await self.select(user_id, limit=limit, error_title="Failed to fetch recent moods")

    async def get_by_date_range(self, user_id: Optional[str], start: date, end: date) -> list[MoodEntry]:
        """Entries dated within [start, end], oldest first."""
        return await self.select(
            user_id,
            gte=("date", start.isoformat()),
            lte=("date", end.isoformat()),
            order_by="date",
            descending=False,
            error_title="Failed to fetch moods by date range",
        )

    async def batch_add(self, drafts: Iterable[Mapping[str, Any] | BaseModel]) -> list[MoodEntry]:
        """Optimistically insert several entries in one remote call."""
        return await self._add_many(list(drafts))

    async def get_statistics(self, user_id: Optional[str]) -> Optional[MoodStatistics]:
        """Read the statistics view, or summarise held entries if it's unreachable."""
        if not user_id:
            return None

        client = self.primary.client
        with self._loading():
            result = await run_query(
                lambda: client.table(self.statistics_view)
                .select("*")
                .eq("user_id", user_id)
                .maybe_single()
                .execute()
            )
        if result.ok and isinstance(result.data, Mapping):
            try:
                return MoodStatistics.model_validate({**result.data, "user_id": user_id})
            except ValidationError as exc:
                logger.warning("Unexpected mood_statistics row for %s: %s", user_id, exc)

        logger.info("Computing mood statistics locally for %s", user_id)
        held = self.records if self.owner_id == user_id else []
        return summarize_moods(user_id, held, today=self._clock().date())

    def clear(self) -> None:
        self.reset()
