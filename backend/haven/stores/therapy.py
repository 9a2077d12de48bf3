"""
Therapy Data
============
Stores for therapy goals, sessions, and session-goal links, plus the
``TherapyDataProvider`` that loads the three together.

The provider treats the three tables as one load cycle: if any query
fails, all three stores switch to fallback data, so a screen never shows
real goals next to demo sessions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from haven.models.therapy import (
    SessionGoal,
    SessionGoalDraft,
    TherapyGoal,
    TherapyGoalDraft,
    TherapySession,
    TherapySessionDraft,
)
from haven.stores.fallback import session_goal_rows, therapy_goal_rows, therapy_session_rows
from haven.sync.notify import Notifier
from haven.sync.query import error_message
from haven.sync.source import FallbackSource, PrimarySource
from haven.sync.store import DomainStore, utcnow

logger = logging.getLogger(__name__)


class TherapyGoalStore(DomainStore[TherapyGoal]):
    record_model = TherapyGoal
    draft_model = TherapyGoalDraft
    label = "therapy goals"
    item_label = "therapy goal"
    snapshot_name = "therapy-goals"


class TherapySessionStore(DomainStore[TherapySession]):
    record_model = TherapySession
    draft_model = TherapySessionDraft
    label = "therapy sessions"
    item_label = "therapy session"
    snapshot_name = "therapy-sessions"


class SessionGoalStore(DomainStore[SessionGoal]):
    record_model = SessionGoal
    draft_model = SessionGoalDraft
    label = "session goals"
    item_label = "session goal"
    # Links carry no user id. They are scoped through their session.
    owner_field = "session_id"
    snapshot_name = "session-goals"


class TherapyDataProvider:
    """Goals, sessions, and their links for one signed-in user."""

    def __init__(
        self,
        goals: TherapyGoalStore,
        sessions: TherapySessionStore,
        session_goals: SessionGoalStore,
        *,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.goals = goals
        self.sessions = sessions
        self.session_goals = session_goals
        self._notifier = notifier or Notifier()
        self._in_flight = 0
        self._error: Optional[str] = None

    @classmethod
    def from_client(
        cls,
        client: Any,
        *,
        fallback_enabled: bool = True,
        notifier: Optional[Notifier] = None,
        **store_kwargs: Any,
    ) -> "TherapyDataProvider":
        notifier = notifier or Notifier()

        def fallback(factory):
            return FallbackSource(factory) if fallback_enabled else FallbackSource.empty()

        return cls(
            TherapyGoalStore(
                PrimarySource(client, "therapy_goals"),
                fallback(therapy_goal_rows),
                notifier=notifier,
                **store_kwargs,
            ),
            TherapySessionStore(
                PrimarySource(client, "therapy_sessions", order_by="date"),
                fallback(therapy_session_rows),
                notifier=notifier,
                **store_kwargs,
            ),
            SessionGoalStore(
                PrimarySource(
                    client,
                    "session_goals",
                    owner_column="therapy_sessions.user_id",
                    columns="*, therapy_sessions!inner(user_id)",
                ),
                fallback(session_goal_rows),
                notifier=notifier,
                **store_kwargs,
            ),
            notifier=notifier,
        )

    @property
    def _stores(self) -> tuple[DomainStore, ...]:
        return (self.goals, self.sessions, self.session_goals)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def therapy_goals(self) -> list[TherapyGoal]:
        return self.goals.records

    @property
    def therapy_sessions(self) -> list[TherapySession]:
        return self.sessions.records

    @property
    def session_goal_links(self) -> list[SessionGoal]:
        return self.session_goals.records

    @property
    def owner_id(self) -> Optional[str]:
        return self.goals.owner_id

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0 or any(store.is_loading for store in self._stores)

    @property
    def is_using_fallback(self) -> bool:
        return any(store.is_using_fallback for store in self._stores)

    @property
    def error(self) -> Optional[str]:
        if self._error:
            return self._error
        return next((store.error for store in self._stores if store.error), None)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, owner_id: Optional[str]) -> None:
        self._error = None
        if not owner_id:
            for store in self._stores:
                await store.fetch(None)
            return

        self._in_flight += 1
        try:
            results = await asyncio.gather(
                *(store.primary.fetch(owner_id) for store in self._stores),
                return_exceptions=True,
            )
            reasons = []
            for store, result in zip(self._stores, results):
                if isinstance(result, Exception):
                    reasons.append(f"{store.label}: {error_message(result)}")
                elif not result.ok:
                    reasons.append(f"{store.label}: {result.error}")

            if not reasons:
                try:
                    parsed = [store.parse_rows(result.data) for store, result in zip(self._stores, results)]
                except Exception as exc:
                    logger.exception("Malformed therapy data for owner %s", owner_id)
                    reasons.append(error_message(exc))
                else:
                    goals, sessions, links = parsed
                    session_ids = {session.id for session in sessions}
                    owned = [link for link in links if link.session_id in session_ids]
                    if len(owned) < len(links):
                        logger.warning(
                            "Dropping %d session goals for sessions not owned by %s",
                            len(links) - len(owned),
                            owner_id,
                        )
                    for store, records in zip(self._stores, (goals, sessions, owned)):
                        store.apply_records(owner_id, records)
                    return

            reason = "; ".join(reasons)
            logger.warning("Therapy data unavailable for %s, using fallback: %s", owner_id, reason)
            for store in self._stores:
                await store.apply_fallback(owner_id, reason, notify=False)
            self._error = "Failed to load therapy data. Showing demo data until the connection is restored."
            self._notifier.notify("Working offline", self._error, level="warning")
        finally:
            self._in_flight -= 1

    async def refresh(self) -> None:
        await self.load(self.owner_id)

    def reset(self) -> None:
        self._error = None
        for store in self._stores:
            store.reset()

    def load_snapshots(self) -> bool:
        return all([store.load_snapshot() for store in self._stores])

    async def _saved(self, record):
        # All three reload together; server and demo rows never share a cycle.
        if record is not None and self.is_using_fallback:
            await self.load(self.owner_id)
        return record

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def add_therapy_goal(self, draft) -> Optional[TherapyGoal]:
        return await self._saved(await self.goals.add(draft))

    async def update_therapy_goal(self, goal: TherapyGoal) -> bool:
        return await self.goals.update(goal)

    async def delete_therapy_goal(self, goal_id: str) -> bool:
        return await self.goals.delete(goal_id)

    async def complete_goal(self, goal_id: str) -> bool:
        return await self.goals.patch(goal_id, {"status": "completed", "completed_at": utcnow()})

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def add_therapy_session(self, draft) -> Optional[TherapySession]:
        return await self._saved(await self.sessions.add(draft))

    async def update_therapy_session(self, session: TherapySession) -> bool:
        return await self.sessions.update(session)

    async def delete_therapy_session(self, session_id: str) -> bool:
        return await self.sessions.delete(session_id)

    # ------------------------------------------------------------------
    # Session goals
    # ------------------------------------------------------------------

    async def add_session_goal(self, draft) -> Optional[SessionGoal]:
        return await self._saved(await self.session_goals.add(draft))

    async def update_session_goal(self, link: SessionGoal) -> bool:
        return await self.session_goals.update(link)

    async def delete_session_goal(self, link_id: str) -> bool:
        return await self.session_goals.delete(link_id)
