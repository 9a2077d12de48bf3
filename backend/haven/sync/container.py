"""
Application Container
=====================
Builds every store for one application root and wires them to a shared
Notifier and snapshot storage. There are no module-level store
singletons: tests and each API request path build (or receive) their own
container.

    container = build_container(get_settings(), client=get_supabase_client())
    container.restore()                  # last-known-good snapshots
    await container.moods.fetch(user_id)
    container.sign_out()                 # clears every store and snapshot
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from haven.config import Settings
from haven.models.profile import UserLimits
from haven.stores.mood import MoodStore
from haven.stores.therapy import TherapyDataProvider
from haven.stores.user import UserStore
from haven.sync.notify import Notifier
from haven.sync.persistence import JsonFileStorage, KeyValueStorage, SnapshotPersistence

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    notifier: Notifier
    persistence: SnapshotPersistence
    moods: MoodStore
    user: UserStore
    therapy: TherapyDataProvider

    def restore(self) -> dict[str, bool]:
        """Load persisted snapshots into the stores that keep them."""
        restored = {
            "moods": self.moods.load_snapshot(),
            "user": self.user.load_snapshot(),
            "therapy": self.therapy.load_snapshots(),
        }
        logger.debug("Snapshot restore: %s", restored)
        return restored

    def sign_out(self) -> None:
        self.moods.reset()
        self.user.reset()
        self.therapy.reset()
        self.notifier.clear()

    @property
    def is_using_fallback(self) -> bool:
        return self.moods.is_using_fallback or self.user.is_using_fallback or self.therapy.is_using_fallback


def build_container(
    settings: Settings,
    client: Any,
    storage: Optional[KeyValueStorage] = None,
) -> AppContainer:
    notifier = Notifier()
    persistence = SnapshotPersistence(
        storage if storage is not None else JsonFileStorage(settings.snapshot_path),
        namespace=settings.storage_namespace,
    )
    fallback_enabled = settings.enable_fallback_data

    moods = MoodStore.from_client(
        client,
        fallback_enabled=fallback_enabled,
        notifier=notifier,
        persistence=persistence,
        freshness=timedelta(seconds=settings.mood_cache_ttl_seconds),
    )
    user = UserStore.from_client(
        client,
        fallback_enabled=fallback_enabled,
        notifier=notifier,
        persistence=persistence,
        freshness=timedelta(seconds=settings.profile_cache_ttl_seconds),
        default_limits=UserLimits(
            ai_messages_limit=settings.default_ai_messages_limit,
            journal_entries_limit=settings.default_journal_entries_limit,
        ),
    )
    therapy = TherapyDataProvider.from_client(
        client,
        fallback_enabled=fallback_enabled,
        notifier=notifier,
        persistence=persistence,
    )
    return AppContainer(
        notifier=notifier,
        persistence=persistence,
        moods=moods,
        user=user,
        therapy=therapy,
    )
