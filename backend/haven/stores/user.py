"""
User Store
==========
The signed-in user's profile row. It's a one-record collection keyed by
the auth user id, cached for five minutes and persisted under
``user-storage``. Limits fall back to plan defaults when the profile
leaves them unset.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Optional

from haven.models.profile import UserLimits, UserProfile, UserProfileDraft
from haven.stores.fallback import profile_rows
from haven.sync.source import FallbackSource, PrimarySource
from haven.sync.store import DomainStore

logger = logging.getLogger(__name__)

DEFAULT_AI_MESSAGES_LIMIT = 20
DEFAULT_JOURNAL_ENTRIES_LIMIT = 10


class UserStore(DomainStore[UserProfile]):
    record_model = UserProfile
    draft_model = UserProfileDraft
    label = "profile"
    item_label = "profile"
    owner_field = "id"
    snapshot_name = "user-storage"
    default_freshness = timedelta(minutes=5)

    table = "profiles"

    def __init__(self, *args: Any, default_limits: Optional[UserLimits] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._default_limits = default_limits or UserLimits(
            ai_messages_limit=DEFAULT_AI_MESSAGES_LIMIT,
            journal_entries_limit=DEFAULT_JOURNAL_ENTRIES_LIMIT,
        )

    @classmethod
    def from_client(cls, client: Any, *, fallback_enabled: bool = True, **kwargs: Any) -> "UserStore":
        primary = PrimarySource(client, cls.table, owner_column="id")
        fallback = FallbackSource(profile_rows) if fallback_enabled else FallbackSource.empty()
        return cls(primary, fallback, **kwargs)

    @property
    def profile(self) -> Optional[UserProfile]:
        records = self.records
        return records[0] if records else None

    @property
    def is_premium(self) -> bool:
        profile = self.profile
        return bool(profile and profile.is_premium)

    async def fetch_profile(self, user_id: Optional[str], *, force: bool = False) -> Optional[UserProfile]:
        records = await self.fetch(user_id, force=force)
        return records[0] if records else None

    async def update_profile(self, changes: Mapping[str, Any]) -> bool:
        profile = self.profile
        if profile is None:
            self._set(error="No user is currently logged in")
            return False
        return await self.patch(profile.id, changes)

    def _on_patched(self, record: UserProfile) -> None:
        # A successful write is as good as a fresh read.
        self._set(last_fetched=self._clock())

    def set_user(self, profile: Optional[UserProfile]) -> None:
        if profile is None:
            self.reset()
            return
        self.apply_records(profile.id, [profile])

    def limits(self) -> UserLimits:
        profile = self.profile
        return UserLimits(
            ai_messages_limit=(profile.ai_messages_limit if profile else None)
            or self._default_limits.ai_messages_limit,
            journal_entries_limit=(profile.journal_entries_limit if profile else None)
            or self._default_limits.journal_entries_limit,
        )
