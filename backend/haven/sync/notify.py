"""
Notifications
=============
Non-blocking, dismissible messages that store actions raise instead of
exceptions. The UI (or an API response) reads ``active`` and renders
them as toasts; the persistent "using demo data" banner comes from each
store's ``is_using_fallback`` flag, not from here.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

logger = logging.getLogger(__name__)

Level = Literal["info", "warning", "error"]

_LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


@dataclass
class Notification:
    title: str
    message: str
    level: Level = "error"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dismissed: bool = False


class Notifier:
    """Collects notifications for one application root."""

    def __init__(self) -> None:
        self._items: list[Notification] = []

    def notify(self, title: str, message: str, *, level: Level = "error") -> Notification:
        item = Notification(title=title, message=message, level=level)
        self._items.append(item)
        logger.log(_LOG_LEVELS[level], "%s: %s", title, message)
        return item

    def dismiss(self, notification_id: str) -> bool:
        for item in self._items:
            if item.id == notification_id and not item.dismissed:
                item.dismissed = True
                return True
        return False

    def clear(self) -> None:
        self._items.clear()

    @property
    def active(self) -> list[Notification]:
        return [item for item in self._items if not item.dismissed]

    @property
    def all(self) -> list[Notification]:
        return list(self._items)
