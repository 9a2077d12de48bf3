"""
Snapshot persistence
====================
Stores serialise a snapshot of selected fields (confirmed records, owner,
last fetch time) into a key-value storage and restore it at startup.
The snapshot is a last-known-good cache, never the source of truth: the
next successful fetch replaces whatever was restored.

Snapshots carry a schema version. Older payloads are upgraded through
``MIGRATIONS`` one version at a time; payloads from a newer version, or
that fail to parse, are discarded with a warning.

Version history:
    1  {"version": 1, "records": [...], "fetched_at": <epoch ms | null>}
    2  {"version": 2, "owner_id", "last_fetched" (ISO), "records", "extra"}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 2


class StoreSnapshot(BaseModel):
    """Persisted subset of a store's state."""

    version: int = SNAPSHOT_VERSION
    owner_id: Optional[str] = None
    last_fetched: Optional[datetime] = None
    records: list[dict[str, Any]] = Field(default_factory=list)
    extra: dict[str, Any] = Field(
        default_factory=dict,
        description="Store-specific fields, e.g. the current mood id.",
    )


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------

class KeyValueStorage(ABC):
    """String key -> string value storage, like a browser's localStorage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...


class MemoryStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """All keys in one JSON object on disk, rewritten atomically on change."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".storage-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

def _migrate_v1(payload: dict[str, Any]) -> dict[str, Any]:
    """v1 kept the fetch time as epoch milliseconds and no owner id."""
    records = payload.get("records") or []
    fetched_ms = payload.get("fetched_at")
    last_fetched = (
        datetime.fromtimestamp(fetched_ms / 1000, tz=timezone.utc).isoformat()
        if fetched_ms
        else None
    )
    owner_id = records[0].get("user_id") if records else None
    return {
        "version": 2,
        "owner_id": owner_id,
        "last_fetched": last_fetched,
        "records": records,
        "extra": {},
    }


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _migrate_v1,
}


def migrate(payload: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Upgrade *payload* to SNAPSHOT_VERSION, or None if that's impossible."""
    version = payload.get("version", 1)
    while version < SNAPSHOT_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            logger.warning("No snapshot migration from version %s", version)
            return None
        payload = step(payload)
        version = payload["version"]
    if version > SNAPSHOT_VERSION:
        logger.warning(
            "Discarding snapshot from newer schema version %s (current %s)",
            version, SNAPSHOT_VERSION,
        )
        return None
    return payload


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class SnapshotPersistence:
    """Reads and writes store snapshots under ``<namespace>:<name>`` keys."""

    def __init__(self, storage: KeyValueStorage, namespace: str = "haven") -> None:
        self._storage = storage
        self._namespace = namespace

    def key(self, name: str) -> str:
        return f"{self._namespace}:{name}"

    def save(self, name: str, snapshot: StoreSnapshot) -> None:
        self._storage.set(self.key(name), snapshot.model_dump_json())

    def load(self, name: str) -> Optional[StoreSnapshot]:
        raw = self._storage.get(self.key(name))
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding corrupt snapshot %s: %s", self.key(name), exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("Discarding snapshot %s: not an object", self.key(name))
            return None

        upgraded = migrate(payload)
        if upgraded is None:
            return None
        try:
            return StoreSnapshot.model_validate(upgraded)
        except ValidationError as exc:
            logger.warning("Discarding invalid snapshot %s: %s", self.key(name), exc)
            return None

    def remove(self, name: str) -> None:
        self._storage.remove(self.key(name))
