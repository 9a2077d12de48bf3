"""
Domain Store
============
In-memory collection of one record type plus the actions that keep it in
step with the remote table. Concrete stores (moods, profiles, therapy
goals/sessions) subclass ``DomainStore`` and set the class attributes.

Action contracts:

    fetch    no owner -> clear, no remote call. Fresh cache for the same
             owner -> served without a remote call. Remote success ->
             collection replaced by server rows (an empty list is a
             success). Remote failure or malformed rows -> collection
             replaced by fallback rows stamped with the owner, and
             is_using_fallback raised.
    add      optimistic. The record is inserted under a Pending key before
             the remote insert, then swapped for the Confirmed server row
             or removed again on failure. A save confirmed while the store
             holds fallback rows triggers a forced fetch, so server and
             demo records are never held together.
    patch /  remote first, then merge into local state. Records that are
    delete   not held locally are left alone even when the remote call
             succeeds. Pending records can't be patched or deleted, and
             nothing can be patched or deleted while on fallback data.

Every state change replaces the immutable ``StoreState`` in one
assignment, so listeners never observe a half-applied action. Actions
never raise: failures land in ``error`` and in the ``Notifier``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Generic, Iterable, Optional

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from haven.sync.notify import Notifier
from haven.sync.persistence import SnapshotPersistence, StoreSnapshot
from haven.sync.query import error_message
from haven.sync.records import Confirmed, Entry, Pending, RecordKey, RecordT, new_pending_key
from haven.sync.source import DataSource, FallbackSource, PrimarySource, Row

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "value"
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


@dataclass(frozen=True)
class StoreState(Generic[RecordT]):
    entries: tuple[Entry[RecordT], ...] = ()
    is_loading: bool = False
    error: Optional[str] = None
    last_fetched: Optional[datetime] = None
    is_using_fallback: bool = False
    owner_id: Optional[str] = None

    @property
    def records(self) -> list[RecordT]:
        return [entry.record for entry in self.entries]


Listener = Callable[[StoreState], None]


class DomainStore(Generic[RecordT]):
    """Base class for the per-entity stores."""

    record_model: ClassVar[type[BaseModel]]
    draft_model: ClassVar[type[BaseModel]]
    label: ClassVar[str] = "records"
    item_label: ClassVar[str] = "record"
    owner_field: ClassVar[str] = "user_id"
    newest_first: ClassVar[bool] = True
    immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at"})
    snapshot_name: ClassVar[Optional[str]] = None
    default_freshness: ClassVar[Optional[timedelta]] = None

    def __init__(
        self,
        primary: PrimarySource,
        fallback: Optional[DataSource] = None,
        *,
        notifier: Optional[Notifier] = None,
        persistence: Optional[SnapshotPersistence] = None,
        freshness: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
        key_factory: Callable[[], Pending] = new_pending_key,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or FallbackSource.empty()
        self._notifier = notifier or Notifier()
        self._persistence = persistence
        self.freshness = freshness if freshness is not None else self.default_freshness
        self._clock = clock
        self._key_factory = key_factory
        self._state: StoreState[RecordT] = StoreState()
        self._in_flight = 0
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoreState[RecordT]:
        return self._state

    @property
    def records(self) -> list[RecordT]:
        return self._state.records

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def last_fetched(self) -> Optional[datetime]:
        return self._state.last_fetched

    @property
    def is_using_fallback(self) -> bool:
        return self._state.is_using_fallback

    @property
    def owner_id(self) -> Optional[str]:
        return self._state.owner_id

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def primary(self) -> PrimarySource:
        return self._primary

    def get(self, record_id: str) -> Optional[RecordT]:
        entry = self._find(Confirmed(record_id)) or self._find(Pending(record_id))
        return entry.record if entry else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the new state after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_fresh(self, owner_id: str) -> bool:
        state = self._state
        if (
            self.freshness is None
            or state.is_using_fallback
            or state.owner_id != owner_id
            or state.last_fetched is None
        ):
            return False
        return self._clock() - state.last_fetched < self.freshness

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def fetch(self, owner_id: Optional[str], *, force: bool = False) -> list[RecordT]:
        if not owner_id:
            # Signed out: drop whatever the previous owner left behind.
            logger.debug("No owner id, clearing %s", self.label)
            self._set(
                entries=(),
                owner_id=None,
                error=None,
                last_fetched=None,
                is_using_fallback=False,
            )
            return []

        if not force and self.is_fresh(owner_id):
            logger.debug("Serving cached %s for owner %s", self.label, owner_id)
            return self.records

        with self._loading():
            self._set(error=None)
            try:
                result = await self._primary.fetch(owner_id)
                if result.ok:
                    self.apply_server_rows(owner_id, result.data)
                    return self.records
                reason = result.error
            except Exception as exc:
                logger.exception("Unexpected error loading %s for owner %s", self.label, owner_id)
                reason = error_message(exc)
            await self.apply_fallback(owner_id, reason)
            return self.records

    def apply_server_rows(self, owner_id: str, rows: Any) -> None:
        """Replace the collection with server rows. Raises on malformed rows."""
        self.apply_records(owner_id, self.parse_rows(rows))

    def apply_records(self, owner_id: str, records: list[RecordT]) -> None:
        self._set(
            entries=self._confirmed_entries(records),
            owner_id=owner_id,
            error=None,
            last_fetched=self._clock(),
            is_using_fallback=False,
        )
        self._persist()

    async def apply_fallback(self, owner_id: str, reason: Optional[str], *, notify: bool = True) -> None:
        """Replace the collection with fallback rows for *owner_id*."""
        try:
            result = await self._fallback.fetch(owner_id)
            records = self.parse_rows(result.data) if result.ok else []
        except Exception:
            logger.exception("Fallback data for %s is unusable", self.label)
            records = []

        message = f"Couldn't load your {self.label}. Showing demo data for now."
        self._set(
            entries=self._confirmed_entries(records),
            owner_id=owner_id,
            error=message,
            last_fetched=None,
            is_using_fallback=True,
        )
        if notify:
            self._notifier.notify("Working offline", f"{message} ({reason or 'unknown error'})", level="warning")

    async def select(self, owner_id: Optional[str], *, error_title: str, **options: Any) -> list[RecordT]:
        """Query the primary source without touching the held collection.

        Used for ad hoc reads (date ranges, recent items). Failures set
        ``error`` and notify, and return an empty list.
        """
        if not owner_id:
            return []
        with self._loading():
            try:
                result = await self._primary.fetch(owner_id, **options)
                if result.ok:
                    return self.parse_rows(result.data)
                reason = result.error
            except Exception as exc:
                logger.exception("Unexpected error querying %s for owner %s", self.label, owner_id)
                reason = error_message(exc)
            self._report(error_title, reason)
            return []

    async def add(self, draft: Mapping[str, Any] | BaseModel) -> Optional[RecordT]:
        saved = await self._add_many([draft])
        return saved[0] if saved else None

    async def _add_many(self, drafts: Iterable[Mapping[str, Any] | BaseModel]) -> list[RecordT]:
        validated: list[BaseModel] = []
        for draft in drafts:
            data = draft.model_dump() if isinstance(draft, BaseModel) else dict(draft)
            if not data.get(self.owner_field):
                logger.debug("Skipping %s add without an owner", self.item_label)
                return []
            try:
                validated.append(self.draft_model.model_validate(data))
            except ValidationError as exc:
                self._notifier.notify(f"Invalid {self.item_label}", validation_message(exc), level="warning")
                return []
        if not validated:
            return []

        entries = []
        for draft in validated:
            key = self._key_factory()
            entries.append(Entry(key, self._build_pending(key, draft)))
        return await self._insert_pending(entries)

    async def _insert_pending(self, entries: list[Entry[RecordT]]) -> list[RecordT]:
        keys = [entry.key for entry in entries]
        self._insert_entries(entries)

        with self._loading():
            try:
                result = await self._primary.insert([self._insert_row(e.record) for e in entries])
                if result.ok:
                    confirmed = self.parse_rows(result.data)
                    if len(confirmed) == len(entries):
                        self._confirm(keys, confirmed)
                        for record in confirmed:
                            self._on_added(record)
                        if self._state.is_using_fallback:
                            logger.info("Saved %s while on fallback data, reloading from server", self.item_label)
                            await self.fetch(self.owner_id, force=True)
                        else:
                            self._persist()
                        return confirmed
                    reason = f"expected {len(entries)} saved rows, got {len(confirmed)}"
                else:
                    reason = result.error
            except Exception as exc:
                logger.exception("Unexpected error saving %s", self.item_label)
                reason = error_message(exc)

            self._rollback(keys)
            self._report(f"Failed to save {self.item_label}", reason)
            return []

    async def patch(self, record_id: str, changes: Mapping[str, Any]) -> bool:
        if self._state.is_using_fallback:
            self._reject_offline("edit")
            return False
        if self._find(Pending(record_id)) is not None:
            self._notifier.notify(
                f"Can't edit {self.item_label} yet",
                "It's still being saved. Try again in a moment.",
                level="warning",
            )
            return False

        payload = {k: v for k, v in changes.items() if k not in self.immutable_fields}
        payload["updated_at"] = self._clock()

        existing = self._find(Confirmed(record_id))
        merged: Optional[RecordT] = None
        if existing is not None:
            try:
                merged = self.record_model.model_validate({**existing.record.model_dump(), **payload})
            except ValidationError as exc:
                self._notifier.notify(f"Invalid {self.item_label}", validation_message(exc), level="warning")
                return False

        with self._loading():
            try:
                result = await self._primary.update(record_id, to_jsonable_python(payload))
                reason = result.error
            except Exception as exc:
                logger.exception("Unexpected error updating %s %s", self.item_label, record_id)
                reason = error_message(exc)
            if reason is not None:
                self._report(f"Failed to update {self.item_label}", reason)
                return False

            if merged is not None and self._find(Confirmed(record_id)) is not None:
                self._replace(Confirmed(record_id), Entry(Confirmed(record_id), merged))
                self._on_patched(merged)
                self._persist()
            self._set(error=None)
            return True

    async def update(self, record: RecordT) -> bool:
        return await self.patch(record.id, record.model_dump(exclude=set(self.immutable_fields)))

    async def delete(self, record_id: str) -> bool:
        if self._state.is_using_fallback:
            self._reject_offline("delete")
            return False
        if self._find(Pending(record_id)) is not None:
            self._notifier.notify(
                f"Can't delete {self.item_label} yet",
                "It's still being saved. Try again in a moment.",
                level="warning",
            )
            return False

        with self._loading():
            try:
                result = await self._primary.delete(record_id)
                reason = result.error
            except Exception as exc:
                logger.exception("Unexpected error deleting %s %s", self.item_label, record_id)
                reason = error_message(exc)
            if reason is not None:
                self._report(f"Failed to delete {self.item_label}", reason)
                return False

            key = Confirmed(record_id)
            if self._find(key) is not None:
                self._set(entries=tuple(e for e in self._state.entries if e.key != key))
                self._on_deleted(record_id)
                self._persist()
            self._set(error=None)
            return True

    def reset(self) -> None:
        """Clear everything, e.g. on logout."""
        self._set(
            entries=(),
            error=None,
            last_fetched=None,
            is_using_fallback=False,
            owner_id=None,
        )
        self._on_reset()
        if self._persistence is not None and self.snapshot_name:
            self._persistence.remove(self.snapshot_name)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> StoreSnapshot:
        state = self._state
        return StoreSnapshot(
            owner_id=state.owner_id,
            last_fetched=state.last_fetched,
            records=[e.record.model_dump(mode="json") for e in state.entries if not e.is_pending],
            extra=self._snapshot_extra(),
        )

    def restore(self, snapshot: StoreSnapshot) -> bool:
        try:
            records = self.parse_rows(snapshot.records)
        except ValidationError as exc:
            logger.warning("Ignoring %s snapshot with invalid records: %s", self.label, exc)
            return False
        self._set(
            entries=self._confirmed_entries(records),
            owner_id=snapshot.owner_id,
            last_fetched=snapshot.last_fetched,
            is_using_fallback=False,
            error=None,
        )
        self._restore_extra(snapshot.extra)
        return True

    def load_snapshot(self) -> bool:
        if self._persistence is None or not self.snapshot_name:
            return False
        snapshot = self._persistence.load(self.snapshot_name)
        return self.restore(snapshot) if snapshot is not None else False

    def _persist(self) -> None:
        # Fallback data is never written over the last-known-good cache.
        if self._persistence is None or not self.snapshot_name or self._state.is_using_fallback:
            return
        try:
            self._persistence.save(self.snapshot_name, self.snapshot())
        except OSError as exc:
            logger.warning("Could not persist %s snapshot: %s", self.label, exc)

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    def _on_added(self, record: RecordT) -> None:
        pass

    def _on_patched(self, record: RecordT) -> None:
        pass

    def _on_deleted(self, record_id: str) -> None:
        pass

    def _on_reset(self) -> None:
        pass

    def _snapshot_extra(self) -> dict[str, Any]:
        return {}

    def _restore_extra(self, extra: dict[str, Any]) -> None:
        pass

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    @contextmanager
    def _loading(self):
        self._in_flight += 1
        self._set(is_loading=True)
        try:
            yield
        finally:
            self._in_flight -= 1
            self._set(is_loading=self._in_flight > 0)

    def _reject_offline(self, action: str) -> None:
        self._notifier.notify(
            f"Can't {action} {self.item_label} while offline",
            "You're viewing demo data. Try again once the connection is restored.",
            level="warning",
        )

    def _report(self, title: str, reason: Optional[str]) -> None:
        message = reason or "Unexpected error"
        self._set(error=f"{title}: {message}")
        self._notifier.notify(title, message, level="error")

    def parse_rows(self, rows: Any) -> list[RecordT]:
        if rows is None:
            return []
        if isinstance(rows, Mapping):
            rows = [rows]
        return [self.record_model.model_validate(row) for row in rows]

    def _confirmed_entries(self, records: list[RecordT]) -> tuple[Entry[RecordT], ...]:
        seen: set[str] = set()
        entries = []
        for record in records:
            if record.id in seen:
                logger.warning("Dropping duplicate %s %s", self.item_label, record.id)
                continue
            seen.add(record.id)
            entries.append(Entry(Confirmed(record.id), record))
        return tuple(entries)

    def _build_pending(self, key: Pending, draft: BaseModel) -> RecordT:
        now = self._clock()
        return self.record_model.model_validate(
            {**draft.model_dump(), "id": key.temp_id, "created_at": now, "updated_at": now}
        )

    def _insert_row(self, record: RecordT) -> Row:
        return record.model_dump(mode="json", exclude={"id"})

    def _find(self, key: RecordKey) -> Optional[Entry[RecordT]]:
        for entry in self._state.entries:
            if entry.key == key:
                return entry
        return None

    def _insert_entries(self, new: list[Entry[RecordT]]) -> None:
        if self.newest_first:
            entries = tuple(new) + self._state.entries
        else:
            entries = self._state.entries + tuple(new)
        self._set(entries=entries)

    def _replace(self, key: RecordKey, new: Entry[RecordT]) -> None:
        self._set(entries=tuple(new if e.key == key else e for e in self._state.entries))

    def _confirm(self, keys: list[Pending], confirmed: list[RecordT]) -> None:
        present = {e.key for e in self._state.entries}
        swaps = {
            key: Entry(Confirmed(record.id), record)
            for key, record in zip(keys, confirmed)
            if key in present
        }
        if len(swaps) < len(keys):
            # The collection was replaced (fetch, reset) while saving.
            logger.debug("%d pending %s no longer held, skipping", len(keys) - len(swaps), self.label)
        swapped_ids = {entry.key for entry in swaps.values()}
        entries = []
        for entry in self._state.entries:
            if entry.key in swaps:
                entries.append(swaps[entry.key])
            elif entry.key in swapped_ids:
                continue
            else:
                entries.append(entry)
        self._set(entries=tuple(entries), error=None)

    def _rollback(self, keys: list[Pending]) -> None:
        doomed = set(keys)
        self._set(entries=tuple(e for e in self._state.entries if e.key not in doomed))
