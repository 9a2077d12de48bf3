"""
Shared test doubles
===================
FakeSource     in-memory stand-in for PrimarySource with scripted failures,
               call logs, and optional gates to hold inserts in flight.
FakeSupabase   routes .table("name") chains to per-table rows, the way the
               routes and services call supabase-py.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from haven.sync.query import QueryResult
from haven.sync.source import DataSource

USER_ID = "user-123"
OTHER_USER_ID = "user-456"
AUTH_HEADER = {"Authorization": "Bearer fake-valid-token"}


# ---------------------------------------------------------------------------
# Store-level fake
# ---------------------------------------------------------------------------

class FakeSource(DataSource):
    def __init__(self, rows: Optional[list[dict]] = None) -> None:
        self.rows = list(rows or [])
        self.fetch_error: Optional[str] = None
        self.insert_error: Optional[str] = None
        self.update_error: Optional[str] = None
        self.delete_error: Optional[str] = None
        self.fetch_raises: Optional[Exception] = None
        self.insert_returns: Optional[list[dict]] = None
        self.insert_gates: list[asyncio.Event] = []
        self.fetch_calls: list[tuple[str, dict]] = []
        self.insert_calls: list[list[dict]] = []
        self.update_calls: list[tuple[str, dict]] = []
        self.delete_calls: list[str] = []
        self.client = MagicMock()
        self._next_id = 0

    async def fetch(self, owner_id: str, **options: Any) -> QueryResult:
        self.fetch_calls.append((owner_id, options))
        if self.fetch_raises is not None:
            raise self.fetch_raises
        if self.fetch_error:
            return QueryResult(error=self.fetch_error)
        rows = [dict(r) for r in self.rows]
        if "limit" in options:
            rows = rows[: options["limit"]]
        return QueryResult(data=rows)

    async def insert(self, rows: list[dict]) -> QueryResult:
        self.insert_calls.append(rows)
        if self.insert_gates:
            await self.insert_gates.pop(0).wait()
        if self.insert_error:
            return QueryResult(error=self.insert_error)
        if self.insert_returns is not None:
            return QueryResult(data=self.insert_returns)
        saved = []
        for row in rows:
            self._next_id += 1
            saved.append({**row, "id": f"srv-{self._next_id}"})
        return QueryResult(data=saved)

    async def update(self, record_id: str, changes: dict) -> QueryResult:
        self.update_calls.append((record_id, changes))
        if self.update_error:
            return QueryResult(error=self.update_error)
        return QueryResult(data=[{"id": record_id, **changes}])

    async def delete(self, record_id: str) -> QueryResult:
        self.delete_calls.append(record_id)
        if self.delete_error:
            return QueryResult(error=self.delete_error)
        return QueryResult(data=[])


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def mood_row(
    record_id: str,
    mood: str = "happy",
    *,
    user_id: str = USER_ID,
    days_ago: int = 0,
    factors: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict:
    moment = (now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)) - timedelta(days=days_ago)
    return {
        "id": record_id,
        "user_id": user_id,
        "mood": mood,
        "notes": "",
        "date": moment.date().isoformat(),
        "factors": factors,
        "created_at": moment.isoformat(),
        "updated_at": None,
    }


# ---------------------------------------------------------------------------
# Supabase-level fake
# ---------------------------------------------------------------------------

class FakeSupabase:
    """A client whose tables answer every chain with scripted data."""

    def __init__(self, user_id: Optional[str] = USER_ID) -> None:
        self._tables: dict[str, dict] = {}
        self.auth = MagicMock()
        if user_id:
            self.auth.get_user.return_value = MagicMock(user=MagicMock(id=user_id))
        else:
            self.auth.get_user.side_effect = Exception("Invalid token")
        self.queries: dict[str, list[MagicMock]] = {}

    def set_table(
        self,
        name: str,
        *,
        data: Any = None,
        error: Optional[Exception] = None,
        insert_data: Optional[list[dict]] = None,
    ) -> None:
        self._tables[name] = {"data": data, "error": error, "insert_data": insert_data}

    def table(self, name: str) -> MagicMock:
        cfg = self._tables.get(name, {"data": [], "error": None, "insert_data": None})
        chain = MagicMock()
        for method in ("select", "eq", "gte", "lte", "order", "limit", "maybe_single", "update", "delete", "upsert"):
            getattr(chain, method).return_value = chain
        if cfg["error"] is not None:
            chain.execute.side_effect = cfg["error"]
        else:
            chain.execute.return_value = MagicMock(data=cfg["data"])

        insert_chain = MagicMock()
        chain.insert.return_value = insert_chain
        if cfg["error"] is not None:
            insert_chain.execute.side_effect = cfg["error"]
        else:
            insert_chain.execute.side_effect = lambda: MagicMock(
                data=cfg["insert_data"] if cfg["insert_data"] is not None else _saved_rows(chain)
            )

        self.queries.setdefault(name, []).append(chain)
        return chain


def _saved_rows(chain: MagicMock) -> list[dict]:
    rows = chain.insert.call_args.args[0]
    if isinstance(rows, dict):
        rows = [rows]
    return [{**row, "id": f"srv-{i}"} for i, row in enumerate(rows, start=1)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()
