"""
Data sources
============
A store reads through a ``DataSource``. Two variants exist:

    PrimarySource   the Supabase table, filtered by owner. Supports the
                    full CRUD surface (fetch, insert, update, delete).
    FallbackSource  static demo rows produced by a factory and stamped
                    with the requested owner id. Read-only.

Both return raw row dicts inside a ``QueryResult``; parsing into pydantic
models happens in the store so malformed rows from either source take
the same error path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from haven.sync.query import QueryResult, run_query

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class DataSource(ABC):
    """Anything a store can load its collection from."""

    @abstractmethod
    async def fetch(self, owner_id: str, **options: Any) -> QueryResult:
        """Return ``QueryResult(data=list[Row])`` for *owner_id*."""


class PrimarySource(DataSource):
    """Supabase-backed table source.

    ``owner_column`` is the column compared against the owner id
    (``user_id`` for most tables, ``id`` for profiles). Tables without an
    owner column of their own select an inner-joined parent in ``columns``
    and filter on it, e.g. ``"therapy_sessions.user_id"``.
    """

    def __init__(
        self,
        client: Any,
        table: str,
        *,
        owner_column: str = "user_id",
        columns: str = "*",
        order_by: str = "created_at",
        descending: bool = True,
    ) -> None:
        self._client = client
        self.table = table
        self.owner_column = owner_column
        self.columns = columns
        self.order_by = order_by
        self.descending = descending

    @property
    def client(self) -> Any:
        return self._client

    async def fetch(
        self,
        owner_id: str,
        *,
        limit: Optional[int] = None,
        gte: Optional[tuple[str, Any]] = None,
        lte: Optional[tuple[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: Optional[bool] = None,
    ) -> QueryResult:
        def operation():
            query = self._client.table(self.table).select(self.columns).eq(self.owner_column, owner_id)
            if gte is not None:
                query = query.gte(*gte)
            if lte is not None:
                query = query.lte(*lte)
            query = query.order(
                order_by or self.order_by,
                desc=self.descending if descending is None else descending,
            )
            if limit is not None:
                query = query.limit(limit)
            return query.execute()

        return await run_query(operation)

    async def insert(self, rows: list[Row]) -> QueryResult:
        return await run_query(lambda: self._client.table(self.table).insert(rows).execute())

    async def update(self, record_id: str, changes: Row) -> QueryResult:
        return await run_query(
            lambda: self._client.table(self.table).update(changes).eq("id", record_id).execute()
        )

    async def delete(self, record_id: str) -> QueryResult:
        return await run_query(
            lambda: self._client.table(self.table).delete().eq("id", record_id).execute()
        )


class FallbackSource(DataSource):
    """Static demo rows used when the primary source is unreachable."""

    def __init__(self, factory: Callable[[str], list[Row]]) -> None:
        self._factory = factory

    @classmethod
    def empty(cls) -> "FallbackSource":
        return cls(lambda owner_id: [])

    async def fetch(self, owner_id: str, **options: Any) -> QueryResult:
        rows = self._factory(owner_id)
        logger.debug("Supplying %d fallback rows for owner %s", len(rows), owner_id)
        return QueryResult(data=rows)
