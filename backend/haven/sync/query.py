"""
Query Wrapper
=============
Runs one remote operation and normalises the outcome into a
``QueryResult(data, error)`` so store actions never need try/except
around the database client.

The operation is a zero-argument callable. It may return a plain value
(the sync supabase-py ``execute()`` result), an awaitable (async clients,
test doubles), or a ``{"data": ..., "error": ...}`` mapping. Exceptions
and reported errors both end up in ``error`` as a string.

The operation runs on a worker thread: supabase-py's sync ``execute()``
blocks, and concurrent loads (``asyncio.gather``) must overlap.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def error_message(exc: BaseException) -> str:
    """Human-readable message for a client exception.

    postgrest's APIError carries ``message``; everything else falls back
    to ``str(exc)`` or the exception class name.
    """
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or type(exc).__name__


def _unwrap(result: Any) -> QueryResult:
    if isinstance(result, Mapping) and ("data" in result or "error" in result):
        error = result.get("error")
        if error:
            if isinstance(error, Mapping):
                return QueryResult(error=str(error.get("message") or error))
            return QueryResult(error=str(error))
        return QueryResult(data=result.get("data"))
    if hasattr(result, "data"):
        return QueryResult(data=result.data)
    return QueryResult(data=result)


async def run_query(operation: Callable[[], Any]) -> QueryResult:
    """Execute *operation* and return a QueryResult. Never raises."""
    try:
        result = await asyncio.to_thread(operation)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        message = error_message(exc)
        logger.warning("Remote query failed: %s", message)
        return QueryResult(error=message)

    normalised = _unwrap(result)
    if normalised.error is not None:
        logger.warning("Remote query reported an error: %s", normalised.error)
    return normalised
