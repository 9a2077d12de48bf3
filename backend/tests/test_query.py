"""
Tests for the query wrapper
===========================
Covers:
- supabase-py style results (objects with .data)
- Awaitable operations
- {"data", "error"} mappings, string and object errors
- Raised exceptions, including postgrest-style .message
- Never raises
- Blocking operations run off the event loop, so gathered queries overlap

Run: pytest tests/test_query.py -v
"""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from haven.sync.query import QueryResult, error_message, run_query


class _APIError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__({"message": message, "code": "PGRST301"})


class TestRunQuery:

    @pytest.mark.asyncio
    async def test_execute_result_data_is_returned(self):
        result = await run_query(lambda: MagicMock(data=[{"id": "1"}]))
        assert result == QueryResult(data=[{"id": "1"}], error=None)
        assert result.ok

    @pytest.mark.asyncio
    async def test_awaitable_operation_is_awaited(self):
        operation = AsyncMock(return_value=MagicMock(data=[]))
        result = await run_query(operation)
        assert result.ok
        assert result.data == []
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mapping_with_error_string(self):
        result = await run_query(lambda: {"data": None, "error": "permission denied"})
        assert not result.ok
        assert result.error == "permission denied"
        assert result.data is None

    @pytest.mark.asyncio
    async def test_mapping_with_error_object_uses_message(self):
        result = await run_query(lambda: {"data": None, "error": {"message": "JWT expired", "code": "401"}})
        assert result.error == "JWT expired"

    @pytest.mark.asyncio
    async def test_mapping_without_error(self):
        result = await run_query(lambda: {"data": [{"id": "a"}], "error": None})
        assert result.ok
        assert result.data == [{"id": "a"}]

    @pytest.mark.asyncio
    async def test_raised_exception_becomes_error(self):
        def boom():
            raise ConnectionError("connection refused")

        result = await run_query(boom)
        assert result == QueryResult(data=None, error="connection refused")

    @pytest.mark.asyncio
    async def test_api_error_message_is_preferred(self):
        def boom():
            raise _APIError("new row violates row-level security policy")

        result = await run_query(boom)
        assert result.error == "new row violates row-level security policy"

    @pytest.mark.asyncio
    async def test_async_exception_becomes_error(self):
        result = await run_query(AsyncMock(side_effect=TimeoutError()))
        assert result.error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        def boom():
            raise RuntimeError("backend down")

        with caplog.at_level("WARNING", logger="haven.sync.query"):
            await run_query(boom)
        assert "backend down" in caplog.text


class TestErrorMessage:

    def test_plain_exception(self):
        assert error_message(ValueError("bad")) == "bad"

    def test_empty_exception_uses_class_name(self):
        assert error_message(KeyError()) == "KeyError"


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_blocking_operations_overlap(self):
        # Each operation blocks until the other has started.
        barrier = threading.Barrier(2, timeout=5)

        def blocking_execute():
            barrier.wait()
            return MagicMock(data=[{"id": threading.get_ident()}])

        first, second = await asyncio.gather(run_query(blocking_execute), run_query(blocking_execute))

        assert first.ok and second.ok
        assert first.data != second.data
