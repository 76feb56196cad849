"""Tests for the shared adapter contract and the error hierarchy."""

from __future__ import annotations

import builtins

import pytest

from polystore.adapters.base.adapter import StoreAdapter
from polystore.adapters.base.exceptions import (
    AdapterError,
    ConnectionError,
    IndexKeyError,
    NotConnectedError,
    QueryError,
)
from polystore.adapters.memory.adapter import MemoryAdapter
from polystore.models.query import QueryDescriptor


class TestExceptions:
    def test_context_in_message(self) -> None:
        err = QueryError("boom", operation="find", target="users")
        assert str(err) == "boom (operation=find, target=users)"
        assert err.message == "boom"

    def test_message_without_context(self) -> None:
        assert str(AdapterError("boom")) == "boom"

    def test_hierarchy(self) -> None:
        assert issubclass(NotConnectedError, ConnectionError)
        assert issubclass(ConnectionError, AdapterError)
        assert not issubclass(ConnectionError, builtins.ConnectionError)
        assert issubclass(IndexKeyError, TypeError)


class TestDescriptor:
    def test_passthrough(self) -> None:
        adapter = MemoryAdapter()
        d = QueryDescriptor(limit=3)
        assert adapter.descriptor(d) is d

    def test_invalid_request_wrapped(self) -> None:
        adapter = MemoryAdapter(table="users")
        with pytest.raises(QueryError) as exc_info:
            adapter.descriptor({"limit": -5}, "count")
        assert exc_info.value.operation == "count"
        assert exc_info.value.target == "users"

    def test_abstract(self) -> None:
        with pytest.raises(TypeError):
            StoreAdapter()  # type: ignore[abstract]
