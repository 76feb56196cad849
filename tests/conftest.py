"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from polystore.adapters.memory.adapter import MemoryAdapter
from polystore.adapters.sqlite.adapter import SQLiteAdapter
from polystore.config.settings import Settings
from polystore.models.schema import Column, IndexSchema


@pytest.fixture
def settings() -> Settings:
    """Create a test Settings instance with defaults."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def users() -> list[dict]:
    """Two sample user records without ids."""
    return [
        {"name": "Ana", "age": 30},
        {"name": "Bo", "age": 25},
    ]


@pytest.fixture
async def memory_adapter() -> AsyncIterator[MemoryAdapter]:
    """Connected embedded adapter with a ``name`` index."""
    adapter = MemoryAdapter(table="users", indexes=[IndexSchema(fields=["name"])])
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


@pytest.fixture
async def sqlite_adapter(tmp_path: Path) -> AsyncIterator[SQLiteAdapter]:
    """Connected SQLite adapter on a temporary database file."""
    adapter = SQLiteAdapter(
        uri=str(tmp_path / "test.db"),
        table="items",
        columns=[Column(name="title", type="TEXT"), Column(name="price", type="NUMBER")],
    )
    await adapter.connect()
    yield adapter
    await adapter.disconnect()
