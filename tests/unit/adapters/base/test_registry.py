"""Tests for the adapter registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from polystore.adapters.base.registry import (
    AdapterNotFoundError,
    AdapterRegistry,
    create_registry,
    open_adapter,
)
from polystore.adapters.memory.adapter import MemoryAdapter
from polystore.adapters.sqlite.adapter import SQLiteAdapter
from polystore.config.settings import Settings


class BrokenAdapter(MemoryAdapter):
    async def health_check(self):  # type: ignore[override]
        raise RuntimeError("disk offline")


class StuckAdapter(MemoryAdapter):
    async def disconnect(self) -> None:
        raise RuntimeError("still busy")


class TestAdapterRegistry:
    def test_create_registry_registers_builtins(self) -> None:
        registry = create_registry()
        assert sorted(registry.registered_adapters) == ["memory", "mongo", "sqlite"]
        assert registry.active_adapters == []

    def test_resolve_builtin_lazily(self) -> None:
        registry = AdapterRegistry()
        assert registry.resolve("memory") is MemoryAdapter
        assert registry.registered_adapters == ["memory"]

    def test_unknown_adapter(self) -> None:
        with pytest.raises(AdapterNotFoundError, match="Available adapters"):
            AdapterRegistry().resolve("redis")

    async def test_initialize_and_get(self) -> None:
        registry = AdapterRegistry()
        adapter = await registry.initialize_adapter("memory", table="users")
        assert adapter.is_connected
        assert registry.get("memory") is adapter
        assert registry.get_default() is adapter

    def test_get_uninitialized(self) -> None:
        registry = create_registry()
        with pytest.raises(AdapterNotFoundError, match="not initialized"):
            registry.get("memory")
        with pytest.raises(AdapterNotFoundError):
            registry.get_default()

    async def test_custom_registration(self) -> None:
        registry = AdapterRegistry()
        registry.register("broken", BrokenAdapter)
        await registry.initialize_adapter("broken")
        await registry.initialize_adapter("memory")
        health = await registry.health_check_all()
        assert health["broken"].status == "unhealthy"
        assert health["broken"].message == "disk offline"
        assert health["memory"].status == "healthy"

    async def test_shutdown_all(self) -> None:
        registry = AdapterRegistry()
        adapter = await registry.initialize_adapter("memory")
        await registry.shutdown_all()
        assert not adapter.is_connected
        assert registry.active_adapters == []

    async def test_shutdown_continues_past_failure(self) -> None:
        registry = AdapterRegistry()
        registry.register("stuck", StuckAdapter)
        await registry.initialize_adapter("stuck")
        adapter = await registry.initialize_adapter("memory")
        await registry.shutdown_all()
        assert not adapter.is_connected
        assert registry.active_adapters == []


class TestOpenAdapter:
    async def test_default_adapter(self, settings: Settings) -> None:
        adapter = await open_adapter(settings)
        assert isinstance(adapter, MemoryAdapter)
        assert adapter.is_connected
        await adapter.disconnect()

    async def test_named_adapter_records_instance(self, tmp_path: Path) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            sqlite={"uri": str(tmp_path / "app.db"), "table": "posts", "columns": [{"name": "title", "type": "TEXT"}]},
        )
        registry = AdapterRegistry()
        adapter = await open_adapter(settings, "sqlite", registry=registry)
        assert isinstance(adapter, SQLiteAdapter)
        assert registry.get("sqlite") is adapter
        record = await adapter.insert({"title": "x"})
        assert record == {"title": "x", "id": 1}
        await registry.shutdown_all()
