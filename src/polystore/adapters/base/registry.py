"""Backend selection by name.

``open_adapter(settings)`` is the usual entry point: it looks up the class for
``settings.default_adapter``, builds it from that backend's settings section,
and connects it.  ``AdapterRegistry`` keeps the name → class table and the
connected instances for applications that run more than one backend.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from polystore.adapters.base.adapter import AdapterHealth, StoreAdapter

if TYPE_CHECKING:
    from polystore.config.settings import Settings

logger = logging.getLogger(__name__)

# name -> (module, class); imported on first use so the mongo driver is
# only needed by callers that pick the mongo backend.
BUILTIN_ADAPTERS: dict[str, tuple[str, str]] = {
    "memory": ("polystore.adapters.memory.adapter", "MemoryAdapter"),
    "mongo": ("polystore.adapters.mongo.adapter", "MongoAdapter"),
    "sqlite": ("polystore.adapters.sqlite.adapter", "SQLiteAdapter"),
}


class AdapterNotFoundError(LookupError):
    """No adapter class or connected instance under the requested name."""


def _load_builtin(name: str) -> type[StoreAdapter]:
    module_path, class_name = BUILTIN_ADAPTERS[name]
    return getattr(importlib.import_module(module_path), class_name)


class AdapterRegistry:
    """Adapter classes by name, plus the instances connected through it."""

    def __init__(self) -> None:
        self._classes: dict[str, type[StoreAdapter]] = {}
        self._instances: dict[str, StoreAdapter] = {}

    def register(self, name: str, adapter_class: type[StoreAdapter]) -> None:
        if name in self._classes:
            logger.warning("Replacing adapter class for %s", name)
        self._classes[name] = adapter_class
        logger.debug("Adapter class %s registered as %s", adapter_class.__name__, name)

    def resolve(self, name: str) -> type[StoreAdapter]:
        """Class for ``name``, loading a built-in backend if needed."""
        if name not in self._classes:
            if name not in BUILTIN_ADAPTERS:
                known = sorted(set(self._classes) | set(BUILTIN_ADAPTERS))
                raise AdapterNotFoundError(f"Unknown adapter '{name}'. Available adapters: {known}")
            self.register(name, _load_builtin(name))
        return self._classes[name]

    async def initialize_adapter(self, name: str, **kwargs: Any) -> StoreAdapter:
        """Construct ``name`` with ``kwargs``, connect it, and keep it."""
        adapter = self.resolve(name)(**kwargs)
        await adapter.connect()
        self._instances[name] = adapter
        logger.info("Adapter %s connected (target: %s)", name, adapter.target)
        return adapter

    def get(self, name: str) -> StoreAdapter:
        try:
            return self._instances[name]
        except KeyError:
            raise AdapterNotFoundError(f"Adapter '{name}' is not initialized") from None

    def get_default(self) -> StoreAdapter:
        """The first adapter that was connected."""
        for adapter in self._instances.values():
            return adapter
        raise AdapterNotFoundError("No adapter is initialized")

    async def health_check_all(self) -> dict[str, AdapterHealth]:
        """Health of every connected adapter.  A failing check reports unhealthy."""
        report: dict[str, AdapterHealth] = {}
        for name, adapter in self._instances.items():
            try:
                report[name] = await adapter.health_check()
            except Exception as e:
                report[name] = AdapterHealth(status="unhealthy", message=str(e))
        return report

    async def shutdown_all(self) -> None:
        """Disconnect every adapter; one failing disconnect does not stop the rest."""
        instances, self._instances = self._instances, {}
        for name, adapter in instances.items():
            try:
                await adapter.disconnect()
            except Exception:
                logger.warning("Adapter %s did not disconnect cleanly", name, exc_info=True)

    @property
    def registered_adapters(self) -> list[str]:
        return list(self._classes)

    @property
    def active_adapters(self) -> list[str]:
        return list(self._instances)


def create_registry() -> AdapterRegistry:
    """Registry with all built-in backends loaded."""
    registry = AdapterRegistry()
    for name in BUILTIN_ADAPTERS:
        registry.resolve(name)
    return registry


async def open_adapter(
    settings: Settings,
    name: str | None = None,
    registry: AdapterRegistry | None = None,
) -> StoreAdapter:
    """Connect the backend named by ``name`` or ``settings.default_adapter``.

    The instance is kept in ``registry`` when one is passed.
    """
    name = name or settings.default_adapter
    registry = registry or AdapterRegistry()
    return await registry.initialize_adapter(name, **settings.adapter_kwargs(name))
