"""Base adapter interface — Abstract classes for storage backends."""

from polystore.adapters.base.adapter import AdapterHealth, StoreAdapter
from polystore.adapters.base.registry import AdapterRegistry

__all__ = ["AdapterHealth", "AdapterRegistry", "StoreAdapter"]
