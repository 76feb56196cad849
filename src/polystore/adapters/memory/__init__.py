"""Embedded in-process backend — indexed, snapshot-isolated tables."""

from polystore.adapters.memory.adapter import MemoryAdapter, random_id
from polystore.adapters.memory.store import MemoryStore, Transaction

__all__ = ["MemoryAdapter", "MemoryStore", "Transaction", "random_id"]
