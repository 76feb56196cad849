"""Relational backend (SQLite via aiosqlite)."""

from polystore.adapters.sqlite.adapter import SQLiteAdapter
from polystore.adapters.sqlite.pool import ConnectionPool

__all__ = ["ConnectionPool", "SQLiteAdapter"]
