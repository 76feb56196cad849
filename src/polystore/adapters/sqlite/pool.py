"""Bounded ``aiosqlite`` connection pool.

Connections are opened up front and handed out through an ``asyncio.Queue``.
``acquire()`` waits (with no timeout of its own) until a connection is free,
so a pool of size 1 runs one operation against the engine at a time; the
connection always goes back to the pool, even when the operation fails.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from polystore.adapters.base.exceptions import NotConnectedError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Fixed-size pool of SQLite connections.

    Args:
        database: File path, ``":memory:"``, or a ``file:`` URI.
        size: Number of connections (values below 1 become 1).
        timeout: Seconds a connection waits on a locked database before failing.
    """

    def __init__(self, database: str, size: int = 1, timeout: float = 2.0) -> None:
        self.database = database
        self.size = max(1, size)
        self.timeout = timeout
        self._connections: list[aiosqlite.Connection] = []
        self._idle: asyncio.Queue[aiosqlite.Connection] | None = None

    @property
    def is_open(self) -> bool:
        return self._idle is not None

    async def open(self) -> None:
        """Open every connection.  On failure the ones already opened are closed."""
        idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=self.size)
        try:
            for _ in range(self.size):
                conn = await aiosqlite.connect(
                    self.database,
                    timeout=self.timeout,
                    uri=self.database.startswith("file:"),
                )
                conn.row_factory = aiosqlite.Row
                self._connections.append(conn)
                idle.put_nowait(conn)
        except Exception:
            await self._close_all()
            raise
        self._idle = idle
        logger.debug("Opened %d SQLite connection(s) to %s", self.size, self.database)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Check out a connection for the duration of the ``async with`` block."""
        if self._idle is None:
            raise NotConnectedError("Connection pool is closed", operation="acquire", target=self.database)
        idle = self._idle
        conn = await idle.get()
        try:
            yield conn
        finally:
            idle.put_nowait(conn)

    async def close(self) -> None:
        """Close every connection owned by the pool."""
        self._idle = None
        await self._close_all()

    async def _close_all(self) -> None:
        connections, self._connections = self._connections, []
        for conn in connections:
            try:
                await conn.close()
            except Exception:
                logger.warning("Error closing SQLite connection to %s", self.database, exc_info=True)
