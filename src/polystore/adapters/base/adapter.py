"""Base store adapter — Abstract CRUD and query contract for every backend.

Every storage backend must implement this interface.  Callers build
backend-agnostic request records and get records back, whichever backend
is configured.  The adapter is responsible for:
  1. Owning its connection / pool lifecycle (``connect`` / ``disconnect``)
  2. Translating a ``QueryDescriptor`` into the backend's native query
  3. Executing reads and writes and returning uniform ``Record`` results
  4. Reporting health status

Not-found is never an error: ``find_one``, ``find_by_id``, ``update``,
``update_by_id`` and ``remove_by_id`` return ``None`` when no row matches.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from polystore.adapters.base.exceptions import NotConnectedError, QueryError
from polystore.models.query import QueryDescriptor, request_id, request_ids
from polystore.models.record import Record

Params = Record | Mapping[str, Any] | QueryDescriptor | None


class AdapterHealth(BaseModel):
    """Health status of a store adapter."""

    status: str = Field(description="Health status: healthy, degraded, unhealthy")
    latency_ms: int = Field(default=0, description="Latency of last health check in ms")
    last_check: str | None = Field(default=None, description="ISO timestamp of last health check")
    message: str | None = Field(default=None, description="Additional health message")


class StoreAdapter(ABC):
    """Abstract base class for storage adapters.

    All adapters must implement:
      - connect() / disconnect(): resource lifecycle
      - find(), count(): descriptor-driven reads
      - find_by_id(): single-record lookup
      - insert(), update_by_id(), remove_by_id(), remove_all(): writes
      - health_check(): report adapter health

    ``find_one``, ``find_by_ids`` and ``update`` have default
    implementations composed from the above.  Adapters are safe to share
    between concurrent tasks; each instance owns its own resources.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique adapter name (e.g., 'memory', 'mongo', 'sqlite')."""

    @property
    @abstractmethod
    def target(self) -> str:
        """Table or collection this adapter operates on."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True between a successful ``connect()`` and ``disconnect()``."""

    # ── Lifecycle ────────────────────────────────────────────────────────

    @abstractmethod
    async def connect(self) -> None:
        """Open connections / pools and prepare the backend.

        Raises:
            ConnectionError: If the backend cannot be reached or set up.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release every resource acquired by ``connect()``."""

    async def __aenter__(self) -> StoreAdapter:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    # ── Reads ────────────────────────────────────────────────────────────

    @abstractmethod
    async def find(self, params: Params = None) -> list[Record]:
        """Return every record matching the request descriptor."""

    @abstractmethod
    async def find_by_id(self, record_id: Any) -> Record | None:
        """Return the record with this identifier, or ``None``."""

    @abstractmethod
    async def count(self, params: Params = None) -> int:
        """Count records matching the descriptor (limit/offset are ignored)."""

    async def find_one(self, params: Params = None) -> Record | None:
        """Return the first matching record, or ``None``."""
        rows = await self.find(self.descriptor(params, "find_one").with_limit(1))
        return rows[0] if rows else None

    async def find_by_ids(self, ids: Any) -> list[Record | None]:
        """Look up each id in turn.

        The result has one entry per requested id, in request order; a
        missing id yields ``None`` and does not abort the batch.
        """
        self._ensure_connected("find_by_ids")
        try:
            wanted = request_ids(ids)
        except ValueError as e:
            raise QueryError(str(e), operation="find_by_ids", target=self.target) from e
        return [await self.find_by_id(record_id) for record_id in wanted]

    # ── Writes ───────────────────────────────────────────────────────────

    @abstractmethod
    async def insert(self, record: Record | Mapping[str, Any]) -> Record:
        """Store a new record and return it with its assigned ``id``."""

    @abstractmethod
    async def update_by_id(self, record_id: Any, changes: Record | Mapping[str, Any]) -> Record | None:
        """Merge ``changes`` into the stored record; ``None`` if it does not exist."""

    @abstractmethod
    async def remove_by_id(self, record_id: Any) -> Record | None:
        """Delete the record and return it; ``None`` if it does not exist."""

    @abstractmethod
    async def remove_all(self) -> int:
        """Delete every record and return how many were removed."""

    async def update(self, record: Record | Mapping[str, Any]) -> Record | None:
        """Update the record identified by its own ``id`` field.

        Raises:
            QueryError: If the record carries no ``id``.
        """
        self._ensure_connected("update")
        data = Record.coerce(record)
        record_id = request_id(data)
        if record_id is None:
            raise QueryError("Cannot update record without id", operation="update", target=self.target)
        return await self.update_by_id(record_id, data.without("id"))

    # ── Health ───────────────────────────────────────────────────────────

    @abstractmethod
    async def health_check(self) -> AdapterHealth:
        """Check the health of the backend.  Must not raise."""

    # ── Helpers ──────────────────────────────────────────────────────────

    def descriptor(self, params: Params, operation: str = "find") -> QueryDescriptor:
        """Normalise a request into a ``QueryDescriptor``.

        Raises:
            QueryError: If the request has an unusable shape.
        """
        if isinstance(params, QueryDescriptor):
            return params
        try:
            return QueryDescriptor.from_record(params)
        except (ValueError, TypeError, ValidationError) as e:
            raise QueryError(f"Invalid request: {e}", operation=operation, target=self.target) from e

    def _ensure_connected(self, operation: str) -> None:
        if not self.is_connected:
            raise NotConnectedError(
                f"No connection available. Did you call {type(self).__name__}.connect()?",
                operation=operation,
                target=self.target,
            )
