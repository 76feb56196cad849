"""Embedded adapter — CRUD over the in-process indexed ``MemoryStore``.

Lookups are driven by the request's ``searchFields``: the field names joined
with ``-`` name the index to use, and ``search`` is looked up as an exact
composite key.  When no index has that name each search field is looked up
on its own (through its index when one exists, by scanning otherwise) and
the matches are OR-combined, the same meaning ``searchFields`` has on the
other backends.  Filtering by ``query``, sorting, pagination, and projection
are then applied to the matched rows.

Usage::

    adapter = MemoryAdapter(
        table="users",
        indexes=[IndexSchema(fields=["name"])],
    )
    await adapter.connect()
    ana = await adapter.insert({"name": "Ana", "age": 30})
    rows = await adapter.find({"searchFields": ["name"], "search": "Ana"})
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from polystore.adapters.base.adapter import AdapterHealth, Params, StoreAdapter
from polystore.adapters.base.exceptions import ConfigurationError
from polystore.adapters.memory.store import MemoryStore, Transaction
from polystore.models.query import QueryDescriptor, request_id
from polystore.models.record import Record, stringify
from polystore.models.schema import ID_FIELD, IndexSchema, TableSchema

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_letters + string.digits
DEFAULT_ID_LENGTH = 12


def random_id(length: int = DEFAULT_ID_LENGTH) -> str:
    """Random alphanumeric identifier (62**12 possibilities at the default length)."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


class MemoryAdapter(StoreAdapter):
    """Store adapter for the embedded, snapshot-isolated ``MemoryStore``.

    Reads run in a read-only transaction, so every result reflects a single
    consistent snapshot.  Inserts, updates, and removals each run in one write
    transaction; an update's lookup, delete, and re-insert therefore happen
    atomically with respect to other writers.

    Args:
        table: Table name.
        indexes: Secondary indexes (``IndexSchema`` or equivalent dicts).  A
            unique ``id`` index is always added.
        id_factory: Callable producing a new identifier for each insert.
            Defaults to a 12-character random alphanumeric string.
        **kwargs: Extra keyword arguments stored for future use.
    """

    def __init__(
        self,
        table: str = "records",
        indexes: list[IndexSchema | Mapping[str, Any]] | None = None,
        id_factory: Callable[[], str] | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            self._schema = TableSchema(
                name=table,
                indexes=[IndexSchema.model_validate(ix) if not isinstance(ix, IndexSchema) else ix for ix in indexes or []],
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid memory adapter schema: {e}", target=table) from e
        self._table = table
        self._id_factory = id_factory or random_id
        self._extra_kwargs = kwargs
        self._db: MemoryStore | None = None

    @property
    def name(self) -> str:
        return "memory"

    @property
    def target(self) -> str:
        return self._table

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    async def connect(self) -> None:
        """Create the store for the configured table and indexes."""
        self._db = MemoryStore([self._schema])
        logger.info(
            "Memory store ready (table: %s, indexes: %s)",
            self._table,
            ", ".join(ix.name for ix in self._schema.indexes),
        )

    async def disconnect(self) -> None:
        """Drop the store and everything in it."""
        self._db = None

    # ── Reads ────────────────────────────────────────────────────────────

    async def find(self, params: Params = None) -> list[Record]:
        db = self._store("find")
        descriptor = self.descriptor(params)
        with db.txn() as tx:
            rows = self._lookup(tx, descriptor)
        # The search group was resolved by the lookup itself.
        return descriptor.model_copy(update={"search": None, "search_fields": []}).apply(rows)

    async def find_by_id(self, record_id: Any) -> Record | None:
        self._store("find_by_id")
        key = request_id(record_id)
        if key is None:
            return None
        rows = await self.find(QueryDescriptor(search=stringify(key), search_fields=[ID_FIELD], limit=1))
        return rows[0] if rows else None

    async def count(self, params: Params = None) -> int:
        descriptor = self.descriptor(params, "count")
        rows = await self.find(descriptor.model_copy(update={"limit": None, "offset": None, "sort": [], "fields": None}))
        return len(rows)

    # ── Writes ───────────────────────────────────────────────────────────

    async def insert(self, record: Record | Mapping[str, Any]) -> Record:
        """Assign a fresh id and store the record in one write transaction."""
        db = self._store("insert")
        row = Record.coerce(record).merge({ID_FIELD: self._id_factory()})
        try:
            with db.txn(write=True) as tx:
                tx.insert(self._table, row.to_dict())
        except Exception:
            logger.error("Failed to insert record into %s", self._table, exc_info=True)
            raise
        return row

    async def update_by_id(self, record_id: Any, changes: Record | Mapping[str, Any]) -> Record | None:
        """Merge ``changes`` into the stored row (delete + insert, one transaction)."""
        db = self._store("update_by_id")
        key = stringify(request_id(record_id))
        with db.txn(write=True) as tx:
            current = tx.first(self._table, ID_FIELD, key)
            if current is None:
                return None
            updated = Record(current).merge(Record.coerce(changes).without(ID_FIELD))
            tx.delete(self._table, current)
            tx.insert(self._table, updated.to_dict())
        return updated

    async def remove_by_id(self, record_id: Any) -> Record | None:
        db = self._store("remove_by_id")
        key = stringify(request_id(record_id))
        with db.txn(write=True) as tx:
            current = tx.first(self._table, ID_FIELD, key)
            if current is None:
                return None
            tx.delete(self._table, current)
        return Record(current)

    async def remove_all(self) -> int:
        db = self._store("remove_all")
        with db.txn(write=True) as tx:
            return tx.delete_all(self._table)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> AdapterHealth:
        """Report row count for the configured table."""
        if self._db is None:
            return AdapterHealth(status="unhealthy", message="Store not connected")
        start = time.monotonic()
        with self._db.txn() as tx:
            rows = len(tx.get(self._table, ID_FIELD))
        return AdapterHealth(
            status="healthy",
            latency_ms=int((time.monotonic() - start) * 1000),
            last_check=datetime.now(UTC).isoformat(),
            message=f"Table: {self._table}, rows: {rows}",
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _store(self, operation: str) -> MemoryStore:
        self._ensure_connected(operation)
        assert self._db is not None
        return self._db

    def _lookup(self, tx: Transaction, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        """Resolve the search group to candidate rows inside ``tx``."""
        if not descriptor.has_search:
            return tx.get(self._table, ID_FIELD)
        assert descriptor.search is not None

        composite = "-".join(descriptor.search_fields)
        if tx.has_index(self._table, composite):
            return tx.get(self._table, composite, descriptor.search)

        seen: set[str] = set()
        matched: list[dict[str, Any]] = []
        everything: list[dict[str, Any]] | None = None
        for field in descriptor.search_fields:
            if tx.has_index(self._table, field):
                rows = tx.get(self._table, field, descriptor.search)
            else:
                if everything is None:
                    everything = tx.get(self._table, ID_FIELD)
                rows = [r for r in everything if field in r and stringify(r[field]) == descriptor.search]
            for row in rows:
                if row[ID_FIELD] not in seen:
                    seen.add(row[ID_FIELD])
                    matched.append(row)
        return matched
