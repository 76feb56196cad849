"""In-process transactional store with composite indexes.

The store keeps an immutable root snapshot (one ``TableState`` per table).
Transactions work like this:

  - A read transaction pins the root that was current when it started.  It
    never blocks and never sees writes committed after it began.
  - A write transaction takes the store-wide writer lock, copies each table
    the first time it touches it, and on ``commit()`` swaps the new root in
    atomically.  ``abort()`` simply drops the copies.

Writers are therefore serialized, readers never wait for writers, and a
reader never observes an uncommitted (or partially applied) write.

Usage::

    store = MemoryStore([TableSchema(name="users", indexes=[IndexSchema(fields=["name"])])])
    with store.txn(write=True) as tx:
        tx.insert("users", {"id": "u1", "name": "Ana"})
    with store.txn() as tx:
        rows = tx.get("users", "name", "Ana")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from polystore.adapters.base.exceptions import ConfigurationError, WriteError
from polystore.adapters.memory.index import decode_key, encode_args, encode_object
from polystore.models.record import Record
from polystore.models.schema import ID_FIELD, IndexSchema, TableSchema

logger = logging.getLogger(__name__)


@dataclass
class TableState:
    """Rows by id plus, per index, composite key → ids (insertion order)."""

    rows: dict[str, dict[str, Any]] = field(default_factory=dict)
    indexes: dict[str, dict[bytes, tuple[str, ...]]] = field(default_factory=dict)

    def clone(self) -> TableState:
        return TableState(
            rows=dict(self.rows),
            indexes={name: dict(keys) for name, keys in self.indexes.items()},
        )


class MemoryStore:
    """Snapshot-isolated, in-process, key-indexed table store."""

    def __init__(self, tables: list[TableSchema]) -> None:
        if not tables:
            raise ConfigurationError("At least one table schema is required")
        self._schemas: dict[str, TableSchema] = {}
        for table in tables:
            if table.name in self._schemas:
                raise ConfigurationError(f"Duplicate table '{table.name}'")
            names = [ix.name for ix in table.indexes]
            if len(names) != len(set(names)):
                raise ConfigurationError(f"Duplicate index name in table '{table.name}'")
            id_index = table.index(ID_FIELD)
            if id_index is None or id_index.fields != [ID_FIELD] or not id_index.unique:
                raise ConfigurationError(f"Table '{table.name}' needs a unique index on '{ID_FIELD}'")
            self._schemas[table.name] = table

        self._root: dict[str, TableState] = {
            name: TableState(indexes={ix.name: {} for ix in schema.indexes})
            for name, schema in self._schemas.items()
        }
        self._writer = threading.Lock()
        self._swap = threading.Lock()

    def schema(self, table: str) -> TableSchema:
        try:
            return self._schemas[table]
        except KeyError:
            raise ConfigurationError(f"Unknown table '{table}'") from None

    def txn(self, write: bool = False) -> Transaction:
        """Start a transaction.  Write transactions block until the writer lock is free."""
        if write:
            self._writer.acquire()
        with self._swap:
            root = self._root
        return Transaction(self, root, write)

    def _commit(self, changes: dict[str, TableState]) -> None:
        with self._swap:
            self._root = {**self._root, **changes}

    def _release(self) -> None:
        self._writer.release()


class Transaction:
    """A read-only or read-write view over one store snapshot."""

    def __init__(self, store: MemoryStore, root: dict[str, TableState], write: bool) -> None:
        self._store = store
        self._root = root
        self._write = write
        self._changes: dict[str, TableState] = {}
        self._done = False

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, *_: object) -> None:
        if self._done:
            return
        if self._write and exc_type is None:
            self.commit()
        else:
            self.abort()

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, table: str, index: str, *args: str) -> list[dict[str, Any]]:
        """Rows whose ``index`` key equals the key built from ``args``.

        With no ``args`` every row covered by the index is returned in key
        order.
        """
        schema_index = self._index(table, index)
        state = self._state(table)
        keys = state.indexes[index]
        if args:
            ids = keys.get(encode_args(*args, lowercase=schema_index.lowercase), ())
        else:
            ids = tuple(i for key in sorted(keys) for i in keys[key])
        return [Record(state.rows[i]).to_dict() for i in ids]

    def first(self, table: str, index: str, *args: str) -> dict[str, Any] | None:
        rows = self.get(table, index, *args)
        return rows[0] if rows else None

    def has_index(self, table: str, index: str) -> bool:
        return self._store.schema(table).index(index) is not None

    # ── Writes ───────────────────────────────────────────────────────────

    def insert(self, table: str, row: dict[str, Any]) -> None:
        """Insert ``row`` or replace the row with the same ``id``.

        Raises:
            WriteError: On a unique-index violation or a missing indexed field.
        """
        self._require_write("insert")
        row = Record(row).to_dict()
        row_id = row.get(ID_FIELD)
        if not isinstance(row_id, str) or not row_id:
            raise WriteError(f"Row needs a string '{ID_FIELD}'", operation="insert", target=table)

        state = self._writable(table)
        pending: list[tuple[str, bytes]] = []
        for ix in self._store.schema(table).indexes:
            key = encode_object(row, ix.fields, lowercase=ix.lowercase)
            if key is None:
                if ix.allow_missing:
                    continue
                missing = [f for f in ix.fields if row.get(f) is None]
                raise WriteError(
                    f"Field `{'`, `'.join(missing)}` not found for index '{ix.name}'",
                    operation="insert",
                    target=table,
                )
            existing = state.indexes[ix.name].get(key, ())
            if ix.unique and any(i != row_id for i in existing):
                raise WriteError(
                    f"Unique index '{ix.name}' violated by key '{decode_key(key)}'",
                    operation="insert",
                    target=table,
                )
            pending.append((ix.name, key))

        if row_id in state.rows:
            self._unindex(state, table, row_id)
        for name, key in pending:
            state.indexes[name][key] = state.indexes[name].get(key, ()) + (row_id,)
        state.rows[row_id] = row

    def delete(self, table: str, row: dict[str, Any]) -> None:
        """Delete the row with ``row``'s id.

        Raises:
            WriteError: If no such row exists.
        """
        self._require_write("delete")
        row_id = row.get(ID_FIELD)
        state = self._writable(table)
        if row_id not in state.rows:
            raise WriteError(f"Row '{row_id}' not found", operation="delete", target=table)
        self._unindex(state, table, row_id)
        del state.rows[row_id]

    def delete_all(self, table: str) -> int:
        self._require_write("delete_all")
        count = len(self._state(table).rows)
        self._changes[table] = TableState(indexes={ix.name: {} for ix in self._store.schema(table).indexes})
        return count

    def commit(self) -> None:
        if self._done:
            return
        self._done = True
        if self._write:
            try:
                self._store._commit(self._changes)
                logger.debug("Committed changes to %s", ", ".join(self._changes) or "no tables")
            finally:
                self._store._release()

    def abort(self) -> None:
        if self._done:
            return
        self._done = True
        self._changes.clear()
        if self._write:
            self._store._release()

    # ── Internals ────────────────────────────────────────────────────────

    def _state(self, table: str) -> TableState:
        self._store.schema(table)
        if table in self._changes:
            return self._changes[table]
        return self._root[table]

    def _writable(self, table: str) -> TableState:
        if table not in self._changes:
            self._changes[table] = self._state(table).clone()
        return self._changes[table]

    def _index(self, table: str, index: str) -> IndexSchema:
        ix = self._store.schema(table).index(index)
        if ix is None:
            raise ConfigurationError(f"Unknown index '{index}' on table '{table}'")
        return ix

    def _unindex(self, state: TableState, table: str, row_id: str) -> None:
        old = state.rows[row_id]
        for ix in self._store.schema(table).indexes:
            key = encode_object(old, ix.fields, lowercase=ix.lowercase)
            if key is None:
                continue
            remaining = tuple(i for i in state.indexes[ix.name].get(key, ()) if i != row_id)
            if remaining:
                state.indexes[ix.name][key] = remaining
            else:
                state.indexes[ix.name].pop(key, None)

    def _require_write(self, operation: str) -> None:
        if not self._write:
            raise WriteError("Cannot write in a read-only transaction", operation=operation)
        if self._done:
            raise WriteError("Transaction already closed", operation=operation)
