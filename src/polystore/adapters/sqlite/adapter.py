"""SQLite adapter — Relational connector over a pooled ``aiosqlite`` engine.

The table is created on ``connect()`` from a static column list plus one
auto-incrementing identifier column::

    CREATE TABLE IF NOT EXISTS users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, age NUMBER)

Reads are built as ``SELECT <fields> FROM <table> [WHERE ...] [ORDER BY ...]
[LIMIT ?] [OFFSET ?]``.  The WHERE clause AND-combines the equality pairs of
``query`` with an OR group over ``searchFields``::

    WHERE active = ? AND (name = ? OR email = ?)

Every value is a bound parameter coerced to its column's declared type
(``TEXT`` → str, ``NUMBER`` → float, ``INTEGER`` → int).  Identifiers
(table, column, and field names) cannot be bound, so they are validated
against a strict pattern instead.  A search value that a column's type cannot
hold is left out of the OR group for that column.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from polystore.adapters.base.adapter import AdapterHealth, Params, StoreAdapter
from polystore.adapters.base.exceptions import (
    ConfigurationError,
    ConnectionError,
    QueryError,
    WriteError,
)
from polystore.adapters.sqlite.pool import ConnectionPool
from polystore.models.query import QueryDescriptor, request_id
from polystore.models.record import Record, stringify
from polystore.models.schema import ID_FIELD, INTEGER, NUMBER, Column

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str, kind: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid {kind} name: {name!r}")
    return name


class SQLiteAdapter(StoreAdapter):
    """Store adapter for SQLite.

    Args:
        uri: Database file path, ``":memory:"``, or ``file:`` URI.  With
            ``pool_size > 1`` an in-memory database must be a shared-cache
            URI (``"file::memory:?cache=shared"``) to be seen by every
            connection.
        table: Table name.
        columns: Persisted columns (``Column``, dicts, or ``(name, type)`` tuples).
        pool_size: Number of pooled connections (values below 1 become 1).
        timeout: Seconds to wait on a locked database.
        id_field: Name of the auto-increment identifier column.
        fields: Default projection.  Defaults to every column plus the id.
        col_name: Translates request field names to column names for writes
            and filters.  Defaults to identity.
        **kwargs: Extra keyword arguments stored for future use.
    """

    def __init__(
        self,
        uri: str = ":memory:",
        table: str = "records",
        columns: list[Column | Mapping[str, Any] | tuple[str, str]] | None = None,
        pool_size: int = 1,
        timeout: float = 2.0,
        id_field: str = ID_FIELD,
        fields: list[str] | None = None,
        col_name: Callable[[str], str] | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            self._table = _check_identifier(table, "table")
            self._id_field = _check_identifier(id_field, "id column")
            self._columns = [self._as_column(c) for c in columns or []]
            for column in self._columns:
                _check_identifier(column.name, "column")
            self._fields = [_check_identifier(f, "field") for f in fields] if fields else [c.name for c in self._columns]
        except ValueError as e:
            raise ConfigurationError(str(e), target=table) from e
        if self._id_field not in self._fields:
            self._fields.append(self._id_field)

        self._uri = uri
        self._pool_size = max(1, pool_size)
        self._timeout = timeout
        self._col_name = col_name or (lambda value: value)
        self._types = {c.name: c.type for c in self._columns}
        self._types[self._id_field] = INTEGER
        self._extra_kwargs = kwargs
        self._pool: ConnectionPool | None = None

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def target(self) -> str:
        return self._table

    @property
    def is_connected(self) -> bool:
        return self._pool is not None and self._pool.is_open

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the pool and create the table.  Any failure is fatal."""
        pool = ConnectionPool(self._uri, size=self._pool_size, timeout=self._timeout)
        try:
            await pool.open()
        except (sqlite3.Error, OSError) as e:
            logger.error("Could not connect to SQLite at %s", self._uri, exc_info=True)
            raise ConnectionError(f"Could not connect to SQLite: {e}", operation="connect", target=self._table) from e

        create = f"CREATE TABLE IF NOT EXISTS {self._table} ({', '.join(self.columns_definition())})"
        logger.debug(create)
        try:
            async with pool.acquire() as conn:
                await conn.execute(create)
                await conn.commit()
        except sqlite3.Error as e:
            await pool.close()
            logger.error("Could not create table %s", self._table, exc_info=True)
            raise ConnectionError(f"Could not create table: {e}", operation="connect", target=self._table) from e

        self._pool = pool
        logger.info("Connected to SQLite at %s (table: %s, pool: %d)", self._uri, self._table, self._pool_size)

    async def disconnect(self) -> None:
        """Close every pooled connection."""
        if self._pool is not None:
            await self._pool.close()
        self._pool = None

    def columns_definition(self) -> list[str]:
        return [f"{self._id_field} INTEGER PRIMARY KEY AUTOINCREMENT"] + [c.definition for c in self._columns]

    # ── Reads ────────────────────────────────────────────────────────────

    async def find(self, params: Params = None) -> list[Record]:
        pool = self._require_pool("find")
        descriptor = self.descriptor(params)
        fields = descriptor.fields if descriptor.fields is not None else self._fields
        try:
            sql, args = self.build_select(fields, descriptor)
        except ValueError as e:
            raise QueryError(str(e), operation="find", target=self._table) from e
        logger.debug("%s %s", sql, args)

        async with pool.acquire() as conn:
            try:
                async with conn.execute(sql, args) as cursor:
                    rows = await cursor.fetchall()
            except sqlite3.Error as e:
                logger.error("Error on select from %s", self._table, exc_info=True)
                raise QueryError(f"SQLite select failed: {e}", operation="find", target=self._table) from e
        return [self._row_to_record(fields, row) for row in rows]

    async def find_by_id(self, record_id: Any) -> Record | None:
        self._require_pool("find_by_id")
        key = self._coerce_id(record_id)
        if key is None:
            return None
        rows = await self.find(QueryDescriptor(query={self._id_field: key}, limit=1))
        return rows[0] if rows else None

    async def count(self, params: Params = None) -> int:
        pool = self._require_pool("count")
        descriptor = self.descriptor(params, "count")
        try:
            where, args = self.build_where(descriptor)
        except ValueError as e:
            raise QueryError(str(e), operation="count", target=self._table) from e
        sql = f"SELECT COUNT(*) AS count FROM {self._table}"
        if where:
            sql += f" WHERE {where}"
        logger.debug("%s %s", sql, args)

        async with pool.acquire() as conn:
            try:
                async with conn.execute(sql, args) as cursor:
                    row = await cursor.fetchone()
            except sqlite3.Error as e:
                raise QueryError(f"SQLite count failed: {e}", operation="count", target=self._table) from e
        return int(row["count"]) if row is not None else 0

    # ── Writes ───────────────────────────────────────────────────────────

    async def insert(self, record: Record | Mapping[str, Any]) -> Record:
        """Insert with bound parameters; return the record plus the new row id."""
        pool = self._require_pool("insert")
        data = Record.coerce(record).without(self._id_field)
        try:
            columns = [_check_identifier(self._col_name(k), "column") for k in data]
        except ValueError as e:
            raise WriteError(str(e), operation="insert", target=self._table) from e
        if columns:
            sql = (
                f"INSERT INTO {self._table} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})"
            )
        else:
            sql = f"INSERT INTO {self._table} DEFAULT VALUES"
        values = list(data.to_dict().values())
        logger.debug("%s %s", sql, values)

        async with pool.acquire() as conn:
            try:
                cursor = await conn.execute(sql, values)
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                logger.error("Error on insert into %s", self._table, exc_info=True)
                raise WriteError(f"SQLite insert failed: {e}", operation="insert", target=self._table) from e
        return data.merge({self._id_field: cursor.lastrowid})

    async def update_by_id(self, record_id: Any, changes: Record | Mapping[str, Any]) -> Record | None:
        """Apply ``changes`` to the row and return the refreshed record."""
        pool = self._require_pool("update_by_id")
        key = self._coerce_id(record_id)
        if key is None:
            return None
        data = Record.coerce(changes).without(self._id_field)
        if not data:
            return await self.find_by_id(key)
        try:
            assignments = [f"{_check_identifier(self._col_name(k), 'column')} = ?" for k in data]
        except ValueError as e:
            raise WriteError(str(e), operation="update_by_id", target=self._table) from e
        sql = f"UPDATE {self._table} SET {', '.join(assignments)} WHERE {self._id_field} = ?"
        values = [*data.to_dict().values(), key]
        logger.debug("%s %s", sql, values)

        async with pool.acquire() as conn:
            try:
                cursor = await conn.execute(sql, values)
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                logger.error("Error on update of %s", self._table, exc_info=True)
                raise WriteError(f"SQLite update failed: {e}", operation="update_by_id", target=self._table) from e
            changed = cursor.rowcount
        if changed == 0:
            return None
        return await self.find_by_id(key)

    async def remove_by_id(self, record_id: Any) -> Record | None:
        """Delete the row and return it as it was; ``None`` if it did not exist."""
        pool = self._require_pool("remove_by_id")
        key = self._coerce_id(record_id)
        if key is None:
            return None
        select, select_args = self.build_select(self._fields, QueryDescriptor(query={self._id_field: key}, limit=1))
        delete = f"DELETE FROM {self._table} WHERE {self._id_field} = ?"
        logger.debug("%s %s", delete, [key])

        async with pool.acquire() as conn:
            try:
                async with conn.execute(select, select_args) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    return None
                cursor = await conn.execute(delete, [key])
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                logger.error("Error on delete from %s", self._table, exc_info=True)
                raise WriteError(f"SQLite delete failed: {e}", operation="remove_by_id", target=self._table) from e
        if cursor.rowcount == 0:
            return None
        return self._row_to_record(self._fields, row)

    async def remove_all(self) -> int:
        pool = self._require_pool("remove_all")
        delete = f"DELETE FROM {self._table}"
        logger.debug(delete)
        async with pool.acquire() as conn:
            try:
                cursor = await conn.execute(delete)
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                logger.error("Error on delete from %s", self._table, exc_info=True)
                raise WriteError(f"SQLite delete failed: {e}", operation="remove_all", target=self._table) from e
        return cursor.rowcount

    # ── SQL building ─────────────────────────────────────────────────────

    def build_where(self, descriptor: QueryDescriptor) -> tuple[str, list[Any]]:
        """Equality pairs from ``query`` (AND) plus the search OR group.

        Raises:
            ValueError: On an invalid field name or a ``query`` value that
                cannot be coerced to its column type. Search values that do
                not fit a column are dropped from the OR group instead.
        """
        pairs: list[str] = []
        args: list[Any] = []
        for field, value in descriptor.query.items():
            pairs.append(f"{self._column_ref(field)} = ?")
            args.append(self.bind_value(field, value))
        where = " AND ".join(pairs)

        clauses = descriptor.search_clauses()
        if clauses:
            terms: list[str] = []
            for field, value in clauses:
                column = self._column_ref(field)
                try:
                    bound = self.bind_value(field, value)
                except ValueError:
                    # A value the column type cannot hold matches no row there.
                    continue
                terms.append(f"{column} = ?")
                args.append(bound)
            group = " OR ".join(terms) if terms else "0 = 1"
            where = f"{where} AND ({group})" if where else f"({group})"
        return where, args

    def build_select(self, fields: list[str], descriptor: QueryDescriptor) -> tuple[str, list[Any]]:
        """Full ``SELECT`` text and its bound parameters."""
        projection = ", ".join(_check_identifier(f, "field") for f in fields) or "*"
        where, args = self.build_where(descriptor)
        sql = f"SELECT {projection} FROM {self._table}"
        if where:
            sql += f" WHERE {where}"
        if descriptor.sort:
            order = ", ".join(
                f"{self._column_ref(s.field)} {'DESC' if s.descending else 'ASC'}" for s in descriptor.sort
            )
            sql += f" ORDER BY {order}"
        if descriptor.limit is not None:
            sql += " LIMIT ?"
            args.append(descriptor.limit)
        if descriptor.offset is not None:
            if descriptor.limit is None:
                sql += " LIMIT -1"
            sql += " OFFSET ?"
            args.append(descriptor.offset)
        return sql, args

    def column_type(self, field: str) -> str:
        return self._types.get(field, "")

    def bind_value(self, field: str, value: Any) -> Any:
        """Coerce a filter value to its column's declared type."""
        if value is None:
            return None
        column_type = self.column_type(field)
        try:
            if column_type == NUMBER:
                return float(value)
            if column_type == INTEGER:
                return int(float(value)) if isinstance(value, str) and "." in value else int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Value {value!r} is not valid for {column_type} column '{field}'") from e
        return stringify(value)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _column_ref(self, field: str) -> str:
        return _check_identifier(self._col_name(field), "field")

    def _row_to_record(self, fields: list[str], row: aiosqlite.Row) -> Record:
        """Decode each selected column by its declared type; NULL columns are omitted."""
        data: dict[str, Any] = {}
        for field in fields:
            value = row[field]
            if value is None:
                continue
            column_type = self.column_type(field)
            if column_type == NUMBER:
                value = float(value)
            elif column_type == INTEGER:
                value = int(value)
            elif not isinstance(value, str):
                value = stringify(value)
            data[field] = value
        return Record(data)

    def _coerce_id(self, record_id: Any) -> int | None:
        value = request_id(record_id)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, float) and not value.is_integer():
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def _require_pool(self, operation: str) -> ConnectionPool:
        self._ensure_connected(operation)
        assert self._pool is not None
        return self._pool

    @staticmethod
    def _as_column(column: Column | Mapping[str, Any] | tuple[str, str]) -> Column:
        if isinstance(column, Column):
            return column
        if isinstance(column, tuple):
            name, column_type = column
            return Column(name=name, type=column_type)
        return Column.model_validate(column)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> AdapterHealth:
        """Run ``SELECT 1`` on a pooled connection."""
        if self._pool is None:
            return AdapterHealth(status="unhealthy", message="Pool not initialized")
        try:
            start = time.monotonic()
            async with self._pool.acquire() as conn:
                async with conn.execute("SELECT 1") as cursor:
                    await cursor.fetchone()
            return AdapterHealth(
                status="healthy",
                latency_ms=int((time.monotonic() - start) * 1000),
                last_check=datetime.now(UTC).isoformat(),
                message=f"Database: {self._uri}, table: {self._table}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))
