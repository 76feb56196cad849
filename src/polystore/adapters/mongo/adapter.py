"""MongoDB adapter — Document-store connector built on ``motor``.

The request descriptor is translated into a filter document and find
options:

    {"query": {"active": True}, "searchFields": ["name", "email"], "search": "ana",
     "sort": "-age", "limit": 10, "offset": 5}

becomes::

    collection.find(
        {"active": True, "$or": [{"name": "ana"}, {"email": "ana"}]},
        sort=[("age", -1)], limit=10, skip=5,
    )

Records expose the native ``_id`` as ``id``; filters, sorts and projections
on ``id`` are mapped back to ``_id``.  Every call is bounded by the
configured timeout and is never retried.

``update``, ``update_by_id``, ``remove_by_id`` and ``find_by_ids`` are not
implemented for this backend and raise ``OperationNotSupportedError``.

The driver is imported on first ``connect()``; pass ``client=`` to use an
existing client instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from polystore.adapters.base.adapter import AdapterHealth, Params, StoreAdapter
from polystore.adapters.base.exceptions import (
    ConfigurationError,
    ConnectionError,
    OperationNotSupportedError,
    QueryError,
    WriteError,
)
from polystore.models.query import QueryDescriptor, request_id
from polystore.models.record import Record
from polystore.models.schema import ID_FIELD

logger = logging.getLogger(__name__)

NATIVE_ID = "_id"


def native_field(field: str) -> str:
    return NATIVE_ID if field == ID_FIELD else field


def build_filter(descriptor: QueryDescriptor) -> dict[str, Any]:
    """Translate the descriptor's ``query`` and search group into a filter.

    One search field becomes an equality clause; several become an ``$or``
    of equality clauses.  Both parts are AND-combined; a search field that
    is also a query key goes under ``$and`` so neither value is lost.
    """
    filter_doc: dict[str, Any] = {native_field(k): v for k, v in descriptor.query.items()}
    clauses = descriptor.search_clauses()
    if len(clauses) == 1:
        field, value = clauses[0]
        key = native_field(field)
        if key in filter_doc:
            filter_doc["$and"] = [{key: value}]
        else:
            filter_doc[key] = value
    elif len(clauses) > 1:
        filter_doc["$or"] = [{native_field(field): value} for field, value in clauses]
    return filter_doc


def build_find_options(descriptor: QueryDescriptor) -> dict[str, Any]:
    """Translate pagination, sort, and projection into ``find()`` keyword arguments."""
    options: dict[str, Any] = {}
    if descriptor.limit is not None:
        options["limit"] = descriptor.limit
    if descriptor.offset is not None:
        options["skip"] = descriptor.offset
    if descriptor.sort:
        options["sort"] = [(native_field(s.field), s.direction) for s in descriptor.sort]
    if descriptor.fields is not None:
        projection = {native_field(f): 1 for f in descriptor.fields}
        projection.setdefault(NATIVE_ID, 0)
        options["projection"] = projection
    return options


def document_to_record(document: Mapping[str, Any]) -> Record:
    """Expose ``_id`` as ``id`` (first field), keep everything else as-is."""
    data: dict[str, Any] = {}
    if NATIVE_ID in document:
        data[ID_FIELD] = document[NATIVE_ID]
    for key, value in document.items():
        if key != NATIVE_ID:
            data[key] = value
    return Record(data)


class MongoAdapter(StoreAdapter):
    """Store adapter for MongoDB.

    Args:
        url: MongoDB connection URI, e.g. ``"mongodb://localhost:27017"``.
        database: Database name.
        collection: Collection name.
        timeout: Per-call timeout in seconds (connect, find, count, writes).
        client: Pre-built ``AsyncIOMotorClient`` (or compatible double) to use
            instead of creating one from ``url``.
        **kwargs: Additional keyword arguments forwarded to ``AsyncIOMotorClient``.
    """

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        database: str = "polystore",
        collection: str = "records",
        timeout: float = 2.0,
        client: Any = None,
        **kwargs: Any,
    ) -> None:
        if timeout <= 0:
            raise ConfigurationError("timeout must be positive", target=collection)
        self._url = url
        self._database = database
        self._collection_name = collection
        self._timeout = timeout
        self._extra_kwargs = kwargs
        self._injected_client = client
        self._client: Any = None
        self._collection: Any = None

    @property
    def name(self) -> str:
        return "mongo"

    @property
    def target(self) -> str:
        return f"{self._database}.{self._collection_name}"

    @property
    def is_connected(self) -> bool:
        return self._collection is not None

    async def connect(self) -> None:
        """Create the ``AsyncIOMotorClient``, ping the server, bind the collection."""
        try:
            self._client = self._injected_client or self._create_client()
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=self._timeout)
            self._collection = self._client[self._database][self._collection_name]
            logger.info("Connected to MongoDB (collection: %s)", self.target)
        except ConfigurationError:
            raise
        except Exception as e:
            if self._client is not None:
                self._client.close()
                self._client = None
            raise ConnectionError(f"Failed to connect to MongoDB: {e}", operation="connect", target=self.target) from e

    def _create_client(self) -> Any:
        try:
            from motor.motor_asyncio import AsyncIOMotorClient
        except ImportError as e:
            raise ConfigurationError(
                "motor package is required.  Install with: pip install motor"
            ) from e

        client_kwargs: dict[str, Any] = {"serverSelectionTimeoutMS": int(self._timeout * 1000)}
        client_kwargs.update(self._extra_kwargs)
        return AsyncIOMotorClient(self._url, **client_kwargs)

    async def disconnect(self) -> None:
        """Close the MongoDB client."""
        if self._client is not None:
            self._client.close()
        self._client = None
        self._collection = None

    # ── Reads ────────────────────────────────────────────────────────────

    async def find(self, params: Params = None) -> list[Record]:
        """Materialize every matching document.

        A decode or iteration error on any document aborts the call; no
        partial list is returned.  The cursor is closed on every path.
        """
        collection = self._require_collection("find")
        descriptor = self.descriptor(params)
        if descriptor.limit == 0:
            return []
        filter_doc = build_filter(descriptor)
        options = build_find_options(descriptor)
        options["max_time_ms"] = int(self._timeout * 1000)
        logger.debug("MongoDB find on %s: filter=%s options=%s", self.target, filter_doc, options)
        try:
            return await asyncio.wait_for(self._materialize(collection, filter_doc, options), timeout=self._timeout)
        except TimeoutError as e:
            raise QueryError(f"MongoDB find timed out after {self._timeout}s", operation="find", target=self.target) from e
        except Exception as e:
            raise QueryError(f"MongoDB find failed: {e}", operation="find", target=self.target) from e

    async def find_by_id(self, record_id: Any) -> Record | None:
        """Look up by ``_id`` using the identifier exactly as supplied (no coercion)."""
        self._require_collection("find_by_id")
        rows = await self.find(QueryDescriptor(query={ID_FIELD: request_id(record_id)}, limit=1))
        return rows[0] if rows else None

    async def find_by_ids(self, ids: Any) -> list[Record | None]:
        raise OperationNotSupportedError("find_by_ids is not supported by MongoAdapter", operation="find_by_ids", target=self.target)

    async def count(self, params: Params = None) -> int:
        collection = self._require_collection("count")
        filter_doc = build_filter(self.descriptor(params, "count"))
        try:
            return int(await asyncio.wait_for(collection.count_documents(filter_doc), timeout=self._timeout))
        except TimeoutError as e:
            raise QueryError(f"MongoDB count timed out after {self._timeout}s", operation="count", target=self.target) from e
        except Exception as e:
            raise QueryError(f"MongoDB count failed: {e}", operation="count", target=self.target) from e

    # ── Writes ───────────────────────────────────────────────────────────

    async def insert(self, record: Record | Mapping[str, Any]) -> Record:
        """Store the record and return it with the engine-assigned ``id``."""
        collection = self._require_collection("insert")
        data = Record.coerce(record).without(ID_FIELD)
        try:
            result = await asyncio.wait_for(collection.insert_one(data.to_dict()), timeout=self._timeout)
        except TimeoutError as e:
            raise WriteError(f"MongoDB insert timed out after {self._timeout}s", operation="insert", target=self.target) from e
        except Exception as e:
            raise WriteError(f"Error while trying to insert record: {e}", operation="insert", target=self.target) from e
        return data.merge({ID_FIELD: result.inserted_id})

    async def update(self, record: Record | Mapping[str, Any]) -> Record | None:
        raise OperationNotSupportedError("update is not supported by MongoAdapter", operation="update", target=self.target)

    async def update_by_id(self, record_id: Any, changes: Record | Mapping[str, Any]) -> Record | None:
        raise OperationNotSupportedError("update_by_id is not supported by MongoAdapter", operation="update_by_id", target=self.target)

    async def remove_by_id(self, record_id: Any) -> Record | None:
        raise OperationNotSupportedError("remove_by_id is not supported by MongoAdapter", operation="remove_by_id", target=self.target)

    async def remove_all(self) -> int:
        collection = self._require_collection("remove_all")
        try:
            result = await asyncio.wait_for(collection.delete_many({}), timeout=self._timeout)
        except TimeoutError as e:
            raise WriteError(f"MongoDB remove_all timed out after {self._timeout}s", operation="remove_all", target=self.target) from e
        except Exception as e:
            raise WriteError(f"Error while trying to remove all records: {e}", operation="remove_all", target=self.target) from e
        return int(result.deleted_count)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> AdapterHealth:
        """Ping the server."""
        if self._client is None:
            return AdapterHealth(status="unhealthy", message="Client not initialized")
        try:
            start = time.monotonic()
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=self._timeout)
            return AdapterHealth(
                status="healthy",
                latency_ms=int((time.monotonic() - start) * 1000),
                last_check=datetime.now(UTC).isoformat(),
                message=f"Collection: {self.target}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))

    # ── Helpers ──────────────────────────────────────────────────────────

    def _require_collection(self, operation: str) -> Any:
        self._ensure_connected(operation)
        return self._collection

    @staticmethod
    async def _materialize(collection: Any, filter_doc: dict[str, Any], options: dict[str, Any]) -> list[Record]:
        cursor = collection.find(filter_doc, **options)
        try:
            return [document_to_record(document) async for document in cursor]
        finally:
            await cursor.close()
