"""Query descriptor — The backend-independent form of a find/count request.

Incoming requests are loosely-typed records.  ``QueryDescriptor.from_record``
pulls out the fields every adapter understands (the names are part of the
wire contract and are accepted verbatim)::

    {
        "search": "Ana",
        "searchFields": ["name", "nickname"],   # OR across fields
        "query": {"active": True},              # AND of equalities
        "sort": "-age name",                    # or ["-age", "name"]
        "limit": 10,
        "offset": 20,
        "fields": ["id", "name"],
    }

Each adapter re-expresses the parsed descriptor natively (index key, BSON
filter, SQL text).  ``QueryDescriptor.apply`` evaluates the same descriptor
over in-memory records and is the reference for the shared semantics.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from polystore.models.record import Record, stringify

logger = logging.getLogger(__name__)

# Wire-level request field names.
SEARCH = "search"
SEARCH_FIELDS = "searchFields"
QUERY = "query"
SORT = "sort"
LIMIT = "limit"
OFFSET = "offset"
FIELDS = "fields"
ID = "id"
IDS = "ids"


class SortField(BaseModel):
    """One sort key: a field name and its direction."""

    model_config = {"frozen": True}

    field: str = Field(description="Field to order by")
    descending: bool = Field(default=False, description="Descending order when true")

    @property
    def direction(self) -> int:
        """``1`` for ascending, ``-1`` for descending (document-store convention)."""
        return -1 if self.descending else 1

    @classmethod
    def parse(cls, token: str) -> SortField:
        """Parse ``"age"`` / ``"-age"``."""
        if token.startswith("-"):
            return cls(field=token[1:], descending=True)
        return cls(field=token)


def parse_sort(value: Any) -> list[SortField]:
    """Parse a sort specification into ordered sort keys.

    A string is split on whitespace; a list contributes one key per entry.
    The first key is the primary order.  Empty or blank input is invalid and
    yields no sort (a warning is logged, nothing is raised).
    """
    if value is None or (isinstance(value, (list, tuple)) and not value):
        return []
    if isinstance(value, str):
        tokens = value.split()
    elif isinstance(value, Iterable):
        tokens = [stringify(item).strip() for item in value]
        tokens = [t for t in tokens if t]
    else:
        tokens = stringify(value).split()

    sorts = [SortField.parse(t) for t in tokens if t not in ("", "-")]
    if not sorts:
        logger.warning("Invalid sort entry %r, ignoring sort", value)
    return sorts


class QueryDescriptor(BaseModel):
    """Parsed search, filter, sort, pagination, and projection options."""

    model_config = {"populate_by_name": True, "frozen": True}

    search: str | None = Field(default=None, description="Value compared against every search field")
    search_fields: list[str] = Field(
        default_factory=list,
        alias=SEARCH_FIELDS,
        description="Fields OR-compared for equality against `search`",
    )
    query: dict[str, Any] = Field(default_factory=dict, description="Equality filter, AND-combined")
    sort: list[SortField] = Field(default_factory=list, description="Ordered sort keys, primary first")
    limit: int | None = Field(default=None, ge=0, description="Maximum number of rows")
    offset: int | None = Field(default=None, ge=0, description="Number of rows to skip")
    fields: list[str] | None = Field(default=None, description="Fields to project (None = all)")

    @classmethod
    def from_record(cls, params: Record | Mapping[str, Any] | None) -> QueryDescriptor:
        """Build a descriptor from a request record.  No field is required.

        Raises:
            ValueError: If a field has an unusable shape (e.g. a negative limit).
        """
        record = Record.coerce(params)

        search = record.get_str(SEARCH)
        search_fields = [stringify(f) for f in record.get_list(SEARCH_FIELDS) if stringify(f)]

        raw_query = record.get(QUERY)
        if raw_query is None:
            query: dict[str, Any] = {}
        elif isinstance(raw_query, Mapping):
            query = Record.coerce(raw_query).to_dict()
        else:
            raise ValueError(f"'query' must be a mapping, got {type(raw_query).__name__}")

        fields: list[str] | None = None
        if record.has(FIELDS):
            raw_fields = record[FIELDS]
            if isinstance(raw_fields, str):
                fields = raw_fields.split()
            else:
                fields = [stringify(f) for f in record.get_list(FIELDS)]

        return cls(
            search=search,
            search_fields=search_fields,
            query=query,
            sort=parse_sort(record.get(SORT)),
            limit=record.get_int(LIMIT),
            offset=record.get_int(OFFSET),
            fields=fields,
        )

    # ── Derived views ────────────────────────────────────────────────────

    @property
    def has_search(self) -> bool:
        """True when both ``search`` and ``searchFields`` are present."""
        return bool(self.search_fields) and self.search is not None

    def search_clauses(self) -> list[tuple[str, str]]:
        """``(field, value)`` equality pairs, OR-combined."""
        if not self.has_search:
            return []
        assert self.search is not None
        return [(f, self.search) for f in self.search_fields]

    def with_limit(self, limit: int | None) -> QueryDescriptor:
        return self.model_copy(update={"limit": limit})

    def with_query(self, **equalities: Any) -> QueryDescriptor:
        return self.model_copy(update={"query": {**self.query, **equalities}})

    # ── In-memory evaluation ─────────────────────────────────────────────

    def matches(self, record: Mapping[str, Any]) -> bool:
        """True if ``record`` passes the equality filter and the search group."""
        for key, expected in self.query.items():
            if key not in record or not values_equal(record[key], expected):
                return False
        clauses = self.search_clauses()
        if clauses:
            return any(f in record and stringify(record[f]) == value for f, value in clauses)
        return True

    def order(self, records: list[Record]) -> list[Record]:
        """Stable multi-key sort; earlier keys take precedence."""
        ordered = list(records)
        for key in reversed(self.sort):
            ordered.sort(key=lambda r, f=key.field: sort_key(r.get(f)), reverse=key.descending)
        return ordered

    def paginate(self, records: list[Record]) -> list[Record]:
        start = self.offset or 0
        end = None if self.limit is None else start + self.limit
        return records[start:end]

    def project(self, records: list[Record]) -> list[Record]:
        if self.fields is None:
            return records
        return [r.project(self.fields) for r in records]

    def apply(self, records: Iterable[Mapping[str, Any]]) -> list[Record]:
        """Filter, sort, paginate, and project ``records``."""
        matched = [Record.coerce(r) for r in records if self.matches(r)]
        return self.project(self.paginate(self.order(matched)))


def sort_key(value: Any) -> tuple[int, Any]:
    """Total order over heterogeneous values.

    Mirrors the document-store comparison order so that every backend ranks
    mixed and missing values the same way: missing < numbers < strings <
    mappings < lists < booleans.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (5, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, Mapping):
        return (3, repr(sorted(value.items(), key=lambda kv: kv[0])))
    if isinstance(value, (list, tuple)):
        return (4, repr(list(value)))
    return (6, repr(value))


def values_equal(actual: Any, expected: Any) -> bool:
    """Equality used by ``query`` filters.

    A number and its numeric text compare equal (``30 == "30"``), the way a
    typed SQL column compares a bound parameter.  Booleans never take part in
    that conversion.
    """
    if actual == expected:
        return True
    if isinstance(actual, bool) or isinstance(expected, bool):
        return False
    if isinstance(actual, str) and isinstance(expected, (int, float)):
        actual, expected = expected, actual
    if isinstance(actual, (int, float)) and isinstance(expected, str):
        try:
            return float(expected.strip()) == actual
        except ValueError:
            return False
    return False


def request_id(params: Any) -> Any:
    """Extract the ``id`` from a request record, or return a bare id as-is."""
    if isinstance(params, Mapping):
        return params.get(ID)
    return params


def request_ids(params: Any) -> list[Any]:
    """Extract the ``ids`` list from a request record, or accept a bare list."""
    if isinstance(params, Mapping):
        return Record.coerce(params).get_list(IDS)
    if isinstance(params, (list, tuple)):
        return list(params)
    raise ValueError(f"Expected a list of ids, got {type(params).__name__}")
