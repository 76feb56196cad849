"""Tests for the query descriptor, sort parsing, and the in-memory evaluator."""

from __future__ import annotations

import logging

import pytest

from polystore.models.query import (
    QueryDescriptor,
    SortField,
    parse_sort,
    request_id,
    request_ids,
    sort_key,
    values_equal,
)
from polystore.models.record import Record

# ── Sort parsing ─────────────────────────────────────────────────────────────


class TestParseSort:
    def test_string_and_list_are_equivalent(self) -> None:
        assert parse_sort("-age name") == parse_sort(["-age", "name"])

    def test_direction(self) -> None:
        keys = parse_sort("-age name")
        assert keys == [SortField(field="age", descending=True), SortField(field="name")]
        assert [k.direction for k in keys] == [-1, 1]

    def test_none_and_empty_list_mean_no_sort(self) -> None:
        assert parse_sort(None) == []
        assert parse_sort([]) == []

    def test_blank_string_is_invalid(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="polystore.models.query"):
            assert parse_sort("   ") == []
        assert "Invalid sort" in caplog.text

    def test_bare_dash_is_invalid(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="polystore.models.query"):
            assert parse_sort(["-", ""]) == []
        assert "Invalid sort" in caplog.text


# ── Descriptor construction ──────────────────────────────────────────────────


class TestFromRecord:
    def test_empty_request(self) -> None:
        d = QueryDescriptor.from_record(None)
        assert d.search is None
        assert d.search_fields == []
        assert d.query == {}
        assert d.sort == []
        assert d.limit is None
        assert d.offset is None
        assert d.fields is None

    def test_full_request(self) -> None:
        d = QueryDescriptor.from_record(
            {
                "search": "Ana",
                "searchFields": ["name", "nickname"],
                "query": {"active": True},
                "sort": "-age",
                "limit": "10",
                "offset": 5,
                "fields": "id name",
            }
        )
        assert d.search == "Ana"
        assert d.search_fields == ["name", "nickname"]
        assert d.query == {"active": True}
        assert d.sort == [SortField(field="age", descending=True)]
        assert d.limit == 10
        assert d.offset == 5
        assert d.fields == ["id", "name"]

    def test_numeric_search_is_stringified(self) -> None:
        d = QueryDescriptor.from_record({"search": 30.0, "searchFields": "age"})
        assert d.search == "30"
        assert d.search_fields == ["age"]

    def test_query_must_be_mapping(self) -> None:
        with pytest.raises(ValueError, match="mapping"):
            QueryDescriptor.from_record({"query": "name=Ana"})

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            QueryDescriptor.from_record({"limit": -1})

    def test_search_without_fields_has_no_effect(self) -> None:
        d = QueryDescriptor.from_record({"search": "Ana"})
        assert not d.has_search
        assert d.search_clauses() == []

    def test_search_clauses(self) -> None:
        d = QueryDescriptor(search="x", search_fields=["a", "b"])
        assert d.search_clauses() == [("a", "x"), ("b", "x")]

    def test_with_helpers_do_not_mutate(self) -> None:
        d = QueryDescriptor(query={"a": 1})
        limited = d.with_limit(1).with_query(b=2)
        assert limited.limit == 1
        assert limited.query == {"a": 1, "b": 2}
        assert d.limit is None
        assert d.query == {"a": 1}


# ── In-memory evaluation ─────────────────────────────────────────────────────


@pytest.fixture
def rows() -> list[dict]:
    return [
        {"id": "1", "name": "Ana", "age": 30, "team": "red"},
        {"id": "2", "name": "Bo", "age": 25, "team": "blue"},
        {"id": "3", "name": "Cy", "age": 30, "team": "blue"},
        {"id": "4", "name": "Di", "team": "red"},
    ]


class TestApply:
    def test_query_is_and_of_equalities(self, rows: list[dict]) -> None:
        d = QueryDescriptor(query={"age": 30, "team": "blue"})
        assert [r["id"] for r in d.apply(rows)] == ["3"]

    def test_query_accepts_numeric_text(self, rows: list[dict]) -> None:
        d = QueryDescriptor(query={"age": "30"})
        assert [r["id"] for r in d.apply(rows)] == ["1", "3"]

    def test_search_fields_are_or_combined(self, rows: list[dict]) -> None:
        d = QueryDescriptor(search="red", search_fields=["name", "team"])
        assert [r["id"] for r in d.apply(rows)] == ["1", "4"]

    def test_search_compares_as_text(self, rows: list[dict]) -> None:
        d = QueryDescriptor(search="30", search_fields=["age"])
        assert [r["id"] for r in d.apply(rows)] == ["1", "3"]

    def test_multi_key_sort(self, rows: list[dict]) -> None:
        d = QueryDescriptor(sort=parse_sort("-age name"))
        assert [r["id"] for r in d.apply(rows)] == ["1", "3", "2", "4"]

    def test_missing_values_sort_first(self, rows: list[dict]) -> None:
        d = QueryDescriptor(sort=parse_sort("age"))
        assert [r["id"] for r in d.apply(rows)][0] == "4"

    def test_pagination(self, rows: list[dict]) -> None:
        d = QueryDescriptor(sort=parse_sort("id"), offset=1, limit=2)
        assert [r["id"] for r in d.apply(rows)] == ["2", "3"]

    def test_offset_without_limit(self, rows: list[dict]) -> None:
        d = QueryDescriptor(offset=3)
        assert [r["id"] for r in d.apply(rows)] == ["4"]

    def test_limit_zero(self, rows: list[dict]) -> None:
        assert QueryDescriptor(limit=0).apply(rows) == []

    def test_projection(self, rows: list[dict]) -> None:
        d = QueryDescriptor(fields=["name"], limit=1)
        result = d.apply(rows)
        assert result == [{"name": "Ana"}]
        assert isinstance(result[0], Record)


class TestSortKey:
    def test_type_rank(self) -> None:
        values = [True, [1], {"a": 1}, "a", 1, None]
        assert sorted(values, key=sort_key) == [None, 1, "a", {"a": 1}, [1], True]


class TestValuesEqual:
    def test_number_and_numeric_text(self) -> None:
        assert values_equal(30, "30")
        assert values_equal("3.5", 3.5)
        assert values_equal(30, 30.0)

    def test_mismatches(self) -> None:
        assert not values_equal(30, "thirty")
        assert not values_equal("30", "30.0")
        assert not values_equal(True, "1")
        assert not values_equal(None, "None")


class TestRequestIds:
    def test_request_id(self) -> None:
        assert request_id({"id": 7}) == 7
        assert request_id("abc") == "abc"
        assert request_id({}) is None

    def test_request_ids(self) -> None:
        assert request_ids({"ids": ["a", "b"]}) == ["a", "b"]
        assert request_ids(["a"]) == ["a"]
        with pytest.raises(ValueError):
            request_ids(42)
