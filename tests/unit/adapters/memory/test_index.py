"""Tests for the composite index key codec."""

from __future__ import annotations

import pytest

from polystore.adapters.base.exceptions import IndexKeyError
from polystore.adapters.memory.index import decode_key, encode_args, encode_object


class TestEncodeArgs:
    def test_deterministic(self) -> None:
        assert encode_args("Ana", "Silva") == encode_args("Ana", "Silva")

    def test_distinct_inputs_distinct_keys(self) -> None:
        assert encode_args("Ana") != encode_args("Bo")
        assert encode_args("Ana", "Silva") != encode_args("Ana")

    def test_keys_are_prefix_free(self) -> None:
        short, long = encode_args("ab"), encode_args("abc")
        assert not long.startswith(short)

    def test_lowercase(self) -> None:
        assert encode_args("ANA", lowercase=True) == encode_args("ana")
        assert encode_args("ANA") != encode_args("ana")

    def test_non_string_rejected(self) -> None:
        with pytest.raises(IndexKeyError):
            encode_args("Ana", 30)  # type: ignore[arg-type]

    def test_index_key_error_is_type_error(self) -> None:
        with pytest.raises(TypeError):
            encode_args(None)  # type: ignore[arg-type]

    def test_decode(self) -> None:
        assert decode_key(encode_args("Ana", "Silva")) == "Ana-Silva"


class TestEncodeObject:
    def test_matches_lookup_key(self) -> None:
        row = {"first": "Ana", "last": "Silva", "age": 30}
        assert encode_object(row, ["first", "last"]) == encode_args("Ana", "Silva")

    def test_values_are_stringified(self) -> None:
        assert encode_object({"age": 30.0}, ["age"]) == encode_args("30")

    def test_missing_field(self) -> None:
        assert encode_object({"first": "Ana"}, ["first", "last"]) is None
        assert encode_object({"first": "Ana", "last": None}, ["first", "last"]) is None

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(IndexKeyError):
            encode_object(["Ana"], ["first"])  # type: ignore[arg-type]
