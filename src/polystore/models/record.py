"""Record model — The dynamically-shaped unit exchanged with every adapter.

A ``Record`` is an ordered field-name → value mapping.  Values may be
strings, numbers, booleans, nested records, or lists of those.  Adapters
only talk to records through this interface (get / set / iterate plus the
typed ``get_*`` helpers), never through a concrete wire encoding.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any

_MISSING = object()


def stringify(value: Any) -> str:
    """Render a scalar the way callers expect to see it in a search key.

    Integral floats drop their fractional part (``30.0`` → ``"30"``) and
    booleans are lowercase, so the same logical value always produces the
    same text regardless of which backend decoded it.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return ""
    return str(value)


class Record(MutableMapping[str, Any]):
    """Ordered, dynamically-shaped mapping with typed accessors.

    Example:
        >>> user = Record(name="Ana", age="30")
        >>> user.get_int("age")
        30
        >>> user.merge({"age": 31}).to_dict()
        {'name': 'Ana', 'age': 31}
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, **fields: Any) -> None:
        self._data: dict[str, Any] = {}
        if data is not None:
            for key, value in data.items():
                self._data[str(key)] = value
        self._data.update(fields)

    @classmethod
    def coerce(cls, obj: Record | Mapping[str, Any] | None) -> Record:
        """Return ``obj`` as a Record (a fresh empty one for ``None``)."""
        if isinstance(obj, Record):
            return obj
        if obj is None:
            return cls()
        if isinstance(obj, Mapping):
            return cls(obj)
        raise TypeError(f"Cannot build a Record from {type(obj).__name__}")

    # ── Mapping protocol ─────────────────────────────────────────────────

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Record({self._data!r})"

    # ── Conversions ──────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Return a native ``dict`` copy, converting nested records as well."""
        return {key: _to_native(value) for key, value in self._data.items()}

    def copy(self) -> Record:
        return Record(self.to_dict())

    def merge(self, other: Mapping[str, Any]) -> Record:
        """Return a new record with ``other``'s fields layered over this one."""
        merged = self.to_dict()
        merged.update(_to_native(dict(other)))
        return Record(merged)

    def without(self, *fields: str) -> Record:
        """Return a new record with ``fields`` removed."""
        return Record({k: v for k, v in self.to_dict().items() if k not in fields})

    def project(self, fields: list[str]) -> Record:
        """Return a new record restricted to ``fields`` (in that order)."""
        return Record({f: _to_native(self._data[f]) for f in fields if f in self._data})

    # ── Typed accessors ──────────────────────────────────────────────────

    def has(self, field: str) -> bool:
        return field in self._data and self._data[field] is not None

    def get_str(self, field: str, default: str | None = None) -> str | None:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return default
        return stringify(value)

    def get_number(self, field: str, default: float | None = None) -> float | None:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return default
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Field '{field}' is not numeric: {value!r}") from e

    def get_int(self, field: str, default: int | None = None) -> int | None:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, float):
            return int(value)
        try:
            return int(str(value).strip())
        except ValueError:
            # "3.0" style text
            try:
                return int(float(str(value)))
            except ValueError as e:
                raise ValueError(f"Field '{field}' is not an integer: {value!r}") from e

    def get_bool(self, field: str, default: bool | None = None) -> bool | None:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    def get_list(self, field: str) -> list[Any]:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    def get_record(self, field: str) -> Record | None:
        value = self._data.get(field, _MISSING)
        if value is _MISSING or value is None:
            return None
        if isinstance(value, Mapping):
            return Record.coerce(value)
        raise ValueError(f"Field '{field}' is not a record: {value!r}")


def _to_native(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _to_native(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_native(v) for v in value]
    return value
