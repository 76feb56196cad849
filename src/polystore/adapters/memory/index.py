"""Composite index key codec for the embedded store.

Keys are the components joined with ``-``, optionally lowercased, and
terminated by a single NUL byte.  The terminator keeps keys prefix-free, so
``"ab"`` never collides with a longer key that starts with ``"ab"`` when the
store compares or range-scans keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from polystore.adapters.base.exceptions import IndexKeyError
from polystore.models.record import stringify

SEPARATOR = "-"
TERMINATOR = "\x00"


def encode_args(*args: Any, lowercase: bool = False) -> bytes:
    """Build a lookup key from explicit components.

    Raises:
        IndexKeyError: If any component is not a string.
    """
    for arg in args:
        if not isinstance(arg, str):
            raise IndexKeyError(f"Index keys can only be built from strings, got {type(arg).__name__}")
    key = SEPARATOR.join(args)
    if lowercase:
        key = key.lower()
    return (key + TERMINATOR).encode("utf-8")


def encode_object(obj: Mapping[str, Any], fields: list[str], lowercase: bool = False) -> bytes | None:
    """Build the key a stored row contributes to an index.

    Field values are stringified the same way lookups stringify ``search``.
    Returns ``None`` when the row lacks one of the fields.
    """
    if not isinstance(obj, Mapping):
        raise IndexKeyError(f"Cannot index a {type(obj).__name__}; a record is required")
    parts: list[str] = []
    for field in fields:
        if field not in obj or obj[field] is None:
            return None
        parts.append(stringify(obj[field]))
    return encode_args(*parts, lowercase=lowercase)


def decode_key(key: bytes) -> str:
    """Inverse of ``encode_args`` for display and debugging (joined form)."""
    return key.decode("utf-8").rstrip(TERMINATOR)
