"""Schema descriptors for the relational and embedded backends."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

ID_FIELD = "id"

TEXT = "TEXT"
NUMBER = "NUMBER"
INTEGER = "INTEGER"


class Column(BaseModel):
    """A persisted relational column.

    ``type`` is optional; an untyped column is filtered and decoded as text.
    """

    model_config = {"frozen": True}

    name: str = Field(description="Column name")
    type: str = Field(default="", description="Declared SQL type: TEXT, NUMBER, INTEGER, or empty")

    @field_validator("type", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> str:
        return str(v or "").strip().upper()

    @property
    def definition(self) -> str:
        """Column clause for ``CREATE TABLE``."""
        return f"{self.name} {self.type}" if self.type else self.name


class IndexSchema(BaseModel):
    """A composite index over one or more record fields (embedded backend).

    The index name defaults to the field names joined with ``-``, which is
    how lookups resolve an index from a request's ``searchFields``.
    """

    model_config = {"frozen": True}

    name: str = Field(default="", description="Index name (defaults to fields joined with '-')")
    fields: list[str] = Field(min_length=1, description="Indexed fields, in key order")
    unique: bool = Field(default=False, description="Reject two rows with the same key")
    lowercase: bool = Field(default=False, description="Case-insensitive keys")
    allow_missing: bool = Field(default=False, description="Skip rows lacking an indexed field")

    @model_validator(mode="after")
    def _default_name(self) -> IndexSchema:
        if not self.name:
            object.__setattr__(self, "name", "-".join(self.fields))
        return self


class TableSchema(BaseModel):
    """A table and its indexes.  A unique ``id`` index is always present."""

    name: str = Field(min_length=1, description="Table name")
    indexes: list[IndexSchema] = Field(default_factory=list, description="Secondary indexes")

    @model_validator(mode="after")
    def _ensure_id_index(self) -> TableSchema:
        if not any(ix.name == ID_FIELD for ix in self.indexes):
            self.indexes.insert(0, IndexSchema(name=ID_FIELD, fields=[ID_FIELD], unique=True))
        return self

    def index(self, name: str) -> IndexSchema | None:
        for ix in self.indexes:
            if ix.name == name:
                return ix
        return None
