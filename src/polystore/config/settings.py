"""Application settings — Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. YAML config file (if specified, via ``Settings.from_yaml``)
  2. Environment variables (POLYSTORE_ prefix)
  3. Default values

Connection parameters are supplied here, at construction time, never per
call.  ``Settings.adapter_kwargs()`` turns one backend section into the
keyword arguments of its adapter class.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from polystore.models.schema import Column, IndexSchema


class MemorySettings(BaseModel):
    """Embedded in-process store configuration."""

    table: str = Field(default="records", description="Table name")
    indexes: list[IndexSchema] = Field(default_factory=list, description="Secondary indexes")
    id_length: int = Field(default=12, ge=4, description="Length of generated identifiers")


class MongoSettings(BaseModel):
    """MongoDB configuration."""

    url: str = Field(default="mongodb://localhost:27017", description="Connection URI")
    database: str = Field(default="polystore", description="Database name")
    collection: str = Field(default="records", description="Collection name")
    timeout: float = Field(default=2.0, gt=0, description="Per-call timeout in seconds")
    extra: dict[str, Any] = Field(default_factory=dict, description="Extra client options")


class SQLiteSettings(BaseModel):
    """SQLite configuration."""

    uri: str = Field(default=":memory:", description="Database path or file: URI")
    table: str = Field(default="records", description="Table name")
    columns: list[Column] = Field(default_factory=list, description="Persisted columns")
    pool_size: int = Field(default=1, description="Pooled connections (values below 1 become 1)")
    timeout: float = Field(default=2.0, gt=0, description="Busy timeout in seconds")
    id_field: str = Field(default="id", description="Auto-increment identifier column")
    fields: list[str] | None = Field(default=None, description="Default projection")

    @field_validator("pool_size", mode="after")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


class Settings(BaseSettings):
    """Root settings.

    Configuration is loaded from environment variables with the POLYSTORE_ prefix.
    Nested settings use double underscores: POLYSTORE_SQLITE__POOL_SIZE=4

    Example:
        POLYSTORE_DEFAULT_ADAPTER=sqlite
        POLYSTORE_SQLITE__URI=/var/lib/app/users.db
        POLYSTORE_SQLITE__COLUMNS='[{"name": "title", "type": "TEXT"}]'
    """

    model_config = {
        "env_prefix": "POLYSTORE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    default_adapter: str = Field(default="memory", description="Adapter used when none is named")

    memory: MemorySettings = Field(default_factory=MemorySettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    def adapter_kwargs(self, name: str | None = None) -> dict[str, Any]:
        """Constructor keyword arguments for the named (or default) adapter.

        Raises:
            ValueError: If there is no settings section for ``name``.
        """
        from polystore.adapters.memory.adapter import random_id

        name = name or self.default_adapter
        if name == "memory":
            return {
                "table": self.memory.table,
                "indexes": list(self.memory.indexes),
                "id_factory": partial(random_id, self.memory.id_length),
            }
        if name == "mongo":
            return {
                "url": self.mongo.url,
                "database": self.mongo.database,
                "collection": self.mongo.collection,
                "timeout": self.mongo.timeout,
                **self.mongo.extra,
            }
        if name == "sqlite":
            return {
                "uri": self.sqlite.uri,
                "table": self.sqlite.table,
                "columns": list(self.sqlite.columns),
                "pool_size": self.sqlite.pool_size,
                "timeout": self.sqlite.timeout,
                "id_field": self.sqlite.id_field,
                "fields": self.sqlite.fields,
            }
        raise ValueError(f"No settings section for adapter '{name}'")

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are passed as explicit arguments, so they
        override environment variables for the keys they set.

        Args:
            path: Path to the YAML config file.

        Returns:
            Populated Settings instance.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)
