"""Adapter-specific exceptions."""

from __future__ import annotations


class AdapterError(Exception):
    """Base exception for adapter errors.

    Carries the failing operation and the table/collection it targeted so
    callers can diagnose backend failures without parsing messages.
    """

    def __init__(self, message: str, *, operation: str | None = None, target: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.target = target

    def __str__(self) -> str:
        context = ", ".join(
            f"{k}={v}" for k, v in (("operation", self.operation), ("target", self.target)) if v
        )
        return f"{self.message} ({context})" if context else self.message


class ConnectionError(AdapterError):
    """Raised when the adapter cannot connect to its backend."""


class NotConnectedError(ConnectionError):
    """Raised when an operation runs before ``connect()`` or after ``disconnect()``."""


class QueryError(AdapterError):
    """Raised when a read (find, count) fails."""


class WriteError(AdapterError):
    """Raised when an insert, update, or delete fails."""


class OperationNotSupportedError(AdapterError):
    """Raised when a backend does not implement an operation."""


class ConfigurationError(AdapterError):
    """Raised when adapter configuration is invalid."""


class IndexKeyError(AdapterError, TypeError):
    """Raised when a composite index key cannot be built from the given values."""
