"""Observability — structured logging setup."""

from polystore.observability.logging import setup_logging

__all__ = ["setup_logging"]
