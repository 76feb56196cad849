"""Data models shared by every storage adapter."""

from polystore.models.query import QueryDescriptor, SortField, parse_sort
from polystore.models.record import Record
from polystore.models.schema import Column, IndexSchema, TableSchema

__all__ = [
    "Column",
    "IndexSchema",
    "QueryDescriptor",
    "Record",
    "SortField",
    "TableSchema",
    "parse_sort",
]
