"""Document-store backend (MongoDB via motor)."""

from polystore.adapters.mongo.adapter import MongoAdapter, build_filter, build_find_options

__all__ = ["MongoAdapter", "build_filter", "build_find_options"]
