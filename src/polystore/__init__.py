"""polystore — One CRUD and query contract over embedded, document, and relational stores."""

__version__ = "0.1.0"
