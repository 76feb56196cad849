"""Storage adapter layer — One CRUD and query contract, several backends.

Built-in adapters:
  - memory: embedded in-process store with composite indexes
  - mongo: MongoDB document store (motor)
  - sqlite: SQLite relational store (aiosqlite, pooled connections)

Implement ``StoreAdapter`` to connect your own backend.
"""
