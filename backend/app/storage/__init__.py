"""Persistent key/value storage for room state."""

from .service import DuckDBStore, KeyValueStore, MemoryStore, StorageError, create_store

__all__ = [
    "DuckDBStore",
    "KeyValueStore",
    "MemoryStore",
    "StorageError",
    "create_store",
]
