"""Key/value persistence for room state.

This module provides durable whole-value storage for the handful of keys a
chat room keeps across restarts (chat history, sticky colors, wallet log,
visitor counter). Values are JSON-compatible and always read and written
as a whole; callers own the read-modify-write cycle.

Implementations:
    - MemoryStore: dict-backed, for tests and throwaway deployments.
    - DuckDBStore: a single ``kv_state`` table in an embedded DuckDB file.

Database Schema:
    kv_state table:
        - state_key: Logical key name (primary key)
        - state_value: JSON-encoded value

Thread Safety:
    The DuckDB connection is NOT thread-safe. The room serializes all access
    on a single event loop, so one connection per process is sufficient.

Usage:
    store = create_store(get_config().storage)
    store.put("visitorCount", 1)
    count = store.get("visitorCount", 0)
"""
import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import duckdb

from app.config import StorageSettings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a store read or write fails."""


class KeyValueStore(ABC):
    """Abstract whole-value key/value store."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for *key*, or *default* when absent."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Replace the stored value for *key*."""

    def close(self) -> None:
        """Release any underlying resources."""


class MemoryStore(KeyValueStore):
    """In-process store. Values are deep-copied so callers never alias them."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class DuckDBStore(KeyValueStore):
    """DuckDB-backed store keeping each key as one JSON document.

    Attributes:
        _db_path: Path to the DuckDB database file (or ":memory:").
    """

    _db_path: str = "nekochat_state.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open the database and create the schema if needed.

        Args:
            db_path: Path to DuckDB file. Defaults to "nekochat_state.duckdb".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self._db_path)
            except (duckdb.Error, OSError) as e:
                raise StorageError(f"Could not open {self._db_path}: {e}") from e
        return self._connection

    def _initialize_db(self) -> None:
        """Create the kv_state table. Safe to call multiple times."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_state (
                state_key VARCHAR PRIMARY KEY,
                state_value VARCHAR NOT NULL
            )
        """)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            row = self._get_connection().execute(
                "SELECT state_value FROM kv_state WHERE state_key = ?", [key]
            ).fetchone()
        except duckdb.Error as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value for {key!r}: {e}") from e

    def put(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key!r} is not JSON-serializable: {e}") from e

        try:
            self._get_connection().execute(
                """
                INSERT INTO kv_state (state_key, state_value) VALUES (?, ?)
                ON CONFLICT (state_key) DO UPDATE SET state_value = excluded.state_value
                """,
                [key, encoded],
            )
        except duckdb.Error as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


def create_store(settings: StorageSettings) -> KeyValueStore:
    """Build the store selected in configuration."""
    if settings.backend == "memory":
        logger.info("Using in-memory state store (nothing survives a restart)")
        return MemoryStore()
    logger.info("Using DuckDB state store at %s", settings.path)
    return DuckDBStore(db_path=settings.path)
