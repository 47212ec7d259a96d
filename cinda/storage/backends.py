"""
Storage backends - Key/value stores behind the persistence layer.

Backends deal in raw strings and raise PersistenceError on failure. The
domain stores above them turn those failures into ``False`` return values.

- MemoryBackend: in-process dict with an optional byte quota
- FileBackend: one JSON file per key, written atomically
- PostgresBackend: ``cinda_storage`` table through a psycopg2 connection pool
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import psycopg2
from psycopg2 import pool

from cinda.errors import PersistenceError, StorageQuotaExceeded
from cinda.utils import settings


logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Abstract key/value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a string, replacing any previous value in one write."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are not an error."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored keys."""

    def close(self) -> None:
        """Release resources held by the backend."""


class MemoryBackend(StorageBackend):
    """
    In-process store, the analogue of browser localStorage.

    Args:
        quota_bytes: Maximum total size of keys plus values (UTF-8).
            None means unlimited.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    @staticmethod
    def _size(key: str, value: str) -> int:
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def used_bytes(self) -> int:
        return sum(self._size(k, v) for k, v in self._data.items())

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PersistenceError(f"Can only store strings, got {type(value).__name__}")
        if self.quota_bytes is not None:
            current = self._data.get(key)
            used = self.used_bytes() - (self._size(key, current) if current is not None else 0)
            if used + self._size(key, value) > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"Writing '{key}' would exceed the {self.quota_bytes} byte quota"
                )
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class FileBackend(StorageBackend):
    """
    One ``<key>.json`` file per key under a directory.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so a failed write never leaves a partial file.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path, None] = None) -> None:
        self.directory = Path(directory) if directory else settings.STORAGE_DIR

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise PersistenceError(f"Invalid storage key '{key}'")
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.directory), prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Could not delete {path}: {e}") from e

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob(f"*{self.SUFFIX}"))


class PostgresBackend(StorageBackend):
    """
    PostgreSQL key/value storage.
    Why: share one runner's stored state across devices and processes.

    Rows are scoped by a namespace (one per runner or session) so several
    profiles can live in the same table.
    """

    TABLE = "cinda_storage"

    def __init__(self, connection_string: Optional[str] = None, namespace: str = "default"):
        """
        Initialize backend with database connection.

        Args:
            connection_string: PostgreSQL connection string.
                             Defaults to DATABASE_URL env var.
            namespace: Row scope for this store
        """
        self.connection_string = connection_string or settings.DATABASE_URL
        self.namespace = namespace
        self._pool: Optional[pool.SimpleConnectionPool] = None

    def _get_connection(self):
        """Get a connection from the pool."""
        if not self._pool:
            self._pool = pool.SimpleConnectionPool(
                1, 10,  # min 1, max 10 connections
                self.connection_string
            )
        return self._pool.getconn()

    def _release_connection(self, conn):
        """Return connection to pool."""
        if self._pool:
            self._pool.putconn(conn)

    def init_schema(self) -> None:
        """Create the cinda_storage table if it doesn't exist."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS cinda_storage (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                PRIMARY KEY (namespace, key)
            );

            CREATE INDEX IF NOT EXISTS idx_cinda_storage_updated
            ON cinda_storage(updated_at DESC);
        """)

    def _execute(self, sql: str, params: tuple = (), fetch: bool = False):
        try:
            conn = self._get_connection()
        except psycopg2.Error as e:
            raise PersistenceError(f"Could not connect to storage database: {e}") from e
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() if fetch else None
            conn.commit()
            return rows
        except psycopg2.Error as e:
            conn.rollback()
            raise PersistenceError(f"Storage query failed: {e}") from e
        finally:
            self._release_connection(conn)

    def get(self, key: str) -> Optional[str]:
        rows = self._execute(
            "SELECT value FROM cinda_storage WHERE namespace = %s AND key = %s",
            (self.namespace, key),
            fetch=True,
        )
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._execute("""
            INSERT INTO cinda_storage (namespace, key, value, updated_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (namespace, key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = EXCLUDED.updated_at
        """, (self.namespace, key, value, datetime.now(timezone.utc)))

    def delete(self, key: str) -> None:
        self._execute(
            "DELETE FROM cinda_storage WHERE namespace = %s AND key = %s",
            (self.namespace, key),
        )

    def keys(self) -> List[str]:
        rows = self._execute(
            "SELECT key FROM cinda_storage WHERE namespace = %s ORDER BY key",
            (self.namespace,),
            fetch=True,
        )
        return [row[0] for row in rows or []]

    def close(self) -> None:
        """Close all connections in pool."""
        if self._pool:
            self._pool.closeall()
            self._pool = None


def create_backend(kind: Optional[str] = None, **kwargs) -> StorageBackend:
    """
    Build the configured backend.

    Args:
        kind: "memory", "file" or "postgres" (defaults to CINDA_STORAGE_BACKEND)

    Raises:
        ValueError: Unknown backend kind
    """
    kind = (kind or settings.STORAGE_BACKEND).lower()
    if kind == "memory":
        return MemoryBackend(**kwargs)
    if kind == "file":
        return FileBackend(**kwargs)
    if kind == "postgres":
        backend = PostgresBackend(**kwargs)
        backend.init_schema()
        return backend
    raise ValueError(f"Unknown storage backend '{kind}'")
