"""
SQLite storage for FilePerm.

This module persists the one explicit level each resource may carry,
together with a minimal resource registry that gives every resource a
stable id and lets writers check that it exists.

Tables:
    - resources: Stable id for each (namespace, key) pair
    - resource_levels: One row per classified resource, unique on resource_id

Design Principles:
    - Upsert, never read-modify-write: last writer wins and the unique key
      on resource_id is the only coordination between concurrent writers
    - Stored levels are returned as written, even if the level has since
      been removed from configuration (see fileperm.reconcile)
    - Post-commit callbacks let work that needs a durable resource run only
      after the creating transaction has committed

Threading:
    Each thread gets its own connection, transaction depth and callback
    list. A transaction() opened by one thread never absorbs, commits or
    rolls back writes made by another.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from fileperm.errors import StorageConnectionError, StorageReadError, StorageWriteError
from fileperm.schema import Level, Resource

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# Seconds a writer waits for another thread's write lock
BUSY_TIMEOUT = 30.0

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Resources: stable identity for each (namespace, key)
CREATE TABLE IF NOT EXISTS resources (
    resource_id INTEGER PRIMARY KEY AUTOINCREMENT,
    namespace INTEGER NOT NULL,
    key TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (namespace, key)
);

-- Resource levels: at most one explicit level per resource
CREATE TABLE IF NOT EXISTS resource_levels (
    resource_id INTEGER PRIMARY KEY,
    level TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (resource_id) REFERENCES resources(resource_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_resource_levels_level ON resource_levels(level);
"""

UPSERT_LEVEL_SQL = """
INSERT INTO resource_levels (resource_id, level, updated_at)
VALUES (?, ?, ?)
ON CONFLICT (resource_id) DO UPDATE SET
    level = excluded.level,
    updated_at = excluded.updated_at
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class FilePermDB:
    """
    SQLite database for FilePerm storage.

    Safe to share between threads: connections and transaction state are
    kept per thread.

    Usage:
        db = FilePermDB("fileperm.db")
        resource_id = db.create_resource(6, "Report.pdf")
        db.upsert_level(resource_id, "internal")
        db.close()

    Or use as context manager:
        with FilePermDB("fileperm.db") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False
        self._init_schema()

    @property
    def _conn(self) -> sqlite3.Connection:
        """The calling thread's connection, opened on first use."""
        if self._closed:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message="Database is closed",
            )
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
        return conn

    def _connect(self) -> sqlite3.Connection:
        """Open a connection for the calling thread."""
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=BUSY_TIMEOUT,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

        with self._connections_lock:
            self._connections.append(conn)
        logger.debug("Opened connection for thread %s", threading.current_thread().name)
        return conn

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Transactions
    # =========================================================================

    @property
    def _depth(self) -> int:
        return getattr(self._local, "depth", 0)

    @_depth.setter
    def _depth(self, value: int) -> None:
        self._local.depth = value

    @property
    def _commit_callbacks(self) -> list[Callable[[], None]]:
        callbacks = getattr(self._local, "callbacks", None)
        if callbacks is None:
            callbacks = self._local.callbacks = []
        return callbacks

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Group the calling thread's writes into one transaction.

        Commits on success and rolls back on any exception. Callbacks
        registered with on_commit() run after the outermost commit; they
        are discarded on rollback or on a failed commit.

        Raises:
            StorageWriteError: If the commit or rollback itself fails
        """
        self._depth += 1
        try:
            yield
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self._commit_callbacks.clear()
                self._rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            try:
                self._conn.commit()
            except sqlite3.Error as e:
                self._commit_callbacks.clear()
                self._rollback()
                raise StorageWriteError(
                    operation="commit",
                    underlying_error=str(e),
                ) from e
            self._run_commit_callbacks()

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="rollback",
                underlying_error=str(e),
            ) from e

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread has a transaction() block open."""
        return self._depth > 0

    def on_commit(self, callback: Callable[[], None]) -> None:
        """
        Run a callback once the calling thread's pending writes are durable.

        Inside transaction() the callback waits for the outermost commit.
        Outside, every write is already committed, so it runs immediately.
        """
        if self.in_transaction:
            self._commit_callbacks.append(callback)
        else:
            callback()

    def _run_commit_callbacks(self) -> None:
        callbacks = list(self._commit_callbacks)
        self._commit_callbacks.clear()
        for callback in callbacks:
            callback()

    def _commit(self) -> None:
        """Commit unless an enclosing transaction() will."""
        if not self.in_transaction:
            self._conn.commit()

    def close(self) -> None:
        """Close every connection opened by this database."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
            self._closed = True
        for conn in connections:
            conn.close()

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    def __enter__(self) -> "FilePermDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Resource Operations
    # =========================================================================

    def create_resource(self, namespace: int, key: str) -> int:
        """
        Register a resource.

        Args:
            namespace: Namespace id
            key: Resource key, unique within the namespace

        Returns:
            The new resource_id

        Raises:
            StorageWriteError: If the resource already exists
        """
        try:
            cursor = self._conn.execute(
                "INSERT INTO resources (namespace, key, created_at) VALUES (?, ?, ?)",
                (namespace, key, now_iso()),
            )
            self._commit()
            return cursor.lastrowid
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="create_resource",
                underlying_error=str(e),
            ) from e

    def get_resource(self, resource_id: int) -> Resource | None:
        """Get a resource by id, or None if it doesn't exist."""
        try:
            cursor = self._conn.execute(
                "SELECT * FROM resources WHERE resource_id = ?",
                (resource_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Resource(
                resource_id=row["resource_id"],
                namespace=row["namespace"],
                key=row["key"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_resource",
                underlying_error=str(e),
            ) from e

    def find_resource(self, namespace: int, key: str) -> int | None:
        """Look up a resource id by (namespace, key)."""
        try:
            cursor = self._conn.execute(
                "SELECT resource_id FROM resources WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            row = cursor.fetchone()
            return None if row is None else row["resource_id"]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="find_resource",
                underlying_error=str(e),
            ) from e

    def resource_exists(self, resource_id: int) -> bool:
        """Whether a resource with this id exists."""
        try:
            cursor = self._conn.execute(
                "SELECT 1 FROM resources WHERE resource_id = ?",
                (resource_id,),
            )
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="resource_exists",
                underlying_error=str(e),
            ) from e

    def delete_resource(self, resource_id: int) -> None:
        """Delete a resource and its level row."""
        try:
            self._conn.execute(
                "DELETE FROM resources WHERE resource_id = ?",
                (resource_id,),
            )
            self._commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="delete_resource",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Level Operations
    # =========================================================================

    def fetch_level(self, resource_id: int) -> Level | None:
        """Get the stored level for a resource, or None if unset."""
        try:
            cursor = self._conn.execute(
                "SELECT level FROM resource_levels WHERE resource_id = ?",
                (resource_id,),
            )
            row = cursor.fetchone()
            return None if row is None else row["level"]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="fetch_level",
                underlying_error=str(e),
            ) from e

    def fetch_levels(self, resource_ids: Iterable[int]) -> dict[int, Level]:
        """Get stored levels for several resources. Unset ones are omitted."""
        ids = list(resource_ids)
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        try:
            cursor = self._conn.execute(
                f"SELECT resource_id, level FROM resource_levels "
                f"WHERE resource_id IN ({placeholders})",
                ids,
            )
            return {row["resource_id"]: row["level"] for row in cursor}
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="fetch_levels",
                underlying_error=str(e),
            ) from e

    def upsert_level(self, resource_id: int, level: Level) -> None:
        """Insert or replace the level row for a resource."""
        try:
            self._conn.execute(UPSERT_LEVEL_SQL, (resource_id, level, now_iso()))
            self._commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="upsert_level",
                underlying_error=str(e),
            ) from e

    def delete_level(self, resource_id: int) -> None:
        """Delete the level row for a resource, if any."""
        try:
            self._conn.execute(
                "DELETE FROM resource_levels WHERE resource_id = ?",
                (resource_id,),
            )
            self._commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="delete_level",
                underlying_error=str(e),
            ) from e

    def list_levels(self) -> list[dict[str, Any]]:
        """
        List every stored level with its resource.

        Returns:
            Dicts with resource_id, namespace, key, level; ordered by resource_id
        """
        try:
            cursor = self._conn.execute(
                """
                SELECT rl.resource_id, r.namespace, r.key, rl.level
                FROM resource_levels rl
                JOIN resources r ON r.resource_id = rl.resource_id
                ORDER BY rl.resource_id
                """
            )
            return [dict(row) for row in cursor]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_levels",
                underlying_error=str(e),
            ) from e
