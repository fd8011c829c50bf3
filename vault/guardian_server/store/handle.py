"""
Live connection to one SQLite store.

A StoreHandle owns exactly one sqlite3 connection and serializes every
statement and every transaction issued through it. Sharing one handle per
store across request threads is what gives each tenant a single writer;
unrelated tenants never contend on the same lock.

Invariants:
    - One connection per handle, opened with check_same_thread=False
    - Autocommit by default; writes use explicit BEGIN IMMEDIATE
    - sqlite3 errors leave this module as StorageError
    - A closed handle refuses further work
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import StorageError, StoreNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckpointResult:
    """Outcome of PRAGMA wal_checkpoint.

    Attributes:
        busy: 1 if the checkpoint could not complete because of readers/writers
        log_frames: Frames in the WAL file (-1 when not in WAL mode)
        checkpointed_frames: Frames moved into the main database file
    """

    busy: int
    log_frames: int
    checkpointed_frames: int


class StoreHandle:
    """Serialized access to one SQLite database file.

    Thread safety:
        All access goes through an internal lock, so a handle may be used
        concurrently from any number of threads. A transaction holds the
        lock for its full duration.

    Example:
        >>> handle = StoreHandle.open(Path("/var/lib/guardian/abc.db"), create=True)
        >>> with handle.transaction() as conn:
        ...     conn.execute("INSERT INTO vault_items (id, encrypted_blob) VALUES (?, ?)", ("a", "x"))
    """

    def __init__(self, path: Path, conn: sqlite3.Connection) -> None:
        self.path = path
        self._conn = conn
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(
        cls,
        path: Path,
        create: bool = False,
        wal_mode: bool = True,
        busy_timeout_ms: int = 10000,
        cache_size_pages: int = -16000,
    ) -> StoreHandle:
        """Open a handle on a database file.

        Args:
            path: Database file path
            create: Whether to create the file if it does not exist
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)

        Raises:
            StoreNotFoundError: If the file is missing and create=False
            StorageError: If SQLite refuses to open or configure the file
        """
        if not create and not path.exists():
            raise StoreNotFoundError(path.name)

        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(path),
                timeout=busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open store: {e}", location=path.name) from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {cache_size_pages}")
            if wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            conn.close()
            raise StorageError(f"Failed to configure store: {e}", location=path.name) from e

        logger.debug("Opened store handle", extra={"path": str(path)})
        return cls(path, conn)

    @property
    def location(self) -> str:
        return self.path.name

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Store handle is closed", location=self.location)

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a read statement and return all rows."""
        with self._lock:
            self._check_open()
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Query failed: {e}", location=self.location) from e

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single autocommitted write and return the affected row count."""
        with self._lock:
            self._check_open()
            try:
                return self._conn.execute(sql, params).rowcount
            except sqlite3.Error as e:
                raise StorageError(f"Statement failed: {e}", location=self.location) from e

    def executescript(self, script: str) -> None:
        """Run a multi-statement script (schema creation)."""
        with self._lock:
            self._check_open()
            try:
                self._conn.executescript(script)
            except sqlite3.Error as e:
                raise StorageError(f"Script failed: {e}", location=self.location) from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one BEGIN IMMEDIATE transaction.

        The block receives the raw connection. Any exception rolls the
        transaction back; sqlite3 errors are re-raised as StorageError,
        anything else propagates unchanged.

        Raises:
            StorageError: If begin, a statement, or commit fails
        """
        with self._lock:
            self._check_open()
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Begin failed: {e}", location=self.location) from e

            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except BaseException as e:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                if isinstance(e, sqlite3.Error):
                    raise StorageError(
                        f"Transaction failed: {e}", location=self.location
                    ) from e
                raise

    def checkpoint(self, mode: str = "TRUNCATE") -> CheckpointResult:
        """Merge the write-ahead log into the main file.

        TRUNCATE mode also truncates the -wal file to zero bytes.
        """
        with self._lock:
            self._check_open()
            try:
                row = self._conn.execute(f"PRAGMA wal_checkpoint({mode})").fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Checkpoint failed: {e}", location=self.location) from e
        return CheckpointResult(busy=row[0], log_frames=row[1], checkpointed_frames=row[2])

    def close(self) -> None:
        """Close the underlying connection. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
        logger.debug("Closed store handle", extra={"path": str(self.path)})

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<StoreHandle {self.path} {state}>"
