"""Embedded SQLite database adapter."""

import sqlite3
from collections.abc import Sequence
from typing import Any

from packages.common.exceptions import (
    DatabaseClosedError,
    DatabaseUnreadableError,
    NotAnAnkiDatabaseError,
)
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

REQUIRED_TABLES = ("cards", "notes", "col")

# File format read/write version bytes (header offsets 18-19)
WAL_VERSION = b"\x02\x02"
LEGACY_VERSION = b"\x01\x01"


def quote_identifier(name: str) -> str:
    """Quote a table or column name for interpolation into SQL."""
    return '"' + name.replace('"', '""') + '"'


def decode_text(value: bytes) -> str:
    """Decode a TEXT cell; invalid UTF-8 becomes U+FFFD instead of failing the query."""
    return value.decode("utf-8", errors="replace")


def without_wal_flag(buffer: bytes) -> bytes:
    """Mark a WAL-mode database as rollback-journal; in-memory databases cannot use WAL."""
    if buffer[18:20] == WAL_VERSION:
        return buffer[:18] + LEGACY_VERSION + buffer[20:]
    return buffer


class ApkgDatabase:
    """Query session over an in-memory copy of a collection database.

    The buffer is deserialized into a ``:memory:`` connection, so nothing
    touches the filesystem. Use as a context manager; the handle is released
    on every exit path and no query may run afterwards.
    """

    def __init__(self, buffer: bytes, *, require_anki_tables: bool = True) -> None:
        """Initialize with the extracted database bytes."""
        self._buffer: bytes | None = buffer
        self._require_anki_tables = require_anki_tables
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "ApkgDatabase":
        """Open the connection and verify it holds an Anki collection."""
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Close the connection."""
        self.close()

    def open(self) -> None:
        """Deserialize the buffer and check the required tables.

        Raises:
            DatabaseUnreadableError: If SQLite rejects the buffer.
            NotAnAnkiDatabaseError: If ``cards``, ``notes`` or ``col`` is missing.
        """
        if self._buffer is None:
            raise DatabaseClosedError("Database buffer already released")

        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        conn.text_factory = decode_text
        try:
            conn.deserialize(without_wal_flag(self._buffer))
            # Force SQLite to read the schema page; truncation surfaces here.
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            conn.close()
            size = len(self._buffer)
            self._buffer = None
            raise DatabaseUnreadableError(
                f"Database could not be read: {e}",
                context={"size": size},
            ) from e

        self._conn = conn

        if self._require_anki_tables:
            tables = set(self.table_names())
            missing = [table for table in REQUIRED_TABLES if table not in tables]
            if missing:
                self.close()
                raise NotAnAnkiDatabaseError(
                    f"Not a valid Anki database: missing tables {', '.join(missing)}",
                    missing_tables=missing,
                )

        logger.debug("database_opened")

    def close(self) -> None:
        """Release the connection and the buffer."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("database_closed")
        self._buffer = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have an open connection."""
        if self._conn is None:
            raise DatabaseClosedError("Database not opened. Use 'with ApkgDatabase(...) as db:'")
        return self._conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as ordered column→value mappings.

        Raises:
            DatabaseUnreadableError: If the engine fails while running the query.
        """
        conn = self._ensure_connected()
        try:
            cursor = conn.execute(sql, tuple(params))
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseUnreadableError(
                f"Query failed: {e}",
                context={"sql": " ".join(sql.split())},
            ) from e

    def table_names(self) -> list[str]:
        """Names of all tables in the database."""
        rows = self.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        return [row["name"] for row in rows]

    def has_table(self, table: str) -> bool:
        rows = self.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table,),
        )
        return bool(rows)

    def table_columns(self, table: str) -> list[str]:
        """Column names of a table in declaration order (``PRAGMA table_info``)."""
        rows = self.execute(f"PRAGMA table_info({quote_identifier(table)})")
        return [row["name"] for row in rows]
