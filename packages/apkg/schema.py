"""Schema-adaptive queries over collections of differing format versions."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from packages.apkg.database import ApkgDatabase, quote_identifier
from packages.common.exceptions import DatabaseUnreadableError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)


@dataclass(frozen=True)
class SchemaCapabilities:
    """Columns known to be present, per table.

    Computed once per open database and handed to every query builder so
    column checks never re-introspect the schema.
    """

    tables: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def introspect(cls, db: ApkgDatabase) -> "SchemaCapabilities":
        """Read the column sets of every table in the database."""
        return cls(tables={table: frozenset(db.table_columns(table)) for table in db.table_names()})

    def has_table(self, table: str) -> bool:
        return table in self.tables

    def columns(self, table: str) -> frozenset[str]:
        """Present columns; empty for unknown tables."""
        return self.tables.get(table, frozenset())

    def has_column(self, table: str, column: str) -> bool:
        return column in self.columns(table)

    def available(self, table: str, columns: Iterable[str]) -> list[str]:
        """Subset of ``columns`` present in ``table``, in the requested order."""
        present = self.columns(table)
        return [column for column in columns if column in present]


def build_select(
    capabilities: SchemaCapabilities,
    table: str,
    columns: Sequence[str],
    *,
    order_by: Sequence[str] = (),
) -> tuple[str, list[str]] | None:
    """Build a SELECT projecting only columns that exist.

    Returns:
        The SQL and the projected columns, or None when no requested column exists.
    """
    projected = capabilities.available(table, columns)
    if not projected:
        return None

    sql = f"SELECT {', '.join(map(quote_identifier, projected))} FROM {quote_identifier(table)}"
    ordering = capabilities.available(table, order_by)
    if ordering:
        sql += f" ORDER BY {', '.join(map(quote_identifier, ordering))}"
    return sql, projected


class SchemaQuery:
    """Defensive query layer.

    Absent optional columns come back as None, and a failing query yields an
    empty result with a logged cause so one malformed table does not abort
    unrelated reads.
    """

    def __init__(self, db: ApkgDatabase, capabilities: SchemaCapabilities | None = None) -> None:
        """Initialize with an open database and its capabilities."""
        self.db = db
        self.capabilities = capabilities or SchemaCapabilities.introspect(db)

    def select(
        self,
        table: str,
        *,
        required: Sequence[str],
        optional: Sequence[str] = (),
        order_by: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        """Select rows, filling absent optional columns with None.

        Args:
            table: Table to read.
            required: Columns without which rows are meaningless.
            optional: Columns that may be missing in some format versions.
            order_by: Sort columns, skipped when absent.

        Returns:
            Rows with every required and optional column as keys.
        """
        if not self.capabilities.has_table(table):
            logger.warning("query_table_missing", table=table)
            return []

        missing = [c for c in required if not self.capabilities.has_column(table, c)]
        if missing:
            logger.warning("query_required_columns_missing", table=table, missing=missing)
            return []

        wanted = [*required, *optional]
        query = build_select(self.capabilities, table, wanted, order_by=order_by)
        if query is None:
            return []
        sql, _ = query

        try:
            rows = self.db.execute(sql)
        except DatabaseUnreadableError as e:
            logger.warning("query_failed", table=table, error=str(e))
            return []

        return [{column: row.get(column) for column in wanted} for row in rows]

    def first_row(self, table: str, columns: Sequence[str]) -> dict[str, Any] | None:
        """First row of a table restricted to present columns, or None."""
        rows = self.select(table, required=(), optional=columns)
        return rows[0] if rows else None

    def count(self, table: str) -> int:
        """Row count of a table; 0 when the table is missing or unreadable."""
        if not self.capabilities.has_table(table):
            return 0
        try:
            rows = self.db.execute(f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}")
        except DatabaseUnreadableError as e:
            logger.warning("query_failed", table=table, error=str(e))
            return 0
        return int(rows[0]["count"]) if rows else 0

    def group_count(self, table: str, column: str) -> list[tuple[Any, int]]:
        """Row counts grouped by a column, ordered by the column value.

        Returns an empty list when the column does not exist in this format
        version or the query fails.
        """
        if not self.capabilities.has_column(table, column):
            return []
        quoted = quote_identifier(column)
        try:
            rows = self.db.execute(
                f"SELECT {quoted} AS value, COUNT(*) AS count "
                f"FROM {quote_identifier(table)} GROUP BY {quoted} ORDER BY {quoted}"
            )
        except DatabaseUnreadableError as e:
            logger.warning("query_failed", table=table, column=column, error=str(e))
            return []
        return [(row["value"], int(row["count"])) for row in rows]
