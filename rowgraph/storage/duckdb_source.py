"""
DuckDB row source.

Reference relational source for projection runs. Reads whole tables (with
optional per-table filters and row limits) and runs literal queries, handing
rows back as column-named dicts with native Python values.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from ..utils.constants import TABLE_TAG
from ..utils.exceptions import ProjectionCancelledError, SourceUnavailableError
from ..utils.types import Row
from .source import RowSource

logger = logging.getLogger(__name__)


def quote_table_name(name: str) -> str:
    """Double-quote each dotted part of a table name."""
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


class DuckDBRowSource(RowSource):
    """
    DuckDB-backed row source.

    Supports:
    - File databases or ``:memory:``
    - An existing connection (left open on :meth:`close`)
    - Explicit table lists or discovery of every base table in ``main``
    - Per-table WHERE conditions and row limits
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        tables: Optional[Sequence[str]] = None,
        where_conditions: Optional[Dict[str, str]] = None,
        row_limit_per_table: int = 0,
        connection: Optional[duckdb.DuckDBPyConnection] = None,
        read_only: bool = False,
    ):
        """
        Initialize DuckDB row source.

        Args:
            db_path: Path to DuckDB database file, or ":memory:" for in-memory.
            tables: Tables to dump in ``fetch_all``; ``None`` means all base tables
            where_conditions: table name -> SQL condition appended as WHERE
            row_limit_per_table: LIMIT per table, 0 for no limit
            connection: Existing connection to use instead of opening ``db_path``
            read_only: Open the database file read-only

        Raises:
            SourceUnavailableError: If the database cannot be opened
        """
        self.db_path = db_path
        self.tables = list(tables) if tables else None
        self.where_conditions = dict(where_conditions or {})
        self.row_limit_per_table = row_limit_per_table
        self._owns_connection = connection is None

        if connection is not None:
            self.conn = connection
        else:
            try:
                self.conn = duckdb.connect(db_path, read_only=read_only)
                logger.info(f"Opened DuckDB database {db_path}")
            except duckdb.Error as e:
                raise SourceUnavailableError(f"Cannot open DuckDB database {db_path}: {e}") from e

    def close(self) -> None:
        """Close the connection if this source opened it."""
        if self._owns_connection and self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.info("DuckDB connection closed")

    def __enter__(self) -> "DuckDBRowSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run(self, query: str, parameters: Optional[List[Any]] = None) -> List[Row]:
        if self.conn is None:
            raise SourceUnavailableError("DuckDB connection is closed")
        try:
            cursor = self.conn.execute(query, parameters or [])
            columns = [column[0] for column in cursor.description or []]
            return [dict(zip(columns, values)) for values in cursor.fetchall()]
        except duckdb.Error as e:
            logger.error(f"DuckDB query failed: {e}")
            raise SourceUnavailableError(f"DuckDB query failed: {e}") from e

    def list_tables(self) -> List[str]:
        """Return the configured tables, or every base table of the ``main`` schema."""
        if self.tables is not None:
            return list(self.tables)
        rows = self._run(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'main' AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """
        )
        return [row["table_name"] for row in rows]

    def table_query(self, table: str) -> str:
        """Build the dump query for one table, applying filters and limit."""
        query = f"SELECT * FROM {quote_table_name(table)}"
        condition = self.where_conditions.get(table)
        if condition:
            query += f" WHERE {condition}"
        if self.row_limit_per_table > 0:
            query += f" LIMIT {int(self.row_limit_per_table)}"
        return query

    def fetch_all(self, cancellation_event: Optional[threading.Event] = None) -> List[Row]:
        rows: List[Row] = []
        tables = self.list_tables()
        for table in tables:
            if cancellation_event is not None and cancellation_event.is_set():
                raise ProjectionCancelledError(f"Cancelled while reading table {table}")
            table_rows = self._run(self.table_query(table))
            for row in table_rows:
                row[TABLE_TAG] = table
            rows.extend(table_rows)
            logger.debug(f"Read {len(table_rows)} rows from {table}")

        logger.info(f"Loaded {len(rows)} rows from {len(tables)} DuckDB tables")
        return rows

    def execute_query(
        self, query: str, cancellation_event: Optional[threading.Event] = None
    ) -> List[Row]:
        if cancellation_event is not None and cancellation_event.is_set():
            raise ProjectionCancelledError("Cancelled before executing query")
        logger.info(f"Executing SQL query: {query}")
        return self._run(query)
