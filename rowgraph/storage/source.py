"""Relational source interface and an in-memory implementation."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from ..utils.constants import TABLE_TAG
from ..utils.exceptions import ProjectionCancelledError, SourceUnavailableError
from ..utils.types import Row

logger = logging.getLogger(__name__)


class RowSource(ABC):
    """Relational source the engine pulls rows from."""

    @abstractmethod
    def fetch_all(self, cancellation_event: Optional[threading.Event] = None) -> List[Row]:
        """Return every row of every configured table, tagged with ``_table``."""
        raise NotImplementedError

    @abstractmethod
    def execute_query(
        self, query: str, cancellation_event: Optional[threading.Event] = None
    ) -> List[Row]:
        """Run ``query`` verbatim and return its rows (no ``_table`` tag)."""
        raise NotImplementedError

    def close(self) -> None:
        """Release held resources."""


class InMemoryRowSource(RowSource):
    """
    Row source over Python data.

    Args:
        tables: table name -> rows
        queries: literal query -> result rows
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, List[Dict[str, Any]]]] = None,
        queries: Optional[Mapping[str, List[Dict[str, Any]]]] = None,
    ):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.queries = {query: list(rows) for query, rows in (queries or {}).items()}
        self.executed: List[str] = []

    def fetch_all(self, cancellation_event: Optional[threading.Event] = None) -> List[Row]:
        rows = []
        for table, table_rows in self.tables.items():
            if cancellation_event is not None and cancellation_event.is_set():
                raise ProjectionCancelledError(f"Cancelled while reading table {table}")
            for row in table_rows:
                tagged = dict(row)
                tagged[TABLE_TAG] = table
                rows.append(tagged)
        logger.info(f"Loaded {len(rows)} rows from {len(self.tables)} in-memory tables")
        return rows

    def execute_query(
        self, query: str, cancellation_event: Optional[threading.Event] = None
    ) -> List[Row]:
        self.executed.append(query)
        if query not in self.queries:
            raise SourceUnavailableError(f"No result registered for query: {query}")
        return [dict(row) for row in self.queries[query]]
