"""
Storage module for relational row sources.

Provides the row source interface, an in-memory source, and the DuckDB
reference source.
"""

from .duckdb_source import DuckDBRowSource
from .source import InMemoryRowSource, RowSource

__all__ = [
    "DuckDBRowSource",
    "InMemoryRowSource",
    "RowSource",
]
