"""Unit tests for the DuckDB row source."""

import threading
import unittest
from datetime import date

import duckdb

from rowgraph.storage.duckdb_source import DuckDBRowSource, quote_table_name
from rowgraph.storage.source import InMemoryRowSource
from rowgraph.utils.exceptions import ProjectionCancelledError, SourceUnavailableError


class TestDuckDBRowSource(unittest.TestCase):
    """Test reading rows from an in-memory DuckDB database."""

    def setUp(self):
        self.conn = duckdb.connect(":memory:")
        self.conn.execute("CREATE TABLE users (id INTEGER, name VARCHAR, email VARCHAR)")
        self.conn.execute(
            "INSERT INTO users VALUES (1, 'Ada', 'a@x'), (2, 'Bob', 'b@x'), (3, 'Cy', 'c@x')"
        )
        self.conn.execute("CREATE TABLE departments (id INTEGER, name VARCHAR, founded DATE)")
        self.conn.execute("INSERT INTO departments VALUES (10, 'R&D', DATE '2001-02-03')")
        self.conn.execute("CREATE VIEW user_names AS SELECT name FROM users")

    def tearDown(self):
        self.conn.close()

    def test_fetch_all_tags_rows_with_table(self):
        source = DuckDBRowSource(connection=self.conn)

        rows = source.fetch_all()

        self.assertEqual(len(rows), 4)
        self.assertEqual(
            rows[0], {"id": 10, "name": "R&D", "founded": date(2001, 2, 3), "_table": "departments"}
        )
        self.assertEqual(
            [row["_table"] for row in rows], ["departments", "users", "users", "users"]
        )

    def test_views_are_not_discovered(self):
        source = DuckDBRowSource(connection=self.conn)

        self.assertEqual(source.list_tables(), ["departments", "users"])

    def test_configured_tables_with_filter_and_limit(self):
        source = DuckDBRowSource(
            connection=self.conn,
            tables=["users"],
            where_conditions={"users": "id > 1"},
            row_limit_per_table=1,
        )

        rows = source.fetch_all()

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["_table"], "users")
        self.assertGreater(rows[0]["id"], 1)

    def test_table_query(self):
        source = DuckDBRowSource(
            connection=self.conn, where_conditions={"users": "id = 1"}, row_limit_per_table=5
        )

        self.assertEqual(source.table_query("users"), 'SELECT * FROM "users" WHERE id = 1 LIMIT 5')

    def test_execute_query_returns_untagged_rows(self):
        source = DuckDBRowSource(connection=self.conn)

        rows = source.execute_query("SELECT id, name FROM users WHERE id = 2")

        self.assertEqual(rows, [{"id": 2, "name": "Bob"}])

    def test_missing_configured_table(self):
        source = DuckDBRowSource(connection=self.conn, tables=["nope"])

        with self.assertRaises(SourceUnavailableError):
            source.fetch_all()

    def test_bad_query(self):
        source = DuckDBRowSource(connection=self.conn)

        with self.assertRaises(SourceUnavailableError):
            source.execute_query("SELECT FROM WHERE")

    def test_cancellation(self):
        event = threading.Event()
        event.set()
        source = DuckDBRowSource(connection=self.conn)

        with self.assertRaises(ProjectionCancelledError):
            source.fetch_all(cancellation_event=event)

    def test_close_leaves_borrowed_connection_open(self):
        source = DuckDBRowSource(connection=self.conn)
        source.close()

        self.assertEqual(self.conn.execute("SELECT count(*) FROM users").fetchone()[0], 3)

    def test_owned_connection(self):
        with DuckDBRowSource(":memory:") as source:
            source.conn.execute("CREATE TABLE t (x INTEGER)")
            source.conn.execute("INSERT INTO t VALUES (42)")
            self.assertEqual(source.fetch_all(), [{"x": 42, "_table": "t"}])

        with self.assertRaises(SourceUnavailableError):
            source.fetch_all()


def test_quote_table_name() -> None:
    assert quote_table_name("users") == '"users"'
    assert quote_table_name("main.we\"ird") == '"main"."we""ird"'


def test_in_memory_source() -> None:
    source = InMemoryRowSource(
        tables={"users": [{"id": 1}]}, queries={"SELECT 1": [{"one": 1}]}
    )

    assert source.fetch_all() == [{"id": 1, "_table": "users"}]
    assert source.execute_query("SELECT 1") == [{"one": 1}]
    assert source.executed == ["SELECT 1"]
