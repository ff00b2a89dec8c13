"""Unit tests for the Neo4j graph sink."""

import unittest
from unittest.mock import Mock, patch

from neo4j.exceptions import ServiceUnavailable, TransientError

from rowgraph.knowledge_graph.graph_aggregate import GraphAggregate
from rowgraph.knowledge_graph.neo4j_client import Neo4jGraphSink, quote_identifier
from rowgraph.services.transform_service import TransformService
from rowgraph.storage.source import InMemoryRowSource
from rowgraph.transform.rule_repository import InMemoryRuleRepository
from rowgraph.transform.rules import Direction, EndpointMapping, RelationshipRule, RuleSource
from rowgraph.utils.exceptions import SinkUnavailableError


def _records(*rows):
    return [Mock(data=lambda row=row: row) for row in rows]


class TestNeo4jGraphSink(unittest.TestCase):
    """Test Neo4j reads and batched writes."""

    def setUp(self):
        """Set up test fixtures."""
        # Mock Neo4j driver
        self.mock_driver = Mock()
        self.mock_session = Mock()
        self.mock_driver.session.return_value.__enter__ = Mock(
            return_value=self.mock_session
        )
        self.mock_driver.session.return_value.__exit__ = Mock(return_value=False)

        # Run write transactions against a mocked tx so queries can be inspected
        self.mock_tx = Mock()
        self.mock_session.execute_write.side_effect = lambda work: work(self.mock_tx)

        with patch(
            "rowgraph.knowledge_graph.neo4j_client.GraphDatabase.driver",
            return_value=self.mock_driver,
        ):
            self.sink = Neo4jGraphSink(
                uri="bolt://localhost:7687", username="neo4j", password="password", batch_size=2
            )

    def _aggregate(self):
        aggregate = GraphAggregate()
        aggregate.add_node("Person", {"id": "1", "name": "Ada"})
        aggregate.add_node("Person", {"id": "2", "name": "Bob"})
        aggregate.add_node("Department", {"id": "10", "name": "R&D"})
        aggregate.add_relationship(
            "WORKS_IN", Direction.OUTGOING, "Person", "1", "id", "Department", "10", "id", {"role": "eng"}
        )
        aggregate.add_relationship(
            "WORKS_IN", Direction.INCOMING, "Person", "2", "id", "Department", "10", "id"
        )
        return aggregate

    def test_connect_verifies_connectivity(self):
        self.mock_driver.verify_connectivity.assert_called_once()

    def test_connect_failure(self):
        with patch(
            "rowgraph.knowledge_graph.neo4j_client.GraphDatabase.driver",
            side_effect=ServiceUnavailable("down"),
        ):
            with self.assertRaises(SinkUnavailableError):
                Neo4jGraphSink(uri="bolt://nowhere:7687", username="neo4j", password="x")

    def test_fetch_nodes_skips_nodes_without_id(self):
        self.mock_session.run.return_value = _records(
            {"props": {"id": "t1", "name": "users"}, "element_id": "4:abc:0"},
            {"props": {"name": "orders", "type": "View"}, "element_id": "4:abc:1"},
            {"props": {"id": "t2", "name": "orders_v", "type": "View"}, "element_id": "4:abc:2"},
        )

        with self.assertLogs("rowgraph.knowledge_graph.neo4j_client", level="WARNING") as logs:
            nodes = self.sink.fetch_nodes("Table")

        self.assertEqual(
            nodes,
            [
                {"id": "t1", "name": "users", "type": "Table"},
                {"id": "t2", "name": "orders_v", "type": "View"},
            ],
        )
        self.assertIn("Skipped 1 Table nodes without an id property", logs.output[0])
        query = self.mock_session.run.call_args[0][0]
        self.assertIn("MATCH (n:`Table`)", query)

    def test_projection_merges_seed_nodes_back_by_id(self):
        self.mock_session.run.side_effect = [
            _records(
                {"props": {"id": "c1", "name": "id", "table_id": "t1"}, "element_id": "4:abc:0"},
                {"props": {"name": "email", "table_id": "t1"}, "element_id": "4:abc:1"},
            ),
            _records({"props": {"id": "t1", "name": "users"}, "element_id": "4:abc:2"}),
        ]
        self.mock_tx.run.side_effect = [
            _records({"written": 1}),
            _records({"written": 1}),
            _records({"index": 0}),
        ]
        rule = RelationshipRule(
            name="column_of_table",
            target_type="BELONGS_TO",
            source=RuleSource.graph(),
            source_node=EndpointMapping("Column", "id"),
            target_node=EndpointMapping("Table", "table_id"),
        )
        service = TransformService(
            InMemoryRowSource(), self.sink, InMemoryRuleRepository([rule])
        )

        with self.assertLogs("rowgraph.knowledge_graph.neo4j_client", level="WARNING"):
            report = service.transform_and_store()

        self.assertEqual(report.seed_nodes, 2)
        self.assertEqual(report.store_result.nodes_written, 2)
        self.assertEqual(report.store_result.relationships_written, 1)

        calls = self.mock_tx.run.call_args_list
        self.assertIn("MERGE (n:`Column` {id: entity.id})", calls[0][0][0])
        self.assertEqual(
            calls[0][0][1]["entities"], [{"id": "c1", "name": "id", "table_id": "t1"}]
        )
        self.assertEqual(calls[1][0][1]["entities"], [{"id": "t1", "name": "users"}])

    def test_store_graph_merges_nodes_and_creates_typed_relationships(self):
        self.mock_tx.run.side_effect = [
            _records({"written": 2}),
            _records({"written": 1}),
            _records({"index": 0}, {"index": 1}),
        ]

        result = self.sink.store_graph(self._aggregate())

        self.assertEqual(result.nodes_written, 3)
        self.assertEqual(result.relationships_written, 2)
        self.assertEqual(result.relationships_skipped, 0)

        calls = self.mock_tx.run.call_args_list
        self.assertIn("MERGE (n:`Person` {id: entity.id})", calls[0][0][0])
        self.assertEqual(
            calls[0][0][1]["entities"],
            [{"id": "1", "name": "Ada"}, {"id": "2", "name": "Bob"}],
        )
        self.assertIn("MERGE (n:`Department` {id: entity.id})", calls[1][0][0])

        rel_query = calls[2][0][0]
        self.assertIn("CREATE (a)-[r:`WORKS_IN`]->(b)", rel_query)
        self.assertIn("MATCH (a:`Person` {id: rel.source_id})", rel_query)
        self.assertEqual(
            calls[2][0][1]["relationships"][0],
            {"index": 0, "source_id": "1", "target_id": "10", "properties": {"role": "eng"}},
        )

    def test_unmatched_relationships_are_skipped(self):
        self.mock_tx.run.side_effect = [
            _records({"written": 2}),
            _records({"written": 1}),
            _records({"index": 1}),
        ]

        with self.assertLogs("rowgraph.knowledge_graph.neo4j_client", level="WARNING"):
            result = self.sink.store_graph(self._aggregate())

        self.assertEqual(result.relationships_written, 1)
        self.assertEqual(result.relationships_skipped, 1)

    def test_nodes_are_written_in_batches(self):
        aggregate = GraphAggregate()
        for i in range(5):
            aggregate.add_node("Person", {"id": str(i)})
        self.mock_tx.run.side_effect = [
            _records({"written": 2}),
            _records({"written": 2}),
            _records({"written": 1}),
        ]

        result = self.sink.store_graph(aggregate)

        self.assertEqual(result.nodes_written, 5)
        self.assertEqual(self.mock_session.execute_write.call_count, 3)

    def test_retry_on_transient_error(self):
        aggregate = GraphAggregate()
        aggregate.add_node("Person", {"id": "1"})
        self.mock_session.execute_write.side_effect = [
            TransientError("Connection timeout"),
            _records({"written": 1}),
        ]

        with patch("time.sleep"):  # Skip actual sleep delays
            result = self.sink.store_graph(aggregate)

        self.assertEqual(result.nodes_written, 1)
        self.assertEqual(self.mock_session.execute_write.call_count, 2)

    def test_exhausted_retries_raise_sink_unavailable(self):
        aggregate = GraphAggregate()
        aggregate.add_node("Person", {"id": "1"})
        self.mock_session.execute_write.side_effect = TransientError("Deadlock detected")

        with patch("time.sleep"):
            with self.assertRaises(SinkUnavailableError):
                self.sink.store_graph(aggregate)

        self.assertEqual(self.mock_session.execute_write.call_count, 5)

    def test_close(self):
        self.sink.close()

        self.mock_driver.close.assert_called_once()


def test_quote_identifier_escapes_backticks() -> None:
    assert quote_identifier("WORKS_IN") == "`WORKS_IN`"
    assert quote_identifier("we`ird") == "`we``ird`"


if __name__ == "__main__":
    unittest.main()
