"""
Neo4j graph sink.

This module persists a projected graph aggregate into Neo4j and reads back
already-materialized nodes that relationship rules can run over.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import AuthError, Neo4jError, ServiceUnavailable, TransientError

from ..utils.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    NEO4J_DEFAULT_DATABASE,
    RETRY_DELAYS,
)
from ..utils.exceptions import SinkUnavailableError
from .graph_aggregate import GraphAggregate
from .sink import GraphSink, StoreResult, check_cancelled

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Back-tick quote a label or relationship type for Cypher."""
    return "`" + name.replace("`", "``") + "`"


class Neo4jGraphSink(GraphSink):
    """
    Graph sink writing to Neo4j.

    Provides:
    - Seed node reads by label
    - Batched node MERGE by (label, id)
    - Batched relationship CREATE using the literal relationship type
    - Retry with exponential backoff on transient errors
    """

    def __init__(
        self,
        uri: str,
        username: str,
        password: str,
        database: str = NEO4J_DEFAULT_DATABASE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """
        Initialize the Neo4j sink and verify connectivity.

        Args:
            uri: Neo4j connection URI (e.g., bolt://localhost:7687)
            username: Neo4j username
            password: Neo4j password
            database: Database name (default: neo4j)
            batch_size: Maximum nodes/relationships per UNWIND batch
            max_retries: Maximum attempts on transient errors

        Raises:
            SinkUnavailableError: If the server cannot be reached or rejects the credentials
        """
        self.uri = uri
        self.username = username
        self.database = database
        self.batch_size = batch_size
        self.max_retries = max_retries

        try:
            self.driver: Driver = GraphDatabase.driver(
                uri, auth=(username, password), max_connection_lifetime=3600
            )
            self.driver.verify_connectivity()
            logger.info(f"Connected to Neo4j at {uri}")
        except (ServiceUnavailable, AuthError) as e:
            logger.error(f"Failed to connect to Neo4j at {uri}: {e}")
            raise SinkUnavailableError(f"Neo4j at {uri} is unavailable: {e}") from e

    def close(self):
        """Close the Neo4j driver connection."""
        if self.driver:
            self.driver.close()
            logger.info("Neo4j connection closed")

    def __enter__(self) -> "Neo4jGraphSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _execute_query(self, query: str, parameters: dict = None) -> list:
        """
        Execute a read query and return results as dicts.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records
        """
        with self.driver.session(database=self.database) as session:
            result = session.run(query, parameters or {})
            return [record.data() for record in result]

    # ==================== Seed Nodes ====================

    def fetch_nodes(self, label: str) -> List[Dict[str, Any]]:
        """
        Fetch every node of ``label`` as a flat property map.

        Nodes without an ``id`` property are skipped: they cannot be merged
        back by ``(label, id)``. ``type`` is set to the label unless the node
        already has a ``type`` property.
        """
        query = f"""
        MATCH (n:{quote_identifier(label)})
        RETURN properties(n) AS props, elementId(n) AS element_id
        """

        try:
            records = self._execute_query(query)
        except Neo4jError as e:
            raise SinkUnavailableError(f"Failed to fetch {label} nodes: {e}") from e
        except ServiceUnavailable as e:
            raise SinkUnavailableError(f"Neo4j unavailable while fetching {label} nodes: {e}") from e

        nodes = []
        skipped = 0
        for record in records:
            props = dict(record["props"] or {})
            if props.get("id") is None:
                skipped += 1
                logger.debug(f"Skipping {label} node {record['element_id']} without id property")
                continue
            props.setdefault("type", label)
            nodes.append(props)

        if skipped:
            logger.warning(f"Skipped {skipped} {label} nodes without an id property")
        logger.info(f"Fetched {len(nodes)} {label} nodes from Neo4j")
        return nodes

    # ==================== Graph Persistence ====================

    def store_graph(
        self,
        aggregate: GraphAggregate,
        cancellation_event: Optional[threading.Event] = None,
    ) -> StoreResult:
        """
        Persist all nodes, then all relationships, of the aggregate.

        Returns:
            Counts of written nodes and written/skipped relationships

        Raises:
            SinkUnavailableError: If a batch fails after retries
        """
        result = StoreResult()

        nodes_by_label: Dict[str, List[Dict[str, Any]]] = {}
        for node in aggregate.nodes():
            nodes_by_label.setdefault(node.label, []).append(dict(node.properties))

        for label, entities in nodes_by_label.items():
            query = f"""
            UNWIND $entities AS entity
            MERGE (n:{quote_identifier(label)} {{id: entity.id}})
            SET n += entity
            RETURN count(n) AS written
            """
            for batch_num, batch in enumerate(self._split_into_batches(entities, self.batch_size), 1):
                check_cancelled(cancellation_event, "while storing nodes")
                logger.debug(f"Writing {label} node batch {batch_num} ({len(batch)} nodes)")
                records = self._write(query, {"entities": batch}, len(batch))
                result.nodes_written += records[0]["written"] if records else len(batch)

        groups: Dict[Tuple[str, str, str], List[Dict[str, Any]]] = {}
        for index, rel in enumerate(aggregate.relationships()):
            source, target = aggregate.endpoints(rel)
            groups.setdefault((rel.type, source.label, target.label), []).append(
                {
                    "index": index,
                    "source_id": source.id,
                    "target_id": target.id,
                    "properties": dict(rel.properties),
                }
            )

        logger.info(f"Number of relationships to save: {aggregate.relationship_count}")
        for (rel_type, source_label, target_label), rels in groups.items():
            query = f"""
            UNWIND $relationships AS rel
            MATCH (a:{quote_identifier(source_label)} {{id: rel.source_id}})
            MATCH (b:{quote_identifier(target_label)} {{id: rel.target_id}})
            CREATE (a)-[r:{quote_identifier(rel_type)}]->(b)
            SET r = rel.properties
            RETURN rel.index AS index
            """
            for batch in self._split_into_batches(rels, self.batch_size):
                check_cancelled(cancellation_event, "while storing relationships")
                records = self._write(query, {"relationships": batch}, len(batch))
                created = {record["index"] for record in records}
                for rel in batch:
                    if rel["index"] in created:
                        result.relationships_written += 1
                    else:
                        result.relationships_skipped += 1
                        logger.warning(
                            f"Skipping relationship {rel_type}: could not match "
                            f"{source_label} {rel['source_id']} -> {target_label} {rel['target_id']}"
                        )

        logger.info(
            f"Graph stored: {result.nodes_written} nodes, "
            f"{result.relationships_written} relationships, "
            f"{result.relationships_skipped} relationships skipped"
        )
        return result

    def _write(self, query: str, parameters: Dict[str, Any], batch_size: int) -> list:
        try:
            return self._execute_write_with_retry(
                query, parameters, max_retries=self.max_retries, batch_size=batch_size
            )
        except (Neo4jError, ServiceUnavailable) as e:
            raise SinkUnavailableError(f"Failed to write graph batch to Neo4j: {e}") from e

    def _split_into_batches(self, items: List[Any], batch_size: int) -> List[List[Any]]:
        """Split list into batches of specified size."""
        batches = []
        for i in range(0, len(items), batch_size):
            batches.append(items[i : i + batch_size])
        return batches

    def _execute_write_with_retry(
        self,
        query: str,
        parameters: Dict[str, Any],
        max_retries: int = DEFAULT_MAX_RETRIES,
        batch_size: int = None,
    ) -> list:
        """
        Execute write transaction with exponential backoff retry on transient errors.

        Args:
            query: Cypher query
            parameters: Query parameters
            max_retries: Maximum retry attempts
            batch_size: Batch size (for logging)

        Returns:
            Query results

        Raises:
            TransientError: If all retry attempts fail
        """
        for attempt in range(max_retries):
            try:
                with self.driver.session(database=self.database) as session:
                    result = session.execute_write(
                        lambda tx: list(tx.run(query, parameters))
                    )
                    return [record.data() for record in result]

            except TransientError as e:
                if attempt < max_retries - 1:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.warning(
                        f"Transient error on attempt {attempt + 1}/{max_retries} "
                        f"(batch_size={batch_size}): {e}. Retrying in {delay}s..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(f"All {max_retries} retry attempts failed")
                    raise
        return []
