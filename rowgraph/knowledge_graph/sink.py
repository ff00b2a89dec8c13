"""Graph sink interface and an in-memory implementation."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..utils.exceptions import ProjectionCancelledError
from .graph_aggregate import GraphAggregate

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    """Outcome of persisting one graph aggregate."""

    nodes_written: int = 0
    relationships_written: int = 0
    relationships_skipped: int = 0


def check_cancelled(cancellation_event: Optional[threading.Event], where: str) -> None:
    """Raise :class:`ProjectionCancelledError` if the event is set."""
    if cancellation_event is not None and cancellation_event.is_set():
        raise ProjectionCancelledError(f"Projection cancelled {where}")


class GraphSink(ABC):
    """Property-graph store the engine reads seed nodes from and flushes into."""

    @abstractmethod
    def fetch_nodes(self, label: str) -> List[Dict[str, Any]]:
        """
        Return persisted nodes of ``label`` as flat property maps.

        Each map contains ``id`` and ``type`` (the label, unless the node has
        its own ``type`` property).
        """
        raise NotImplementedError

    @abstractmethod
    def store_graph(
        self,
        aggregate: GraphAggregate,
        cancellation_event: Optional[threading.Event] = None,
    ) -> StoreResult:
        """
        Persist all nodes, then all relationships, of the aggregate.

        Nodes are merged by ``(label, id)``. A relationship whose endpoints
        cannot be found by ``id`` is logged and skipped.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release held resources."""


class InMemoryGraphSink(GraphSink):
    """
    Dict-backed graph store.

    Useful for dry runs and tests; follows the same merge and skip rules as
    the Neo4j sink.
    """

    def __init__(self, nodes: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        """
        Args:
            nodes: Optional seed content, label -> list of property maps
        """
        self.nodes: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.relationships: List[Dict[str, Any]] = []
        self.store_calls = 0
        for label, items in (nodes or {}).items():
            for props in items:
                self.nodes[(label, str(props["id"]))] = dict(props)

    def fetch_nodes(self, label: str) -> List[Dict[str, Any]]:
        result = []
        for (node_label, _), props in self.nodes.items():
            if node_label == label:
                row = dict(props)
                row.setdefault("type", label)
                result.append(row)
        return result

    def store_graph(
        self,
        aggregate: GraphAggregate,
        cancellation_event: Optional[threading.Event] = None,
    ) -> StoreResult:
        self.store_calls += 1
        result = StoreResult()

        for node in aggregate.nodes():
            check_cancelled(cancellation_event, "while storing nodes")
            stored = self.nodes.setdefault((node.label, node.id), {})
            stored.update(node.properties)
            result.nodes_written += 1

        for rel in aggregate.relationships():
            check_cancelled(cancellation_event, "while storing relationships")
            source, target = aggregate.endpoints(rel)
            if (source.label, source.id) not in self.nodes or (
                target.label,
                target.id,
            ) not in self.nodes:
                logger.warning(
                    f"Skipping relationship {rel.type}: endpoint {source.id} or {target.id} not stored"
                )
                result.relationships_skipped += 1
                continue
            self.relationships.append(
                {
                    "type": rel.type,
                    "source": (source.label, source.id),
                    "target": (target.label, target.id),
                    "properties": dict(rel.properties),
                }
            )
            result.relationships_written += 1

        logger.info(
            f"Stored {result.nodes_written} nodes and {result.relationships_written} relationships in memory"
        )
        return result
