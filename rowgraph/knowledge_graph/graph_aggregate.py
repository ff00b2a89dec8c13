"""
In-memory labeled property graph built during one projection run.

Nodes live in an arena (a list) and are addressed by integer index; the
aggregate keeps a ``(label, id) -> index`` primary index and lazily built
``(label, field) -> {key -> index}`` secondary indices used for relationship
endpoint resolution. Relationships store endpoint indices, so a relationship
always points at the node that was present when it was inserted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..transform.rules import Direction
from ..utils.exceptions import MissingIdentityError, UnresolvedEndpointError
from ..utils.types import NodeKey, PropertyMap
from .normalizer import key_text

logger = logging.getLogger(__name__)


@dataclass
class GraphNode:
    """A node in the aggregate. ``properties`` always contains ``id``."""

    label: str
    id: str
    properties: PropertyMap = field(default_factory=dict)


@dataclass(frozen=True)
class GraphRelationship:
    """A resolved relationship between two nodes of the aggregate."""

    type: str
    direction: Direction
    source_index: int
    target_index: int
    properties: PropertyMap = field(default_factory=dict)


class GraphAggregate:
    """
    Node/relationship buffer with identity tracking.

    Invariants:
    - ``(label, id)`` is unique; re-adding merges properties (last writer wins).
    - every relationship's endpoints are nodes of this aggregate.
    - insertion order is preserved for both nodes and relationships.
    """

    def __init__(self):
        self._nodes: List[GraphNode] = []
        self._relationships: List[GraphRelationship] = []
        self._by_identity: Dict[NodeKey, int] = {}
        self._field_indices: Dict[Tuple[str, str], Dict[str, int]] = {}

    # ==================== Node Operations ====================

    def add_node(self, label: str, properties: Mapping[str, Any]) -> GraphNode:
        """
        Add a node, or merge into the existing node with the same ``(label, id)``.

        Args:
            label: Node label
            properties: Node properties; must contain a non-empty ``id``

        Returns:
            The inserted or merged node

        Raises:
            MissingIdentityError: If ``id`` is missing or empty
        """
        raw_id = properties.get("id")
        node_id = key_text(raw_id)
        if not node_id:
            raise MissingIdentityError(
                f"{label} node is missing a non-empty 'id' property: {dict(properties)}"
            )

        props = dict(properties)
        props["id"] = node_id

        index = self._by_identity.get((label, node_id))
        if index is not None:
            node = self._nodes[index]
            changed = [k for k, v in props.items() if node.properties.get(k, _MISSING) != v]
            node.properties.update(props)
            self._invalidate_field_indices(label, changed)
            logger.debug(f"Merged {label} node id={node_id} ({len(changed)} properties changed)")
            return node

        index = len(self._nodes)
        node = GraphNode(label=label, id=node_id, properties=props)
        self._nodes.append(node)
        self._by_identity[(label, node_id)] = index
        self._index_new_node(index, node)
        logger.debug(f"Added {label} node id={node_id}")
        return node

    def get_node(self, label: str, node_id: Any) -> Optional[GraphNode]:
        """Return the node with the given label and id, if present."""
        index = self._by_identity.get((label, key_text(node_id)))
        return self._nodes[index] if index is not None else None

    def find_node(self, label: str, field_name: str, key: Any) -> Optional[GraphNode]:
        """Return the first node with ``label`` whose ``field_name`` equals ``key``."""
        index = self._find_index(label, field_name, key)
        return self._nodes[index] if index is not None else None

    def nodes(self) -> Iterator[GraphNode]:
        """Iterate nodes in first-insertion order."""
        return iter(tuple(self._nodes))

    def node_at(self, index: int) -> GraphNode:
        return self._nodes[index]

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    # ==================== Relationship Operations ====================

    def add_relationship(
        self,
        rel_type: str,
        direction: Direction,
        source_label: str,
        source_key: Any,
        source_field: str,
        target_label: str,
        target_key: Any,
        target_field: str,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> GraphRelationship:
        """
        Resolve both endpoints and append a relationship.

        Raises:
            UnresolvedEndpointError: If either endpoint node is not present
        """
        source_index = self._find_index(source_label, source_field, source_key)
        if source_index is None:
            raise UnresolvedEndpointError(
                rel_type, "source", source_label, source_field, source_key
            )

        target_index = self._find_index(target_label, target_field, target_key)
        if target_index is None:
            raise UnresolvedEndpointError(
                rel_type, "target", target_label, target_field, target_key
            )

        relationship = GraphRelationship(
            type=rel_type,
            direction=direction,
            source_index=source_index,
            target_index=target_index,
            properties=dict(properties or {}),
        )
        self._relationships.append(relationship)
        logger.debug(
            f"Added relationship {rel_type}: {source_label}/{source_key} -> {target_label}/{target_key}"
        )
        return relationship

    def relationships(self) -> Iterator[GraphRelationship]:
        """Iterate relationships in insertion order."""
        return iter(tuple(self._relationships))

    def endpoints(self, relationship: GraphRelationship) -> Tuple[GraphNode, GraphNode]:
        """Return the ``(source, target)`` nodes of a relationship."""
        return self._nodes[relationship.source_index], self._nodes[relationship.target_index]

    @property
    def relationship_count(self) -> int:
        return len(self._relationships)

    # ==================== Export ====================

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Export the aggregate as plain dicts (for JSON dumps and debugging)."""
        nodes = [
            {"label": node.label, "id": node.id, "properties": dict(node.properties)}
            for node in self._nodes
        ]
        relationships = []
        for rel in self._relationships:
            source, target = self.endpoints(rel)
            relationships.append(
                {
                    "type": rel.type,
                    "direction": rel.direction.value,
                    "source": {"label": source.label, "id": source.id},
                    "target": {"label": target.label, "id": target.id},
                    "properties": dict(rel.properties),
                }
            )
        return {"nodes": nodes, "relationships": relationships}

    # ==================== Index Maintenance ====================

    def _find_index(self, label: str, field_name: str, key: Any) -> Optional[int]:
        wanted = key_text(key)
        if wanted is None:
            return None
        if field_name == "id":
            return self._by_identity.get((label, wanted))
        return self._field_index(label, field_name).get(wanted)

    def _field_index(self, label: str, field_name: str) -> Dict[str, int]:
        index_key = (label, field_name)
        index = self._field_indices.get(index_key)
        if index is None:
            index = {}
            for position, node in enumerate(self._nodes):
                if node.label != label:
                    continue
                value = key_text(node.properties.get(field_name))
                if value is not None:
                    index.setdefault(value, position)
            self._field_indices[index_key] = index
        return index

    def _index_new_node(self, position: int, node: GraphNode) -> None:
        for (label, field_name), index in self._field_indices.items():
            if label != node.label:
                continue
            value = key_text(node.properties.get(field_name))
            if value is not None:
                index.setdefault(value, position)

    def _invalidate_field_indices(self, label: str, changed_fields: List[str]) -> None:
        for field_name in changed_fields:
            self._field_indices.pop((label, field_name), None)


_MISSING = object()
