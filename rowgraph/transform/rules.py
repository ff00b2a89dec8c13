"""
Projection rule model.

A rule describes how one source row becomes either a node record or a
relationship record. Rules are a closed variant: :class:`NodeRule` and
:class:`RelationshipRule`, each with its own payload. Records are the
intermediate, post-rule and pre-aggregate shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Union

from ..utils.exceptions import InvalidRuleError

logger = logging.getLogger(__name__)


class RuleType(str, Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"


class SourceKind(str, Enum):
    """Where a rule reads its input rows from."""

    TABLE = "table"
    QUERY = "query"
    GRAPH = "graph"  # nodes already persisted in the graph sink


class Direction(str, Enum):
    """
    Relationship direction.

    Advisory metadata on the record: sinks always persist the edge from the
    resolved source node to the resolved target node.
    """

    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Direction":
        """Parse a direction name; empty or unknown values mean OUTGOING."""
        if isinstance(value, Direction):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OUTGOING

    def to_cypher_arrow(self) -> str:
        return {"outgoing": "->", "incoming": "<-", "both": "-"}[self.value]


@dataclass(frozen=True)
class RuleSource:
    """Source selector: a table name, a literal query, or the graph sink."""

    kind: SourceKind
    value: Optional[str] = None

    @classmethod
    def table(cls, name: str) -> "RuleSource":
        return cls(SourceKind.TABLE, name)

    @classmethod
    def query(cls, sql: str) -> "RuleSource":
        return cls(SourceKind.QUERY, sql)

    @classmethod
    def graph(cls) -> "RuleSource":
        return cls(SourceKind.GRAPH)


@dataclass(frozen=True)
class EndpointMapping:
    """How a relationship rule locates one endpoint: read ``key`` from the row,
    match it against property ``match_field`` of a ``label`` node."""

    label: str
    key: str
    match_field: str = "id"


@dataclass(frozen=True)
class EndpointRef:
    """A resolved endpoint descriptor on a relationship record."""

    label: str
    key: Any
    match_field: str


@dataclass
class NodeRecord:
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RelationshipRecord:
    type: str
    direction: Direction
    source: EndpointRef
    target: EndpointRef
    properties: Dict[str, Any] = field(default_factory=dict)


Record = Union[NodeRecord, RelationshipRecord]


def _copy_mapped(row: Mapping[str, Any], mappings: Mapping[str, str]) -> Dict[str, Any]:
    """Copy ``source column -> target property``; missing columns are skipped."""
    result = {}
    for source_field, target_field in mappings.items():
        if source_field in row:
            result[target_field] = row[source_field]
    return result


@dataclass(frozen=True)
class NodeRule:
    """Projects each input row to a node of label ``target_type``."""

    name: str
    target_type: str
    source: RuleSource
    field_mappings: Dict[str, str] = field(default_factory=dict)
    priority: int = 0

    rule_type = RuleType.NODE

    def validate(self) -> None:
        if not self.target_type:
            raise InvalidRuleError(f"Node rule '{self.name}' has no target_type")
        if self.source.kind is SourceKind.GRAPH:
            raise InvalidRuleError(
                f"Node rule '{self.name}' must read from a table or a query"
            )

    def apply(self, row: Mapping[str, Any]) -> Optional[NodeRecord]:
        """Project one row; never returns ``None`` for node rules."""
        return NodeRecord(label=self.target_type, properties=_copy_mapped(row, self.field_mappings))

    def apply_all(self, rows: Iterable[Mapping[str, Any]]) -> Iterator[NodeRecord]:
        for row in rows:
            record = self.apply(row)
            if record is not None:
                yield record


@dataclass(frozen=True)
class RelationshipRule:
    """Projects each input row to a ``target_type`` relationship between two nodes."""

    name: str
    target_type: str
    source: RuleSource
    source_node: Optional[EndpointMapping] = None
    target_node: Optional[EndpointMapping] = None
    direction: Direction = Direction.OUTGOING
    properties: Dict[str, str] = field(default_factory=dict)
    field_mappings: Dict[str, str] = field(default_factory=dict)
    priority: int = 0

    rule_type = RuleType.RELATIONSHIP

    def validate(self) -> None:
        if not self.target_type:
            raise InvalidRuleError(f"Relationship rule '{self.name}' has no relationship type")
        if self.source_node is None or self.target_node is None:
            raise InvalidRuleError(
                f"Relationship rule '{self.name}' needs both source_node and target_node"
            )

    def endpoint_labels(self) -> list[str]:
        """Labels of both endpoints, source first, without duplicates."""
        labels = []
        for endpoint in (self.source_node, self.target_node):
            if endpoint is not None and endpoint.label not in labels:
                labels.append(endpoint.label)
        return labels

    def apply(self, row: Mapping[str, Any]) -> Optional[RelationshipRecord]:
        """
        Project one row to a relationship record.

        Graph-bound rules run over pre-loaded nodes of several labels, so they
        return ``None`` for a row without a value for either endpoint key
        column. Table and query rules always emit a record; a null key then
        fails endpoint resolution like any other unknown key.

        Raises:
            InvalidRuleError: If an endpoint mapping is missing on the rule
        """
        self.validate()

        source_key = row.get(self.source_node.key)
        target_key = row.get(self.target_node.key)
        if self.source.kind is SourceKind.GRAPH and (source_key is None or target_key is None):
            logger.debug(
                f"Rule '{self.name}': row has no {self.source_node.key}/{self.target_node.key}, skipping"
            )
            return None

        # field_mappings double as property mappings for relationship rules
        properties = _copy_mapped(row, self.field_mappings)
        properties.update(_copy_mapped(row, self.properties))

        return RelationshipRecord(
            type=self.target_type,
            direction=self.direction,
            source=EndpointRef(self.source_node.label, source_key, self.source_node.match_field),
            target=EndpointRef(self.target_node.label, target_key, self.target_node.match_field),
            properties=properties,
        )

    def apply_all(self, rows: Iterable[Mapping[str, Any]]) -> Iterator[RelationshipRecord]:
        for row in rows:
            record = self.apply(row)
            if record is not None:
                yield record


Rule = Union[NodeRule, RelationshipRule]
