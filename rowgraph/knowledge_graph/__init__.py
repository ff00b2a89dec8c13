"""
Knowledge Graph module for the projected property graph.

This module provides the in-memory graph aggregate, property normalization,
and the graph sinks (Neo4j and in-memory) that persist projected graphs.
"""

from __future__ import annotations

from .graph_aggregate import GraphAggregate, GraphNode, GraphRelationship
from .normalizer import (
    ValueKind,
    classify,
    key_text,
    normalize_properties,
    normalize_row_maps,
    normalize_value,
)
from .sink import GraphSink, InMemoryGraphSink, StoreResult

__all__: list[str] = [
    "GraphAggregate",
    "GraphNode",
    "GraphRelationship",
    "GraphSink",
    "InMemoryGraphSink",
    "StoreResult",
    "ValueKind",
    "classify",
    "key_text",
    "normalize_properties",
    "normalize_row_maps",
    "normalize_value",
]
