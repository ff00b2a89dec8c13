"""
Custom exception hierarchy for the row-to-graph projector.

This module defines all custom exceptions raised by the projection engine and
its adapters, providing clear error categorization for callers.
"""

from __future__ import annotations

from typing import Any, Optional


class RowGraphError(Exception):
    """Base exception for all projection errors."""

    pass


class ConfigurationError(RowGraphError):
    """Raised when configuration or a rule-set document cannot be read."""

    pass


class SourceUnavailableError(RowGraphError):
    """Raised when the relational source cannot serve rows."""

    pass


class SinkUnavailableError(RowGraphError):
    """Raised when the graph sink cannot read existing nodes or persist a graph."""

    pass


class InvalidRuleError(RowGraphError):
    """Raised for unsupported rule types or incomplete relationship rules."""

    pass


class InvalidRecordError(RowGraphError):
    """Raised when rule output is neither a node nor a relationship record."""

    pass


class MissingIdentityError(RowGraphError):
    """Raised when a node lacks a usable ``id`` (or ``name``)."""

    pass


class UnresolvedEndpointError(RowGraphError):
    """Raised when a relationship refers to a node missing from the aggregate."""

    def __init__(
        self,
        relationship_type: str,
        side: str,
        label: str,
        field: str,
        key: Any,
        record: Optional[Any] = None,
    ):
        self.relationship_type = relationship_type
        self.side = side
        self.label = label
        self.field = field
        self.key = key
        self.record = record
        message = (
            f"Cannot resolve {side} endpoint of {relationship_type}: "
            f"no {label} node with {field}={key!r}"
        )
        if record is not None:
            message += f" (record: {record})"
        super().__init__(message)


class ProjectionCancelledError(RowGraphError):
    """Raised when a projection run observes cooperative cancellation."""

    pass
