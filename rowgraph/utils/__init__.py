"""
Utility modules for the row-to-graph projector.

This package provides common utilities, exceptions, constants, type aliases,
validators, metrics and logging configuration used throughout the package.
"""

from __future__ import annotations

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_NODE_NAME,
    MAX_TEXT_LENGTH,
    NEO4J_DEFAULT_DATABASE,
    TABLE_TAG,
)
from .exceptions import (
    ConfigurationError,
    InvalidRecordError,
    InvalidRuleError,
    MissingIdentityError,
    ProjectionCancelledError,
    RowGraphError,
    SinkUnavailableError,
    SourceUnavailableError,
    UnresolvedEndpointError,
)
from .logging_config import RunIDFilter, get_logger, setup_logging
from .types import NodeKey, PropertyMap, Row
from .validators import validate_file_path, validate_identifier

__all__ = [
    # Constants
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_NODE_NAME",
    "MAX_TEXT_LENGTH",
    "NEO4J_DEFAULT_DATABASE",
    "TABLE_TAG",
    # Exceptions
    "ConfigurationError",
    "InvalidRecordError",
    "InvalidRuleError",
    "MissingIdentityError",
    "ProjectionCancelledError",
    "RowGraphError",
    "SinkUnavailableError",
    "SourceUnavailableError",
    "UnresolvedEndpointError",
    # Logging
    "RunIDFilter",
    "get_logger",
    "setup_logging",
    # Types
    "NodeKey",
    "PropertyMap",
    "Row",
    # Validators
    "validate_file_path",
    "validate_identifier",
]
