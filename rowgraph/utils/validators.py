"""
Validation utilities for the row-to-graph projector.

This module provides validation functions for rule-set documents and
graph identifiers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError, InvalidRuleError


def validate_file_path(file_path: str, must_exist: bool = True) -> Path:
    """
    Validate file path and return Path object.

    Args:
        file_path: Path to validate
        must_exist: If True, file must exist

    Returns:
        Path object

    Raises:
        ConfigurationError: If validation fails
    """
    path = Path(file_path)

    if must_exist and not path.is_file():
        raise ConfigurationError(f"File does not exist: {file_path}")

    return path


def validate_identifier(value: Any, what: str) -> str:
    """
    Validate a node label or relationship type.

    Args:
        value: Candidate identifier
        what: Human-readable name of the field, used in the error message

    Returns:
        The identifier with surrounding whitespace removed

    Raises:
        InvalidRuleError: If the identifier is not a non-empty string
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidRuleError(f"{what} must be a non-empty string, got {value!r}")

    return value.strip()
