"""
Property normalization for graph sinks.

Property graphs accept a restricted set of scalar property values. This module
coerces whatever a relational driver hands back (bytes, big integers, nested
JSON documents, timestamps, ...) into that set. Every function here is pure;
the only side effect is a warning log line (and metric) when a value is
truncated or coerced to its textual representation.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..utils import metrics
from ..utils.constants import MAX_TEXT_LENGTH

logger = logging.getLogger(__name__)


class ValueKind(Enum):
    """Closed classification of source values."""

    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    TEXT = "text"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"
    DECIMAL = "decimal"
    LIST = "list"
    MAP = "map"
    OTHER = "other"


def classify(value: Any) -> ValueKind:
    """Return the :class:`ValueKind` of a source value."""
    if value is None:
        return ValueKind.NULL
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BYTES
    if isinstance(value, (datetime, date, time)):
        return ValueKind.TIMESTAMP
    if isinstance(value, (Decimal, uuid.UUID)):
        return ValueKind.DECIMAL
    if isinstance(value, Mapping):
        return ValueKind.MAP
    if isinstance(value, (list, tuple, set, frozenset)):
        return ValueKind.LIST
    return ValueKind.OTHER


def _warn(key: Optional[str], message: str) -> None:
    metrics.NORMALIZATION_WARNINGS_TOTAL.inc()
    where = f" for key {key}" if key else ""
    logger.warning(f"{message}{where}")


def _truncate(text: str, key: Optional[str]) -> str:
    if len(text) > MAX_TEXT_LENGTH:
        _warn(key, f"Truncating long string to {MAX_TEXT_LENGTH} characters")
        return text[:MAX_TEXT_LENGTH]
    return text


def _to_json(value: Any, key: Optional[str]) -> str:
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        _warn(key, f"Could not serialize {type(value).__name__} as JSON ({e}), using text")
        return str(value)


def _decimal_text(value: Decimal) -> str:
    # whole numbers drop the scale so 10.00 matches an integer key 10
    if value.is_finite() and value == value.to_integral_value():
        return str(int(value))
    return str(value)


def normalize_value(value: Any, key: Optional[str] = None) -> Any:
    """
    Coerce a single source value into a scalar accepted by the graph sink.

    Args:
        value: Raw value from a row or record
        key: Property name, only used in warning messages

    Returns:
        ``None``, ``bool``, ``float`` or ``str``

    Note:
        Python ``int`` is treated as the driver's 64-bit integer and rendered
        in base 10, so ``normalize_value(1) == "1"``. Lists are stored as
        compact JSON text rather than native list properties.
    """
    kind = classify(value)

    if kind is ValueKind.NULL or kind is ValueKind.BOOL or kind is ValueKind.FLOAT:
        return value
    if kind is ValueKind.INT:
        return str(value)
    if kind is ValueKind.TEXT:
        return _truncate(value, key)
    if kind is ValueKind.BYTES:
        return _truncate(bytes(value).decode("utf-8", errors="replace"), key)
    if kind is ValueKind.TIMESTAMP:
        return value.isoformat()
    if kind is ValueKind.DECIMAL:
        return _decimal_text(value) if isinstance(value, Decimal) else str(value)
    if kind is ValueKind.MAP:
        return _truncate(_to_json(dict(value), key), key)
    if kind is ValueKind.LIST:
        items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else list(value)
        return _truncate(_to_json(items, key), key)

    _warn(key, f"Unexpected data type {type(value).__name__}, converting to text")
    return _truncate(str(value), key)


def normalize_properties(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize every value of a property mapping."""
    return {key: normalize_value(value, key) for key, value in properties.items()}


def normalize_row_maps(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    JSON-stringify nested mapping values of a row, leaving everything else as is.

    Runs on rows before rules see them, so rules that simply copy columns
    cannot propagate mapping values into the graph.
    """
    result = {}
    for key, value in row.items():
        if classify(value) is ValueKind.MAP:
            result[key] = _to_json(dict(value), key)
        else:
            result[key] = value
    return result


def key_text(value: Any) -> Optional[str]:
    """
    Canonical text form used to compare endpoint keys with node properties.

    A row key ``1``, ``1.0`` or ``Decimal("1.00")`` and a node property ``"1"``
    compare equal; ``None`` never matches anything.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal):
        return _decimal_text(value)
    if isinstance(value, (str, int, float, Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
