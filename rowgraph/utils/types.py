"""
Type aliases for the row-to-graph projector.

This module defines common type aliases used throughout the package
to improve code readability.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

# Relational side
Row = Dict[str, Any]

# Graph side
PropertyMap = Dict[str, Any]
NodeKey = Tuple[str, str]  # (label, id)
