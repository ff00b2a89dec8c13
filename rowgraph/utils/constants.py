"""
Application constants for the row-to-graph projector.

This module contains the magic numbers and default values shared by the
normalizer, the engine and the adapters.
"""

from __future__ import annotations

# Property normalization
MAX_TEXT_LENGTH = 10000  # characters kept for any string property

# Node identity defaults
DEFAULT_NODE_NAME = "default_name"

# Internal markers on rows and records
TABLE_TAG = "_table"

# Graph sink configuration
NEO4J_DEFAULT_DATABASE = "neo4j"
DEFAULT_BATCH_SIZE = 100  # nodes/relationships per UNWIND batch
DEFAULT_MAX_RETRIES = 5
RETRY_DELAYS = [1, 2, 4, 8, 16]  # exponential backoff in seconds

# Logging configuration
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] - %(message)s"
