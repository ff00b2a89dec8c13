"""Wire a TransformService from settings."""

import logging
from typing import Optional

from ..config.settings import Settings, get_settings
from ..knowledge_graph.sink import GraphSink, InMemoryGraphSink
from ..storage.duckdb_source import DuckDBRowSource
from ..transform.rule_repository import ConfigRuleRepository
from ..utils.exceptions import RowGraphError
from ..utils.logging_config import setup_logging
from .transform_service import TransformService

logger = logging.getLogger(__name__)


def create_sink(settings: Settings) -> GraphSink:
    if settings.projection.dry_run:
        logger.info("Dry run: projecting into the in-memory graph sink")
        return InMemoryGraphSink()

    # Dry runs never load the driver
    from ..knowledge_graph.neo4j_client import Neo4jGraphSink

    logger.info(f"Connecting to Neo4j at {settings.neo4j.uri}...")
    return Neo4jGraphSink(
        uri=settings.neo4j.uri,
        username=settings.neo4j.username,
        password=settings.neo4j.password,
        database=settings.neo4j.database,
        batch_size=settings.projection.batch_size,
        max_retries=settings.projection.max_retries,
    )


def create_transform_service(
    settings: Optional[Settings] = None, configure_logging: bool = False
) -> TransformService:
    """
    Build a service over the DuckDB source, the configured sink and the YAML
    rule repository.

    Raises:
        ConfigurationError: If the rule file is missing or malformed
        SourceUnavailableError: If the DuckDB database cannot be opened
        SinkUnavailableError: If Neo4j is unreachable
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(level=settings.log_level, format_string=settings.log_format)

    rule_repository = ConfigRuleRepository.from_file(settings.projection.rules_path)
    rule_repository.get_all_rules()

    source = DuckDBRowSource(
        db_path=settings.duckdb.path,
        tables=settings.duckdb.tables or None,
        where_conditions=settings.duckdb.where_conditions,
        row_limit_per_table=settings.duckdb.row_limit_per_table,
    )
    try:
        sink = create_sink(settings)
    except RowGraphError:
        source.close()
        raise

    return TransformService(
        source,
        sink,
        rule_repository,
        fail_on_unresolved=settings.projection.fail_on_unresolved,
        identity_defaults=settings.projection.identity_defaults,
    )
