"""
Configuration settings for rowgraph.
Uses pydantic-settings for environment variable management.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Neo4jSettings(BaseSettings):
    """Neo4j graph sink configuration."""

    model_config = SettingsConfigDict(env_prefix="NEO4J_")

    uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    username: str = Field(default="neo4j", description="Neo4j username")
    password: str = Field(default="", description="Neo4j password")
    database: str = Field(default="neo4j", description="Neo4j database name")


class DuckDBSettings(BaseSettings):
    """DuckDB row source configuration."""

    model_config = SettingsConfigDict(env_prefix="DUCKDB_")

    path: str = Field(
        default="data/source.duckdb",
        description="DuckDB database path. Use ':memory:' for an in-memory database."
    )
    tables: list[str] = Field(
        default_factory=list,
        description="Tables to read; empty means every base table"
    )
    where_conditions: dict[str, str] = Field(
        default_factory=dict,
        description="Per-table SQL conditions, as a JSON object"
    )
    row_limit_per_table: int = Field(default=0, description="Row limit per table, 0 for none")


class ProjectionSettings(BaseSettings):
    """Projection run configuration."""

    model_config = SettingsConfigDict(env_prefix="PROJECTION_")

    rules_path: str = Field(default="config/rules.yaml", description="Rule-set YAML file")
    fail_on_unresolved: bool = Field(
        default=True,
        description="Abort the run when a relationship endpoint cannot be resolved"
    )
    identity_defaults: bool = Field(
        default=True,
        description="Default missing node id to a UUID and name to 'default_name'"
    )
    batch_size: int = Field(default=100, description="Sink write batch size")
    max_retries: int = Field(default=5, description="Sink retries on transient errors")
    dry_run: bool = Field(default=False, description="Project into memory instead of Neo4j")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = Field(default="rowgraph", description="Application name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Optional[str] = Field(default=None, description="Override log format string")

    # Sub-configurations
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    duckdb: DuckDBSettings = Field(default_factory=DuckDBSettings)
    projection: ProjectionSettings = Field(default_factory=ProjectionSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
