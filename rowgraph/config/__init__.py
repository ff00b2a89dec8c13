from .settings import (
    DuckDBSettings,
    Neo4jSettings,
    ProjectionSettings,
    Settings,
    get_settings,
)

__all__ = [
    "DuckDBSettings",
    "Neo4jSettings",
    "ProjectionSettings",
    "Settings",
    "get_settings",
]
