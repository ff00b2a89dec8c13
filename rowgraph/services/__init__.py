from .bootstrap import create_sink, create_transform_service
from .transform_service import ProjectionReport, RunState, TransformService

__all__ = [
    "ProjectionReport",
    "RunState",
    "TransformService",
    "create_sink",
    "create_transform_service",
]
