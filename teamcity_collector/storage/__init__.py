"""Storage layer abstractions and adapters."""

from .base import (BuildRepository, CollectorItemRepository,
                   CollectorRepository, CommitRepository, ComponentRepository,
                   DashboardRepository, PipelineRepository)
from .errors import PipelineStoreError, RepositoryError, ValidationError
from .memory import (InMemoryBuildRepository, InMemoryCollectorItemRepository,
                     InMemoryCollectorRepository, InMemoryCommitRepository,
                     InMemoryComponentRepository, InMemoryDashboardRepository,
                     InMemoryPipelineRepository, InMemoryStores,
                     load_snapshot)
from .pipeline_store import (LocalPipelineRepository, S3PipelineRepository,
                             build_pipeline_repository_from_env)

__all__ = [
    "BuildRepository",
    "CollectorItemRepository",
    "CollectorRepository",
    "CommitRepository",
    "ComponentRepository",
    "DashboardRepository",
    "PipelineRepository",
    "RepositoryError",
    "PipelineStoreError",
    "ValidationError",
    "InMemoryBuildRepository",
    "InMemoryCollectorItemRepository",
    "InMemoryCollectorRepository",
    "InMemoryCommitRepository",
    "InMemoryComponentRepository",
    "InMemoryDashboardRepository",
    "InMemoryPipelineRepository",
    "InMemoryStores",
    "load_snapshot",
    "LocalPipelineRepository",
    "S3PipelineRepository",
    "build_pipeline_repository_from_env",
]
