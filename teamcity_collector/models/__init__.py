"""Domain model package exports."""

from .ci import (Build, BuildConfiguration, BuildStatus, BuildSummary,
                 ProjectNode, RepoBranch, RepoType)
from .dashboard import (Collector, CollectorItem, CollectorType, Component,
                        Dashboard, new_id)
from .outcome import Outcome, OutcomeStatus
from .pipeline import EnvironmentStage, Pipeline, PipelineStage
from .scm import Commit, PipelineCommit

__all__ = [
    "Build",
    "BuildConfiguration",
    "BuildStatus",
    "BuildSummary",
    "Collector",
    "CollectorItem",
    "CollectorType",
    "Commit",
    "Component",
    "Dashboard",
    "EnvironmentStage",
    "Outcome",
    "OutcomeStatus",
    "Pipeline",
    "PipelineCommit",
    "PipelineStage",
    "ProjectNode",
    "RepoBranch",
    "RepoType",
    "new_id",
]
