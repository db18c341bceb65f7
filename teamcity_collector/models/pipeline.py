"""Pipeline aggregate tracking which commits reached which stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .scm import PipelineCommit


class PipelineStage(str, Enum):
    """Named delivery stages a commit moves through."""

    COMMIT = "Commit"
    BUILD = "Build"


class EnvironmentStage:
    """Commits known to have reached one stage.

    Behaves like an insertion-ordered set keyed by revision number: the
    first commit recorded for a revision is kept.
    """

    def __init__(self, commits: Optional[Iterable[PipelineCommit]] = None) -> None:
        self._commits: Dict[str, PipelineCommit] = {}
        if commits is not None:
            self.replace_commits(commits)

    @property
    def commits(self) -> List[PipelineCommit]:
        return list(self._commits.values())

    def replace_commits(self, commits: Iterable[PipelineCommit]) -> None:
        ordered: Dict[str, PipelineCommit] = {}
        for commit in commits:
            ordered.setdefault(commit.revision_number, commit)
        self._commits = ordered

    def add(self, commit: PipelineCommit) -> bool:
        if commit.revision_number in self._commits:
            return False
        self._commits[commit.revision_number] = commit
        return True

    def __contains__(self, revision_number: object) -> bool:
        return revision_number in self._commits

    def __len__(self) -> int:
        return len(self._commits)

    def __bool__(self) -> bool:
        return bool(self._commits)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EnvironmentStage):
            return NotImplemented
        return self.commits == other.commits

    def __repr__(self) -> str:
        return f"EnvironmentStage(commits={self.commits!r})"


@dataclass
class Pipeline:
    """Per collector item record of stage membership."""

    collector_item_id: str
    environment_stage_map: Dict[str, EnvironmentStage] = field(
        default_factory=dict
    )

    def stage(self, stage: PipelineStage) -> Optional[EnvironmentStage]:
        return self.environment_stage_map.get(stage.value)

    def get_or_create_stage(self, stage: PipelineStage) -> EnvironmentStage:
        return self.environment_stage_map.setdefault(
            stage.value, EnvironmentStage()
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "collectorItemId": self.collector_item_id,
            "environmentStageMap": {
                name: {"commits": [commit.as_dict() for commit in stage.commits]}
                for name, stage in self.environment_stage_map.items()
            },
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Pipeline":
        stages: Dict[str, EnvironmentStage] = {}
        raw_stages = document.get("environmentStageMap") or {}
        for name, raw_stage in raw_stages.items():
            commits = (raw_stage or {}).get("commits") or []
            stages[name] = EnvironmentStage(
                PipelineCommit.from_dict(item) for item in commits
            )
        return cls(
            collector_item_id=str(document["collectorItemId"]),
            environment_stage_map=stages,
        )
