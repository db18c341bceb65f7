"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Domain models for the CI project hierarchy and executed builds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from .scm import Commit


class BuildStatus(str, Enum):
    """Terminal outcome of a build as reported to the dashboard."""

    SUCCESS = "Success"
    UNSTABLE = "Unstable"
    FAILURE = "Failure"
    ABORTED = "Aborted"
    UNKNOWN = "Unknown"

    @classmethod
    def from_teamcity(cls, raw: Optional[str]) -> "BuildStatus":
        """Map TeamCity's upper-case status strings onto BuildStatus."""
        mapping = {
            "SUCCESS": cls.SUCCESS,
            "UNSTABLE": cls.UNSTABLE,
            "FAILURE": cls.FAILURE,
            "ABORTED": cls.ABORTED,
        }
        if not raw:
            return cls.UNKNOWN
        return mapping.get(raw.strip().upper(), cls.UNKNOWN)


class RepoType(str, Enum):
    """Source-control flavour attached to a RepoBranch."""

    GIT = "GIT"
    SVN = "SVN"
    HG = "HG"
    UNKNOWN = "Unknown"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "RepoType":
        if not value:
            return cls.UNKNOWN
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        if lowered in {"jetbrains.git", "git-plugin"}:
            return cls.GIT
        if lowered in {"svn", "subversion"}:
            return cls.SVN
        if lowered in {"hg", "mercurial"}:
            return cls.HG
        return cls.UNKNOWN


@dataclass(frozen=True)
class BuildConfiguration:
    """A TeamCity build type; deployment configurations are excluded."""

    id: str
    web_url: Optional[str] = None
    project_id: Optional[str] = None
    name: Optional[str] = None
    is_deployment: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Build configuration id cannot be empty")


@dataclass(frozen=True)
class ProjectNode:
    """One node of the TeamCity project tree."""

    id: str
    sub_project_ids: Sequence[str] = ()
    build_configurations: Sequence[BuildConfiguration] = ()

    @property
    def is_dead_end(self) -> bool:
        return not self.sub_project_ids and not self.build_configurations


@dataclass(frozen=True)
class RepoBranch:
    """Repository location a build was produced from."""

    url: str
    branch: Optional[str] = None
    type: RepoType = RepoType.UNKNOWN

    def __post_init__(self) -> None:
        if self.url.endswith(".git"):
            raise ValueError(
                f"Repository url '{self.url}' must not carry a .git suffix"
            )


@dataclass(frozen=True)
class BuildSummary:
    """Minimal build record returned by the paginated listing."""

    number: str
    build_url: str
    status: BuildStatus = BuildStatus.UNKNOWN


@dataclass(frozen=True)
class Build:
    """A finished build enriched with timing, repositories and changes."""

    number: str
    build_url: str
    status: BuildStatus
    start_time: int
    end_time: int
    duration: int
    timestamp: int
    code_repos: Sequence[RepoBranch] = field(default_factory=tuple)
    source_change_set: Sequence[Commit] = field(default_factory=tuple)
