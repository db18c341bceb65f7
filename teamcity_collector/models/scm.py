"""Source-control commit models shared by builds and pipelines."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Commit:
    """One source-control change identified by its revision number."""

    revision_number: str
    author: Optional[str] = None
    message: Optional[str] = None
    commit_timestamp: int = 0
    url: Optional[str] = None
    branch: Optional[str] = None
    changed_file_count: int = 0

    def __post_init__(self) -> None:
        if not self.revision_number:
            raise ValueError("Commit revision number cannot be empty")

    def as_dict(self) -> dict[str, Any]:
        return {
            "scmRevisionNumber": self.revision_number,
            "scmAuthor": self.author,
            "scmCommitLog": self.message,
            "scmCommitTimestamp": self.commit_timestamp,
            "scmUrl": self.url,
            "scmBranch": self.branch,
            "numberOfChanges": self.changed_file_count,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Commit":
        return cls(
            revision_number=str(payload["scmRevisionNumber"]),
            author=payload.get("scmAuthor"),
            message=payload.get("scmCommitLog"),
            commit_timestamp=int(payload.get("scmCommitTimestamp") or 0),
            url=payload.get("scmUrl"),
            branch=payload.get("scmBranch"),
            changed_file_count=int(payload.get("numberOfChanges") or 0),
        )


@dataclass(frozen=True)
class PipelineCommit:
    """A commit annotated with the instant it was observed as built.

    ``timestamp == 0`` means the commit has not been attributed to a build.
    """

    commit: Commit
    timestamp: int = 0

    @property
    def revision_number(self) -> str:
        return self.commit.revision_number

    @property
    def commit_timestamp(self) -> int:
        return self.commit.commit_timestamp

    def with_build_timestamp(self, timestamp: int) -> "PipelineCommit":
        """Return a copy stamped with an inferred build timestamp."""
        return replace(self, timestamp=timestamp)

    def as_dict(self) -> dict[str, Any]:
        payload = self.commit.as_dict()
        payload["timestamp"] = self.timestamp
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PipelineCommit":
        return cls(
            commit=Commit.from_dict(payload),
            timestamp=int(payload.get("timestamp") or 0),
        )
