"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Typed result returned by collection steps instead of log-only diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one unit of work (a branch, a build, a pipeline).

    ``subject`` names the unit (project id, build url, collector item id)
    and ``reason`` explains skips and failures.
    """

    status: OutcomeStatus
    subject: str
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, subject: str, value: T) -> "Outcome[T]":
        return cls(OutcomeStatus.SUCCESS, subject, value=value)

    @classmethod
    def skipped(cls, subject: str, reason: str) -> "Outcome[T]":
        return cls(OutcomeStatus.SKIPPED, subject, reason=reason)

    @classmethod
    def failed(cls, subject: str, reason: str) -> "Outcome[T]":
        return cls(OutcomeStatus.FAILED, subject, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "subject": self.subject,
            "status": self.status.value,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload
