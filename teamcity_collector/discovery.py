"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Recursive discovery of build configurations below TeamCity root projects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Set

from teamcity_collector.clients.teamcity_client import TeamcityClient
from teamcity_collector.config import (DEFAULT_FOLDER_DEPTH,
                                       DEPLOYMENT_PROPERTY, DEPLOYMENT_VALUE)
from teamcity_collector.models import (BuildConfiguration, Outcome,
                                       ProjectNode)
from teamcity_collector.payloads import ProjectPayload

_LOGGER = logging.getLogger(__name__)


class DeploymentFlagFallback(str, Enum):
    """What to do with a configuration whose settings cannot be read."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


FAIL_OPEN_TO_INCLUSION = DeploymentFlagFallback.INCLUDE


@dataclass
class DiscoveryReport:
    """Accumulator threaded through one discovery walk."""

    root_project_id: str
    configurations: List[BuildConfiguration] = field(default_factory=list)
    excluded_deployments: List[BuildConfiguration] = field(
        default_factory=list
    )
    skipped: List[Outcome[ProjectNode]] = field(default_factory=list)
    visited: Set[str] = field(default_factory=set)

    def has_configuration(self, configuration_id: str) -> bool:
        known = self.configurations + self.excluded_deployments
        return any(
            configuration.id == configuration_id for configuration in known
        )


class ProjectDiscovery:
    """Walk a project tree and collect its non-deployment build types.

    Every project id is visited at most once and nesting deeper than
    ``max_depth`` below the root is not followed, so cyclic or runaway
    hierarchies terminate. A failing branch is recorded in the report and
    its siblings are still walked.
    """

    def __init__(
        self,
        client: TeamcityClient,
        *,
        max_depth: int = DEFAULT_FOLDER_DEPTH,
        deployment_fallback: DeploymentFlagFallback = FAIL_OPEN_TO_INCLUSION,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        self._client = client
        self._max_depth = max_depth
        self._deployment_fallback = deployment_fallback
        self._logger = logger or _LOGGER

    def discover(self, root_project_id: str) -> List[BuildConfiguration]:
        return self.walk(root_project_id).configurations

    def walk(self, root_project_id: str) -> DiscoveryReport:
        report = DiscoveryReport(root_project_id=root_project_id)
        self._visit(root_project_id, 0, report)
        self._logger.info(
            "Discovered %d build configurations under %s (%d excluded, %d skipped)",
            len(report.configurations),
            root_project_id,
            len(report.excluded_deployments),
            len(report.skipped),
        )
        return report

    def is_deployment(self, build_type_id: str) -> bool:
        """Return True when the build type is flagged ``DEPLOYMENT``.

        Unreadable settings follow the configured fallback policy, which by
        default includes the configuration.
        """
        decoded = self._client.get_build_type_settings(build_type_id)
        if not decoded.ok or decoded.value is None:
            self._logger.warning(
                "Could not read settings for %s (%s); applying %s policy",
                build_type_id,
                decoded.error,
                self._deployment_fallback.value,
            )
            return self._deployment_fallback is DeploymentFlagFallback.EXCLUDE
        return decoded.value.get(DEPLOYMENT_PROPERTY) == DEPLOYMENT_VALUE

    def _visit(self, project_id: str, depth: int, report: DiscoveryReport) -> None:
        if project_id in report.visited:
            self._logger.debug("Project %s already visited", project_id)
            report.skipped.append(
                Outcome.skipped(project_id, "project already visited")
            )
            return
        if depth > self._max_depth:
            self._logger.warning(
                "Not descending into %s: depth %d exceeds folder depth %d",
                project_id,
                depth,
                self._max_depth,
            )
            report.skipped.append(
                Outcome.skipped(
                    project_id,
                    f"depth {depth} exceeds folder depth {self._max_depth}",
                )
            )
            return
        report.visited.add(project_id)

        decoded = self._client.get_project(project_id)
        if not decoded.ok or decoded.value is None:
            self._logger.error(
                "Skipping project %s: %s", project_id, decoded.error
            )
            report.skipped.append(
                Outcome.failed(project_id, decoded.error or "no payload")
            )
            return

        node = _to_node(decoded.value)
        if node.is_dead_end:
            return

        for configuration in node.build_configurations:
            self._collect(configuration, report)
        for sub_project_id in node.sub_project_ids:
            self._visit(sub_project_id, depth + 1, report)

    def _collect(
        self, configuration: BuildConfiguration, report: DiscoveryReport
    ) -> None:
        if report.has_configuration(configuration.id):
            return
        if self.is_deployment(configuration.id):
            self._logger.info(
                "Excluding deployment configuration %s", configuration.id
            )
            report.excluded_deployments.append(
                replace(configuration, is_deployment=True)
            )
            return
        report.configurations.append(configuration)


def _to_node(payload: ProjectPayload) -> ProjectNode:
    return ProjectNode(
        id=payload.id,
        sub_project_ids=tuple(payload.sub_project_ids),
        build_configurations=tuple(
            BuildConfiguration(
                id=ref.id,
                web_url=ref.web_url,
                project_id=ref.project_id or payload.id,
                name=ref.name,
            )
            for ref in payload.build_types
        ),
    )
