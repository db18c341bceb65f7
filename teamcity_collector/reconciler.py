"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Merge commits observed at the build stage into product pipelines.

Build-stage commits arrive per source project. Each pipeline that tracks a
dashboard fed by that project gets its "Build" stage recomputed from its
"Commit" stage: commits with a matching build keep that build's timestamp,
older unmatched commits inherit the timestamp of the newest build seen so
far, and commits newer than every known build are left out.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set

from teamcity_collector.models import (CollectorItem, CollectorType,
                                       Outcome, Pipeline, PipelineCommit,
                                       PipelineStage)
from teamcity_collector.storage.base import (CollectorItemRepository,
                                             CollectorRepository,
                                             ComponentRepository,
                                             DashboardRepository,
                                             PipelineRepository)
from teamcity_collector.storage.errors import RepositoryError

_LOGGER = logging.getLogger(__name__)

PROJECT_ID_OPTION = "projectId"
DASHBOARD_ID_OPTION = "dashboardId"


def merge_build_stage(
    commit_stage: Sequence[PipelineCommit],
    built: Dict[str, PipelineCommit],
) -> List[PipelineCommit]:
    """Return the Build stage commits, newest build first.

    ``built`` maps revision numbers to commits already attributed to a
    build. ``commit_stage`` is not modified.
    """
    newest_first = sorted(
        commit_stage, key=lambda commit: commit.commit_timestamp, reverse=True
    )
    accepted: List[PipelineCommit] = []
    last_build_timestamp = 0
    for commit in newest_first:
        match = built.get(commit.revision_number)
        if match is not None:
            accepted.append(match)
            last_build_timestamp = match.timestamp
        elif last_build_timestamp == 0:
            # Newer than any known build.
            continue
        else:
            accepted.append(commit.with_build_timestamp(last_build_timestamp))
    accepted.sort(key=lambda commit: commit.timestamp, reverse=True)
    return accepted


class PipelineReconciler:
    """Apply a batch of build-stage commits to every affected pipeline."""

    def __init__(
        self,
        collectors: CollectorRepository,
        collector_items: CollectorItemRepository,
        components: ComponentRepository,
        dashboards: DashboardRepository,
        pipelines: PipelineRepository,
    ) -> None:
        self._collectors = collectors
        self._collector_items = collector_items
        self._components = components
        self._dashboards = dashboards
        self._pipelines = pipelines

    def reconcile(
        self,
        build_stage_commits: Sequence[PipelineCommit],
        source_collector_id: str,
        source_project_id: str,
    ) -> List[Outcome[Pipeline]]:
        """Update the Build stage of each pipeline fed by the source project.

        Returns one outcome per product collector item that was considered.
        A failure on one pipeline is reported in its outcome and does not
        stop the others.
        """
        if not build_stage_commits:
            return []

        dashboard_ids = self._dashboard_ids_for(
            source_collector_id, source_project_id
        )
        if not dashboard_ids:
            _LOGGER.debug(
                "No dashboards reference project %s of collector %s",
                source_project_id,
                source_collector_id,
            )
            return []

        outcomes: List[Outcome[Pipeline]] = []
        for item in self._product_items():
            if item.option(DASHBOARD_ID_OPTION) not in dashboard_ids:
                continue
            outcomes.append(self._reconcile_item(item, build_stage_commits))
        return outcomes

    def _dashboard_ids_for(
        self, collector_id: str, project_id: str
    ) -> Set[str]:
        source_item = self._source_item(collector_id, project_id)
        if source_item is None:
            return set()
        component_ids = [
            component.id
            for component in self._components.find_by_build_collector_item_id(
                source_item.id
            )
        ]
        if not component_ids:
            return set()
        return {
            dashboard.id
            for dashboard in self._dashboards.find_by_application_component_ids_in(
                component_ids
            )
        }

    def _source_item(
        self, collector_id: str, project_id: str
    ) -> Optional[CollectorItem]:
        for item in self._collector_items.find_by_collector_id_in([collector_id]):
            if item.option(PROJECT_ID_OPTION) == project_id:
                return item
        return None

    def _product_items(self) -> List[CollectorItem]:
        collector_ids = [
            collector.id
            for collector in self._collectors.find_by_collector_type(
                CollectorType.PRODUCT
            )
        ]
        if not collector_ids:
            return []
        return list(self._collector_items.find_by_collector_id_in(collector_ids))

    def _reconcile_item(
        self,
        item: CollectorItem,
        build_stage_commits: Sequence[PipelineCommit],
    ) -> Outcome[Pipeline]:
        try:
            pipeline = self._pipelines.find_by_collector_item_id(item.id)
            if pipeline is None:
                pipeline = Pipeline(collector_item_id=item.id)

            commit_stage = pipeline.stage(PipelineStage.COMMIT)
            if not commit_stage:
                _LOGGER.warning(
                    "Cannot populate build stage of pipeline %s: no commits "
                    "in its Commit stage; has the SCM collector run yet?",
                    item.id,
                )
                return Outcome.skipped(item.id, "commit stage is empty")

            build_stage = pipeline.get_or_create_stage(PipelineStage.BUILD)
            built: Dict[str, PipelineCommit] = {
                commit.revision_number: commit for commit in build_stage.commits
            }
            for commit in build_stage_commits:
                built[commit.revision_number] = commit

            merged = merge_build_stage(commit_stage.commits, built)
            build_stage.replace_commits(merged)
            _LOGGER.info(
                "Added %d pipeline commits to build stage of %s",
                len(build_stage),
                item.id,
            )
            self._pipelines.save(pipeline)
        except RepositoryError as error:
            _LOGGER.error("Failed to reconcile pipeline %s: %s", item.id, error)
            return Outcome.failed(item.id, str(error))
        return Outcome.success(item.id, pipeline)
