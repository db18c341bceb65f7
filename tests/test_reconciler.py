"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Tests for merging build-stage commits into product pipelines.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import pytest

from teamcity_collector.models import (Collector, CollectorItem,
                                       CollectorType, Commit, Component,
                                       Dashboard, EnvironmentStage,
                                       OutcomeStatus, Pipeline,
                                       PipelineCommit, PipelineStage)
from teamcity_collector.reconciler import PipelineReconciler, merge_build_stage
from teamcity_collector.storage.errors import PipelineStoreError
from teamcity_collector.storage.memory import (InMemoryCollectorItemRepository,
                                               InMemoryCollectorRepository,
                                               InMemoryComponentRepository,
                                               InMemoryDashboardRepository,
                                               InMemoryPipelineRepository)


class RecordingPipelineRepository(InMemoryPipelineRepository):
    def __init__(self, failing: Sequence[str] = ()) -> None:
        super().__init__()
        self.finds: List[str] = []
        self._failing = set(failing)

    def find_by_collector_item_id(self, collector_item_id: str) -> Optional[Pipeline]:
        self.finds.append(collector_item_id)
        return super().find_by_collector_item_id(collector_item_id)

    def save(self, pipeline: Pipeline) -> Pipeline:
        if pipeline.collector_item_id in self._failing:
            raise PipelineStoreError("disk full")
        return super().save(pipeline)


def _commit(revision: str, commit_ts: int, build_ts: int = 0) -> PipelineCommit:
    return PipelineCommit(
        Commit(revision_number=revision, commit_timestamp=commit_ts), build_ts
    )


def _pairs(commits: Sequence[PipelineCommit]) -> List[Tuple[str, int]]:
    return [(commit.revision_number, commit.timestamp) for commit in commits]


def _pipeline(item_id: str, commit_stage: Sequence[PipelineCommit]) -> Pipeline:
    pipeline = Pipeline(collector_item_id=item_id)
    pipeline.environment_stage_map[PipelineStage.COMMIT.value] = EnvironmentStage(
        commit_stage
    )
    return pipeline


def _reconciler(
    pipelines: InMemoryPipelineRepository,
    product_items: Sequence[CollectorItem] = (),
) -> PipelineReconciler:
    collectors = InMemoryCollectorRepository(
        [
            Collector("teamcity", "TeamCity", CollectorType.BUILD),
            Collector("product", "Product", CollectorType.PRODUCT),
        ]
    )
    items = InMemoryCollectorItemRepository(
        [
            CollectorItem("other-job", "teamcity", {"projectId": "Other"}),
            CollectorItem("src-job", "teamcity", {"projectId": "Root"}),
            CollectorItem("prod-1", "product", {"dashboardId": "dash-1"}),
            CollectorItem("prod-elsewhere", "product", {"dashboardId": "dash-9"}),
            *product_items,
        ]
    )
    components = InMemoryComponentRepository(
        [Component("comp-1", "app", ("src-job",))]
    )
    dashboards = InMemoryDashboardRepository(
        [
            Dashboard("dash-1", "Team board", ("comp-1",)),
            Dashboard("dash-9", "Unrelated", ("comp-9",)),
        ]
    )
    return PipelineReconciler(collectors, items, components, dashboards, pipelines)


COMMIT_STAGE = [_commit("a1", 300), _commit("b2", 200), _commit("c3", 100)]


def _build_stage(pipelines: InMemoryPipelineRepository, item_id: str = "prod-1") -> List[PipelineCommit]:
    pipeline = pipelines.find_by_collector_item_id(item_id)
    assert pipeline is not None
    stage = pipeline.stage(PipelineStage.BUILD)
    assert stage is not None
    return stage.commits


def test_single_anchor_propagates_to_older_commits() -> None:
    """
    test_single_anchor_propagates_to_older_commits: Function description.
    :param:
    :returns:
    """

    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))

    outcomes = _reconciler(pipelines).reconcile(
        [_commit("a1", 300, 500)], "teamcity", "Root"
    )

    assert [(o.subject, o.status) for o in outcomes] == [
        ("prod-1", OutcomeStatus.SUCCESS)
    ]
    assert _pairs(_build_stage(pipelines)) == [("a1", 500), ("b2", 500), ("c3", 500)]


def test_two_anchors() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))

    _reconciler(pipelines).reconcile(
        [_commit("a1", 300, 500), _commit("c3", 100, 100)], "teamcity", "Root"
    )

    assert _pairs(_build_stage(pipelines)) == [("a1", 500), ("b2", 500), ("c3", 100)]


def test_commits_newer_than_any_build_are_discarded() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", [_commit("x", 300), _commit("y", 200)]))

    _reconciler(pipelines).reconcile([_commit("y", 200, 50)], "teamcity", "Root")

    assert _pairs(_build_stage(pipelines)) == [("y", 50)]


def test_commit_stage_order_does_not_matter_and_is_not_mutated() -> None:
    shuffled = [COMMIT_STAGE[2], COMMIT_STAGE[0], COMMIT_STAGE[1]]
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", shuffled))

    _reconciler(pipelines).reconcile([_commit("a1", 300, 500)], "teamcity", "Root")

    stored = pipelines.find_by_collector_item_id("prod-1")
    assert stored is not None
    commit_stage = stored.stage(PipelineStage.COMMIT)
    assert commit_stage is not None
    assert _pairs(commit_stage.commits) == [("c3", 0), ("a1", 0), ("b2", 0)]
    assert _pairs(_build_stage(pipelines)) == [("a1", 500), ("b2", 500), ("c3", 500)]


def test_build_stage_sorted_by_build_timestamp_descending() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))

    _reconciler(pipelines).reconcile(
        [_commit("a1", 300, 100), _commit("c3", 100, 900)], "teamcity", "Root"
    )

    timestamps = [commit.timestamp for commit in _build_stage(pipelines)]
    assert timestamps == sorted(timestamps, reverse=True)
    assert _pairs(_build_stage(pipelines)) == [("c3", 900), ("a1", 100), ("b2", 100)]


def test_previous_build_stage_is_merged_and_incoming_wins() -> None:
    pipelines = RecordingPipelineRepository()
    pipeline = _pipeline("prod-1", COMMIT_STAGE)
    pipeline.environment_stage_map[PipelineStage.BUILD.value] = EnvironmentStage(
        [_commit("a1", 300, 400), _commit("c3", 100, 150)]
    )
    pipelines.save(pipeline)

    _reconciler(pipelines).reconcile([_commit("a1", 300, 700)], "teamcity", "Root")

    assert _pairs(_build_stage(pipelines)) == [("a1", 700), ("b2", 700), ("c3", 150)]


def test_repeated_batches_are_stable() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))
    reconciler = _reconciler(pipelines)
    batch = [_commit("a1", 300, 500)]

    reconciler.reconcile(batch, "teamcity", "Root")
    first = _pairs(_build_stage(pipelines))
    reconciler.reconcile(batch, "teamcity", "Root")
    reconciler.reconcile([], "teamcity", "Root")

    assert _pairs(_build_stage(pipelines)) == first


def test_empty_batch_never_touches_the_store() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))
    saves_before = pipelines.save_count

    assert _reconciler(pipelines).reconcile([], "teamcity", "Root") == []
    assert pipelines.finds == []
    assert pipelines.save_count == saves_before


def test_unknown_source_project_updates_nothing() -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))

    assert _reconciler(pipelines).reconcile(
        [_commit("a1", 300, 500)], "teamcity", "Nope"
    ) == []
    assert _reconciler(pipelines).reconcile(
        [_commit("a1", 300, 500)], "teamcity", "Other"
    ) == []
    assert pipelines.finds == []


def test_missing_commit_stage_is_skipped_without_aborting(
    caplog: pytest.LogCaptureFixture,
) -> None:
    pipelines = RecordingPipelineRepository()
    pipelines.save(_pipeline("prod-1", COMMIT_STAGE))
    reconciler = _reconciler(
        pipelines,
        product_items=[CollectorItem("prod-new", "product", {"dashboardId": "dash-1"})],
    )

    with caplog.at_level(logging.WARNING, logger="teamcity_collector.reconciler"):
        outcomes = reconciler.reconcile([_commit("a1", 300, 500)], "teamcity", "Root")

    statuses = {o.subject: o.status for o in outcomes}
    assert statuses == {
        "prod-1": OutcomeStatus.SUCCESS,
        "prod-new": OutcomeStatus.SKIPPED,
    }
    assert pipelines.find_by_collector_item_id("prod-new") is None
    assert any("prod-new" in message for message in caplog.messages)


def test_store_failure_is_isolated_to_one_pipeline() -> None:
    pipelines = RecordingPipelineRepository(failing=["prod-1"])
    pipelines._documents["prod-1"] = _pipeline("prod-1", COMMIT_STAGE).to_document()
    pipelines.save(_pipeline("prod-2", COMMIT_STAGE))
    reconciler = _reconciler(
        pipelines,
        product_items=[CollectorItem("prod-2", "product", {"dashboardId": "dash-1"})],
    )

    outcomes = reconciler.reconcile([_commit("b2", 200, 600)], "teamcity", "Root")

    statuses = {o.subject: o.status for o in outcomes}
    assert statuses == {
        "prod-1": OutcomeStatus.FAILED,
        "prod-2": OutcomeStatus.SUCCESS,
    }
    assert _pairs(_build_stage(pipelines, "prod-2")) == [("b2", 600), ("c3", 600)]


def test_merge_build_stage_is_stable_for_equal_commit_timestamps() -> None:
    commit_stage = [_commit("first", 100), _commit("second", 100), _commit("old", 50)]

    merged = merge_build_stage(
        commit_stage, {"first": _commit("first", 100, 10)}
    )

    assert _pairs(merged) == [("first", 10), ("second", 10), ("old", 10)]
