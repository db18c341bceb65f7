"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

End-to-end tests for one collection pass against a fake TeamCity server.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from teamcity_collector.clients.teamcity_client import TeamcityClient
from teamcity_collector.collector import (CollectionRun,
                                          discover_configurations)
from teamcity_collector.config import CollectorSettings, ServerSettings
from teamcity_collector.models import OutcomeStatus, PipelineStage
from teamcity_collector.storage.memory import InMemoryStores


def _millis(hour: int, minute: int) -> int:
    return int(datetime(2024, 1, 15, hour, minute, tzinfo=timezone.utc).timestamp()) * 1000


def _snapshot(base: str) -> Dict[str, Any]:
    def commit(revision: str, ts: int) -> Dict[str, Any]:
        return {"scmRevisionNumber": revision, "scmCommitTimestamp": ts}

    return {
        "commits": [commit("a1", 100), commit("b2", 200), commit("c3", 300)],
        "collectors": [
            {"id": "teamcity", "collectorType": "Build"},
            {"id": "product", "collectorType": "Product"},
        ],
        "collectorItems": [
            {
                "id": "job-1",
                "collectorId": "teamcity",
                "options": {
                    "instanceUrl": base,
                    "jobName": "Root_Build",
                    "projectId": "Root",
                },
            },
            {"id": "prod-1", "collectorId": "product", "options": {"dashboardId": "d1"}},
        ],
        "components": [{"id": "c1", "buildCollectorItemIds": ["job-1"]}],
        "dashboards": [{"id": "d1", "applicationComponentIds": ["c1"]}],
        "pipelines": [
            {
                "collectorItemId": "prod-1",
                "environmentStageMap": {
                    "Commit": {
                        "commits": [commit("a1", 100), commit("b2", 200), commit("c3", 300)]
                    }
                },
            }
        ],
    }


def _serve_tree(base: str, session: Any) -> None:
    session.add(
        f"{base}/app/rest/projects/id:Root",
        {
            "id": "Root",
            "buildTypes": {
                "buildType": [
                    {"id": "Root_Build", "name": "Build", "projectId": "Root"},
                    {"id": "Root_Deploy", "name": "Deploy", "projectId": "Root"},
                    {"id": "Root_Lint", "name": "Lint", "projectId": "Root"},
                ]
            },
        },
    )
    session.add(f"{base}/app/rest/buildTypes/id:Root_Build", {"id": "Root_Build"})
    session.add(f"{base}/app/rest/buildTypes/id:Root_Lint", {"id": "Root_Lint"})
    session.add(
        f"{base}/app/rest/buildTypes/id:Root_Deploy",
        {
            "id": "Root_Deploy",
            "settings": {
                "property": [{"name": "buildConfigurationType", "value": "DEPLOYMENT"}]
            },
        },
    )
    page = f"{base}/app/rest/builds?locator=buildType:Root_Build,count:100"
    session.add(f"{page},start:0", {"build": [{"id": "2"}, {"id": "1"}, {"id": "3"}]})
    session.add(f"{page},start:100", {"build": []})
    lint_page = f"{base}/app/rest/builds?locator=buildType:Root_Lint,count:100"
    session.add(f"{lint_page},start:0", {"build": []})
    for build_id, revision, finish in (("1", "a1", "104000"), ("2", "b2", "114000")):
        session.add(
            f"{base}/app/rest/builds/id:{build_id}",
            {
                "id": build_id,
                "state": "finished",
                "status": "SUCCESS",
                "startDate": "20240115T100000+0000",
                "finishDate": f"20240115T{finish}+0000",
                "revisions": {"revision": [{"version": revision}]},
            },
        )
    session.add(f"{base}/app/rest/builds/id:3", {"id": "3", "state": "running"})


@pytest.fixture
def base(teamcity_client: TeamcityClient, routing_session: Any) -> str:
    _serve_tree(teamcity_client.instance_url, routing_session)
    return teamcity_client.instance_url


def _run(
    base: str,
    stores: InMemoryStores,
    client: TeamcityClient,
    **settings: Any,
) -> CollectionRun:
    config = CollectorSettings(
        servers=(ServerSettings(url=base, project_ids=("Root",)),), **settings
    )
    return CollectionRun(
        config, stores, client_factory=lambda server, s, session=None: client
    )


def _build_stage(stores: InMemoryStores) -> List[tuple]:
    pipeline = stores.pipelines.find_by_collector_item_id("prod-1")
    assert pipeline is not None
    stage = pipeline.stage(PipelineStage.BUILD)
    assert stage is not None
    return [(commit.revision_number, commit.timestamp) for commit in stage.commits]


@pytest.mark.parametrize("workers", [1, 4])
def test_collection_run_reconciles_pipelines(
    base: str, teamcity_client: TeamcityClient, workers: int
) -> None:
    """
    test_collection_run_reconciles_pipelines: Function description.
    :param base:
    :param teamcity_client:
    :param workers:
    :returns:
    """

    stores = InMemoryStores.from_snapshot(_snapshot(base))

    summary = _run(base, stores, teamcity_client, detail_workers=workers).run()

    assert summary.configurations == 2
    assert summary.new_builds == 2
    assert [o.subject for o in summary.skipped] == [f"{base}/app/rest/builds/id:3"]
    assert [(o.subject, o.status) for o in summary.pipelines] == [
        ("prod-1", OutcomeStatus.SUCCESS)
    ]
    assert _build_stage(stores) == [("b2", _millis(11, 40)), ("a1", _millis(10, 40))]
    assert stores.builds.find_by_collector_item_and_number("job-1", "2") is not None


def test_second_run_skips_stored_builds(
    base: str, teamcity_client: TeamcityClient, routing_session: Any
) -> None:
    stores = InMemoryStores.from_snapshot(_snapshot(base))
    _run(base, stores, teamcity_client).run()
    first = _build_stage(stores)
    calls_before = len(routing_session.calls)

    summary = _run(base, stores, teamcity_client).run()

    new_calls = routing_session.called_urls()[calls_before:]
    assert summary.new_builds == 0
    assert summary.pipelines == []
    assert not any(url.endswith("/id:1") or url.endswith("/id:2") for url in new_calls)
    assert _build_stage(stores) == first


def test_new_configurations_get_collector_items(
    base: str, teamcity_client: TeamcityClient
) -> None:
    stores = InMemoryStores.from_snapshot(_snapshot(base))

    _run(base, stores, teamcity_client).run()

    items = stores.collector_items.find_by_collector_id_in(["teamcity"])
    lint = [item for item in items if item.option("jobName") == "Root_Lint"]
    assert len(lint) == 1
    assert lint[0].option("projectId") == "Root"
    assert lint[0].option("instanceUrl") == base
    assert not any(item.option("jobName") == "Root_Deploy" for item in items)


def test_cancelled_run_does_no_work(
    base: str, teamcity_client: TeamcityClient, routing_session: Any
) -> None:
    stores = InMemoryStores.from_snapshot(_snapshot(base))
    run = _run(base, stores, teamcity_client)

    run.cancel()
    summary = run.run()

    assert summary.cancelled
    assert routing_session.calls == []


def test_discover_configurations_lists_records(
    base: str, teamcity_client: TeamcityClient
) -> None:
    settings = CollectorSettings(
        servers=(
            ServerSettings(url=base, project_ids=("Root",), nice_name="main"),
            ServerSettings(url="http://other.example.com", project_ids=("X",)),
        )
    )

    records = discover_configurations(
        settings,
        server_url=base,
        client_factory=lambda server, s, session=None: teamcity_client,
    )

    assert [record["id"] for record in records] == ["Root_Build", "Root_Lint"]
    assert records[0]["server"] == "main"
    assert records[0]["rootProjectId"] == "Root"
