"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

One collection pass over every configured TeamCity server.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from teamcity_collector.builds import BuildFetcher
from teamcity_collector.clients.base_client import _SessionWithGet
from teamcity_collector.clients.teamcity_client import TeamcityClient
from teamcity_collector.config import CollectorSettings, ServerSettings
from teamcity_collector.discovery import ProjectDiscovery
from teamcity_collector.models import (Build, BuildConfiguration,
                                       BuildSummary, CollectorItem, Outcome,
                                       OutcomeStatus, Pipeline,
                                       PipelineCommit, new_id)
from teamcity_collector.reconciler import PipelineReconciler
from teamcity_collector.storage.memory import InMemoryStores

_LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[..., TeamcityClient]


@dataclass
class RunSummary:
    """What one collection pass did."""

    configurations: int = 0
    new_builds: int = 0
    skipped: List[Outcome[Any]] = field(default_factory=list)
    failures: List[Outcome[Any]] = field(default_factory=list)
    pipelines: List[Outcome[Pipeline]] = field(default_factory=list)
    cancelled: bool = False

    def record(self, outcome: Outcome[Any]) -> None:
        if outcome.status is OutcomeStatus.FAILED:
            self.failures.append(outcome)
        elif outcome.status is OutcomeStatus.SKIPPED:
            self.skipped.append(outcome)


class CollectionRun:
    """Discover, fetch and reconcile for every server and root project.

    Units of work (a root project, a build configuration, a pipeline) are
    self-contained, so :meth:`cancel` stops the run between units without
    leaving partial records behind.
    """

    def __init__(
        self,
        settings: CollectorSettings,
        stores: InMemoryStores,
        *,
        client_factory: ClientFactory = TeamcityClient.for_server,
        session: Optional[_SessionWithGet] = None,
    ) -> None:
        self._settings = settings
        self._stores = stores
        self._client_factory = client_factory
        self._session = session
        self._cancelled = threading.Event()
        self._reconciler = PipelineReconciler(
            stores.collectors,
            stores.collector_items,
            stores.components,
            stores.dashboards,
            stores.pipelines,
        )

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> RunSummary:
        summary = RunSummary()
        for server in self._settings.servers:
            if self.cancelled:
                break
            client = self._client_factory(
                server, self._settings, session=self._session
            )
            for root_project_id in server.project_ids:
                if self.cancelled:
                    break
                self._collect_project(client, server, root_project_id, summary)
        summary.cancelled = self.cancelled
        _LOGGER.info(
            "Collection finished: %d configurations, %d new builds, "
            "%d pipelines, %d failures",
            summary.configurations,
            summary.new_builds,
            len(summary.pipelines),
            len(summary.failures),
        )
        return summary

    def _collect_project(
        self,
        client: TeamcityClient,
        server: ServerSettings,
        root_project_id: str,
        summary: RunSummary,
    ) -> None:
        discovery = ProjectDiscovery(
            client, max_depth=self._settings.folder_depth
        )
        report = discovery.walk(root_project_id)
        for outcome in report.skipped:
            summary.record(outcome)
        summary.configurations += len(report.configurations)

        fetcher = BuildFetcher(
            client, self._stores.commits, page_size=self._settings.page_size
        )
        build_stage_commits: List[PipelineCommit] = []
        for configuration in report.configurations:
            if self.cancelled:
                return
            item = self._ensure_collector_item(
                server, root_project_id, configuration
            )
            for build in self._collect_builds(fetcher, item, summary):
                build_stage_commits.extend(
                    PipelineCommit(commit, build.end_time)
                    for commit in build.source_change_set
                )

        if self.cancelled:
            return
        summary.pipelines.extend(
            self._reconciler.reconcile(
                build_stage_commits,
                self._settings.collector_id,
                root_project_id,
            )
        )

    def _ensure_collector_item(
        self,
        server: ServerSettings,
        root_project_id: str,
        configuration: BuildConfiguration,
    ) -> CollectorItem:
        repository = self._stores.collector_items
        for item in repository.find_by_collector_id_in(
            [self._settings.collector_id]
        ):
            if (
                item.option("instanceUrl") == server.url
                and item.option("jobName") == configuration.id
            ):
                return item
        item = CollectorItem(
            id=new_id(),
            collector_id=self._settings.collector_id,
            options={
                "instanceUrl": server.url,
                "jobName": configuration.id,
                "jobUrl": configuration.web_url,
                "projectId": root_project_id,
            },
            description=configuration.name or configuration.id,
        )
        _LOGGER.info("New build job %s on %s", configuration.id, server.url)
        return repository.save(item)

    def _collect_builds(
        self,
        fetcher: BuildFetcher,
        item: CollectorItem,
        summary: RunSummary,
    ) -> List[Build]:
        job_name = item.option("jobName") or item.id
        pending: List[BuildSummary] = [
            build
            for build in fetcher.list_builds(job_name)
            if self._stores.builds.find_by_collector_item_and_number(
                item.id, build.number
            ) is None
        ]
        outcomes = self._fetch_details(fetcher, pending)

        saved: List[Build] = []
        for outcome in outcomes:
            if not outcome.ok or outcome.value is None:
                summary.record(outcome)
                continue
            saved.append(self._stores.builds.save(item.id, outcome.value))
        summary.new_builds += len(saved)
        return saved

    def _fetch_details(
        self, fetcher: BuildFetcher, pending: Sequence[BuildSummary]
    ) -> List[Outcome[Build]]:
        workers = self._settings.detail_workers
        if workers <= 1 or len(pending) <= 1:
            return [fetcher.fetch_build_detail(build.build_url) for build in pending]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: List[Future[Outcome[Build]]] = [
                executor.submit(fetcher.fetch_build_detail, build.build_url)
                for build in pending
            ]
        return [future.result() for future in futures]


def discover_configurations(
    settings: CollectorSettings,
    *,
    server_url: Optional[str] = None,
    client_factory: ClientFactory = TeamcityClient.for_server,
    session: Optional[_SessionWithGet] = None,
) -> List[Dict[str, Any]]:
    """List the configurations each root project would collect from."""
    records: List[Dict[str, Any]] = []
    for server in settings.servers:
        if server_url is not None and server.url != server_url:
            continue
        client = client_factory(server, settings, session=session)
        discovery = ProjectDiscovery(client, max_depth=settings.folder_depth)
        for root_project_id in server.project_ids:
            for configuration in discovery.discover(root_project_id):
                records.append(
                    {
                        "server": server.nice_name or server.url,
                        "rootProjectId": root_project_id,
                        "id": configuration.id,
                        "name": configuration.name,
                        "projectId": configuration.project_id,
                        "webUrl": configuration.web_url,
                    }
                )
    return records
