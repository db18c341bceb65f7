"""In-memory repository implementations for local runs and tests."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import (Any, Dict, Iterable, List, Mapping, Optional, Sequence,
                    Tuple, Union)

from teamcity_collector.models import (Build, Collector, CollectorItem,
                                       CollectorType, Commit, Component,
                                       Dashboard, Pipeline)

from .base import (BuildRepository, CollectorItemRepository,
                   CollectorRepository, CommitRepository, ComponentRepository,
                   DashboardRepository, PipelineRepository)
from .errors import ValidationError


class InMemoryCommitRepository(CommitRepository):
    """Revision-keyed commit store."""

    def __init__(self, commits: Iterable[Commit] = ()) -> None:
        self._commits: Dict[str, Commit] = {}
        for commit in commits:
            self.add(commit)

    def add(self, commit: Commit) -> None:
        self._commits.setdefault(commit.revision_number, commit)

    def find_by_revision(self, revision: str) -> Optional[Commit]:
        return self._commits.get(revision)


class InMemoryCollectorRepository(CollectorRepository):
    def __init__(self, collectors: Iterable[Collector] = ()) -> None:
        self._collectors: Dict[str, Collector] = {
            collector.id: collector for collector in collectors
        }

    def find_by_collector_type(
        self, collector_type: CollectorType
    ) -> Sequence[Collector]:
        return [
            collector
            for collector in self._collectors.values()
            if collector.collector_type is collector_type
        ]


class InMemoryCollectorItemRepository(CollectorItemRepository):
    def __init__(self, items: Iterable[CollectorItem] = ()) -> None:
        self._items: Dict[str, CollectorItem] = {}
        for item in items:
            self.save(item)

    def find_by_collector_id_in(
        self, collector_ids: Iterable[str]
    ) -> Sequence[CollectorItem]:
        wanted = set(collector_ids)
        return [
            item for item in self._items.values()
            if item.collector_id in wanted
        ]

    def save(self, item: CollectorItem) -> CollectorItem:
        if not item.id:
            raise ValidationError("collector item id must be provided")
        self._items[item.id] = item
        return item


class InMemoryComponentRepository(ComponentRepository):
    def __init__(self, components: Iterable[Component] = ()) -> None:
        self._components: List[Component] = list(components)

    def find_by_build_collector_item_id(
        self, collector_item_id: str
    ) -> Sequence[Component]:
        return [
            component for component in self._components
            if collector_item_id in component.build_collector_item_ids
        ]


class InMemoryDashboardRepository(DashboardRepository):
    def __init__(self, dashboards: Iterable[Dashboard] = ()) -> None:
        self._dashboards: List[Dashboard] = list(dashboards)

    def find_by_application_component_ids_in(
        self, component_ids: Iterable[str]
    ) -> Sequence[Dashboard]:
        wanted = set(component_ids)
        return [
            dashboard for dashboard in self._dashboards
            if wanted.intersection(dashboard.application_component_ids)
        ]


class InMemoryPipelineRepository(PipelineRepository):
    """Stores pipeline documents, so saved aggregates never alias callers."""

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {}
        self.save_count = 0

    def find_by_collector_item_id(
        self, collector_item_id: str
    ) -> Optional[Pipeline]:
        document = self._documents.get(collector_item_id)
        if document is None:
            return None
        return Pipeline.from_document(document)

    def save(self, pipeline: Pipeline) -> Pipeline:
        self._documents[pipeline.collector_item_id] = json.loads(
            json.dumps(pipeline.to_document())
        )
        self.save_count += 1
        return pipeline

    def all(self) -> List[Pipeline]:
        return [
            Pipeline.from_document(document)
            for document in self._documents.values()
        ]


class InMemoryBuildRepository(BuildRepository):
    def __init__(self) -> None:
        self._builds: Dict[Tuple[str, str], Build] = {}

    def find_by_collector_item_and_number(
        self, collector_item_id: str, number: str
    ) -> Optional[Build]:
        return self._builds.get((collector_item_id, number))

    def save(self, collector_item_id: str, build: Build) -> Build:
        self._builds[(collector_item_id, build.number)] = build
        return build

    def __len__(self) -> int:
        return len(self._builds)


@dataclass
class InMemoryStores:
    """Every repository the collector needs, backed by memory."""

    commits: InMemoryCommitRepository = field(
        default_factory=InMemoryCommitRepository
    )
    collectors: InMemoryCollectorRepository = field(
        default_factory=InMemoryCollectorRepository
    )
    collector_items: InMemoryCollectorItemRepository = field(
        default_factory=InMemoryCollectorItemRepository
    )
    components: InMemoryComponentRepository = field(
        default_factory=InMemoryComponentRepository
    )
    dashboards: InMemoryDashboardRepository = field(
        default_factory=InMemoryDashboardRepository
    )
    pipelines: PipelineRepository = field(
        default_factory=InMemoryPipelineRepository
    )
    builds: BuildRepository = field(default_factory=InMemoryBuildRepository)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Mapping[str, Any],
        *,
        pipelines: Optional[PipelineRepository] = None,
    ) -> "InMemoryStores":
        """Seed the stores from a JSON-style snapshot mapping.

        Pipelines listed in the snapshot are written to ``pipelines`` (an
        in-memory repository unless another one is supplied).
        """
        try:
            stores = cls(
                commits=InMemoryCommitRepository(
                    Commit.from_dict(item)
                    for item in snapshot.get("commits", [])
                ),
                collectors=InMemoryCollectorRepository(
                    Collector(
                        id=str(item["id"]),
                        name=str(item.get("name", item["id"])),
                        collector_type=CollectorType(item["collectorType"]),
                    )
                    for item in snapshot.get("collectors", [])
                ),
                collector_items=InMemoryCollectorItemRepository(
                    CollectorItem(
                        id=str(item["id"]),
                        collector_id=str(item["collectorId"]),
                        options=dict(item.get("options") or {}),
                        description=item.get("description"),
                    )
                    for item in snapshot.get("collectorItems", [])
                ),
                components=InMemoryComponentRepository(
                    Component(
                        id=str(item["id"]),
                        name=item.get("name"),
                        build_collector_item_ids=tuple(
                            str(value)
                            for value in item.get("buildCollectorItemIds", [])
                        ),
                    )
                    for item in snapshot.get("components", [])
                ),
                dashboards=InMemoryDashboardRepository(
                    Dashboard(
                        id=str(item["id"]),
                        title=item.get("title"),
                        application_component_ids=tuple(
                            str(value)
                            for value in item.get("applicationComponentIds", [])
                        ),
                    )
                    for item in snapshot.get("dashboards", [])
                ),
                pipelines=pipelines or InMemoryPipelineRepository(),
            )
            for document in snapshot.get("pipelines", []):
                stores.pipelines.save(Pipeline.from_document(document))
        except (KeyError, TypeError, ValueError) as error:
            raise ValidationError(f"Invalid snapshot: {error}") from error
        return stores


def load_snapshot(
    path: Union[str, Path],
    *,
    pipelines: Optional[PipelineRepository] = None,
) -> InMemoryStores:
    """Read a JSON snapshot file and build in-memory stores from it."""
    snapshot_path = Path(path)
    try:
        with snapshot_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except json.JSONDecodeError as error:
        raise ValidationError(
            f"Snapshot {snapshot_path} is not valid JSON: {error}"
        ) from error
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Snapshot {snapshot_path} must be a JSON object")
    return InMemoryStores.from_snapshot(payload, pipelines=pipelines)
