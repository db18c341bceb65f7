"""Abstract repository interfaces for the collector's collaborators."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from teamcity_collector.models import (Build, Collector, CollectorItem,
                                       CollectorType, Commit, Component,
                                       Dashboard, Pipeline)


class CommitRepository(Protocol):
    """Commits recorded by the SCM collector."""

    def find_by_revision(self, revision: str) -> Optional[Commit]:
        """Return the commit with ``revision`` or None."""


class CollectorRepository(Protocol):
    def find_by_collector_type(
        self, collector_type: CollectorType
    ) -> Sequence[Collector]:
        """Return every collector of the given type."""


class CollectorItemRepository(Protocol):
    def find_by_collector_id_in(
        self, collector_ids: Iterable[str]
    ) -> Sequence[CollectorItem]:
        """Return collector items owned by any of ``collector_ids``."""

    def save(self, item: CollectorItem) -> CollectorItem:
        """Create or replace a collector item."""


class ComponentRepository(Protocol):
    def find_by_build_collector_item_id(
        self, collector_item_id: str
    ) -> Sequence[Component]:
        """Return components referencing the build collector item."""


class DashboardRepository(Protocol):
    def find_by_application_component_ids_in(
        self, component_ids: Iterable[str]
    ) -> Sequence[Dashboard]:
        """Return dashboards whose application uses any of the components."""


class PipelineRepository(Protocol):
    """Whole-document store of pipeline aggregates."""

    def find_by_collector_item_id(
        self, collector_item_id: str
    ) -> Optional[Pipeline]:
        """Return the pipeline or None when it has not been created yet."""

    def save(self, pipeline: Pipeline) -> Pipeline:
        """Replace the stored pipeline document."""


class BuildRepository(Protocol):
    """Builds already materialized, keyed by (collector item, number)."""

    def find_by_collector_item_and_number(
        self, collector_item_id: str, number: str
    ) -> Optional[Build]:
        """Return the stored build or None."""

    def save(self, collector_item_id: str, build: Build) -> Build:
        """Store a build for a collector item."""
