"""Dashboard, component and collector records read during reconciliation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence


class CollectorType(str, Enum):
    """Collector categories known to the dashboard."""

    BUILD = "Build"
    SCM = "SCM"
    PRODUCT = "Product"


def new_id() -> str:
    """Generate a document id for records created by the collector."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Collector:
    id: str
    name: str
    collector_type: CollectorType


@dataclass(frozen=True)
class CollectorItem:
    """A tracked external entity, e.g. a TeamCity job or a product tracker."""

    id: str
    collector_id: str
    options: Mapping[str, Any] = field(default_factory=dict)
    description: Optional[str] = None

    def option(self, key: str) -> Optional[str]:
        value = self.options.get(key)
        if value is None:
            return None
        return str(value)


@dataclass(frozen=True)
class Component:
    id: str
    name: Optional[str] = None
    build_collector_item_ids: Sequence[str] = ()


@dataclass(frozen=True)
class Dashboard:
    id: str
    title: Optional[str] = None
    application_component_ids: Sequence[str] = ()
