"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Central configuration constants and environment-driven collector settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from teamcity_collector.utils.env import load_dotenv, read_int, split_csv

# Collection limits --------------------------------------------------------

BUILD_PAGE_SIZE = 100
"""Builds requested per page when listing a build configuration."""

DEFAULT_FOLDER_DEPTH = 10
"""Maximum project nesting followed by discovery."""

DEFAULT_CONNECT_TIMEOUT_MS = 20000
DEFAULT_READ_TIMEOUT_MS = 20000

DEFAULT_MAX_CALLS_PER_SECOND = 10
DEFAULT_DETAIL_WORKERS = 1

DEFAULT_COLLECTOR_ID = "teamcity"
"""Collector id under which TeamCity build collector items are stored."""

DEPLOYMENT_PROPERTY = "buildConfigurationType"
DEPLOYMENT_VALUE = "DEPLOYMENT"

PROJECT_LIST_SEPARATOR = "|"


class SettingsError(ValueError):
    """Raised when collector settings are missing or malformed."""


@dataclass(frozen=True)
class ServerSettings:
    """One TeamCity instance and the root projects to walk on it."""

    url: str
    api_key: Optional[str] = None
    project_ids: Sequence[str] = ()
    nice_name: Optional[str] = None


@dataclass(frozen=True)
class CollectorSettings:
    servers: Sequence[ServerSettings] = field(default_factory=tuple)
    folder_depth: int = DEFAULT_FOLDER_DEPTH
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    max_calls_per_second: int = DEFAULT_MAX_CALLS_PER_SECOND
    detail_workers: int = DEFAULT_DETAIL_WORKERS
    collector_id: str = DEFAULT_COLLECTOR_ID

    def __post_init__(self) -> None:
        if self.folder_depth < 0:
            raise SettingsError("folder depth must be non-negative")
        if self.connect_timeout_ms <= 0 or self.read_timeout_ms <= 0:
            raise SettingsError("timeouts must be positive")
        if self.detail_workers < 1:
            raise SettingsError("detail workers must be at least 1")

    @property
    def page_size(self) -> int:
        return BUILD_PAGE_SIZE

    @property
    def timeout_seconds(self) -> tuple[float, float]:
        """``(connect, read)`` in seconds, as ``requests`` expects."""
        return (self.connect_timeout_ms / 1000.0, self.read_timeout_ms / 1000.0)

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "CollectorSettings":
        """Read ``TEAMCITY_*`` variables (after loading ``.env``)."""
        if environ is None:
            load_dotenv()
            environ = os.environ
        try:
            return cls(
                servers=_servers_from(environ),
                folder_depth=_int(environ, "TEAMCITY_FOLDER_DEPTH",
                                  DEFAULT_FOLDER_DEPTH),
                connect_timeout_ms=_int(environ, "TEAMCITY_CONNECT_TIMEOUT",
                                        DEFAULT_CONNECT_TIMEOUT_MS),
                read_timeout_ms=_int(environ, "TEAMCITY_READ_TIMEOUT",
                                     DEFAULT_READ_TIMEOUT_MS),
                max_calls_per_second=_int(
                    environ,
                    "TEAMCITY_MAX_CALLS_PER_SECOND",
                    DEFAULT_MAX_CALLS_PER_SECOND,
                ),
                detail_workers=_int(environ, "TEAMCITY_DETAIL_WORKERS",
                                    DEFAULT_DETAIL_WORKERS),
                collector_id=(
                    environ.get("TEAMCITY_COLLECTOR_ID") or DEFAULT_COLLECTOR_ID
                ),
            )
        except ValueError as error:
            if isinstance(error, SettingsError):
                raise
            raise SettingsError(str(error)) from error


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    return read_int(name, default, environ)


def _servers_from(environ: Mapping[str, str]) -> List[ServerSettings]:
    urls = split_csv(environ.get("TEAMCITY_SERVERS"))
    api_keys = split_csv(environ.get("TEAMCITY_API_KEYS"))
    nice_names = split_csv(environ.get("TEAMCITY_NICE_NAMES"))
    project_lists = [
        split_csv(chunk)
        for chunk in (environ.get("TEAMCITY_PROJECT_IDS") or "").split(
            PROJECT_LIST_SEPARATOR
        )
    ]

    if len(api_keys) > 1 and len(api_keys) != len(urls):
        raise SettingsError(
            "TEAMCITY_API_KEYS must hold one key or one key per server"
        )
    if len(project_lists) > 1 and len(project_lists) != len(urls):
        raise SettingsError(
            "TEAMCITY_PROJECT_IDS must hold one list or one list per server"
        )

    servers: List[ServerSettings] = []
    for index, url in enumerate(urls):
        api_key = _positional(api_keys, index)
        projects = _positional(project_lists, index) or []
        servers.append(
            ServerSettings(
                url=url,
                api_key=api_key,
                project_ids=tuple(projects),
                nice_name=nice_names[index] if index < len(nice_names) else None,
            )
        )
    return servers


def _positional(values: Sequence, index: int):
    """Return the per-server entry, or the single shared entry."""
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values[index]
