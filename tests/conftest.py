"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Shared fixtures: a clean environment and a fake TeamCity HTTP session.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
import requests

from teamcity_collector.clients.teamcity_client import TeamcityClient
from teamcity_collector.net.rate_limiter import RateLimiter
from teamcity_collector.utils import env as env_utils

TEAMCITY_URL = "http://tc.example.com"

NOT_JSON = object()


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is NOT_JSON:
            raise ValueError("Expecting value")
        return self._payload


class RoutingSession:
    """Answer GET requests from a url -> payload table.

    Unknown urls answer HTTP 404. Urls registered with :meth:`fail` raise
    the given ``requests`` exception instead.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Tuple[int, Any]] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, Any, Optional[Dict[str, str]]]] = []

    def add(self, url: str, payload: Any, status_code: int = 200) -> None:
        self.routes[url] = (status_code, payload)

    def fail(self, url: str, error: Exception) -> None:
        self.errors[url] = error

    def called_urls(self) -> List[str]:
        return [url for url, _, _ in self.calls]

    def get(
        self,
        url: str,
        timeout: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> FakeResponse:
        self.calls.append((url, timeout, headers))
        if url in self.errors:
            raise self.errors[url]
        status_code, payload = self.routes.get(url, (404, None))
        return FakeResponse(status_code, payload)


@pytest.fixture(autouse=True)
def _default_runtime_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
) -> None:
    """
    _default_runtime_env: Function description.
    :param monkeypatch:
    :param tmp_path_factory:
    :returns:
    """

    for name in (
        "TEAMCITY_SERVERS",
        "TEAMCITY_API_KEYS",
        "TEAMCITY_PROJECT_IDS",
        "TEAMCITY_NICE_NAMES",
        "TEAMCITY_FOLDER_DEPTH",
        "TEAMCITY_CONNECT_TIMEOUT",
        "TEAMCITY_READ_TIMEOUT",
        "TEAMCITY_MAX_CALLS_PER_SECOND",
        "TEAMCITY_DETAIL_WORKERS",
        "TEAMCITY_COLLECTOR_ID",
        "PIPELINE_STORE_BUCKET",
        "PIPELINE_STORE_PREFIX",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    store_dir = tmp_path_factory.mktemp("pipelines")
    monkeypatch.setenv("PIPELINE_STORE_DIR", str(store_dir))
    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("LOG_FILE", str(Path(log_dir) / "collector.log"))
    # Never pick up a developer's .env file.
    monkeypatch.setattr(env_utils, "_ENV_LOADED", True)


@pytest.fixture
def routing_session() -> RoutingSession:
    return RoutingSession()


@pytest.fixture
def teamcity_client(routing_session: RoutingSession) -> TeamcityClient:
    return TeamcityClient(
        TEAMCITY_URL,
        session=routing_session,
        rate_limiter=RateLimiter.unlimited(),
    )


@pytest.fixture
def timeout_error() -> requests.Timeout:
    return requests.Timeout("read timed out")
