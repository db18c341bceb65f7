"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

REST client for one TeamCity instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar
from urllib.parse import quote, unquote_plus, urlsplit, urlunsplit

from teamcity_collector.clients.base_client import (JsonHttpClient,
                                                    _SessionWithGet)
from teamcity_collector.net.rate_limiter import RateLimiter
from teamcity_collector.payloads import (BuildDetailPayload,
                                         BuildPagePayload,
                                         BuildTypeSettingsPayload, Decoded,
                                         ProjectPayload,
                                         decode_build_detail,
                                         decode_build_page,
                                         decode_build_type_settings,
                                         decode_project)

if TYPE_CHECKING:
    from teamcity_collector.config import CollectorSettings, ServerSettings

PROJECT_API_URL_SUFFIX = "app/rest/projects"
BUILD_DETAILS_URL_SUFFIX = "app/rest/builds"
BUILD_TYPE_DETAILS_URL_SUFFIX = "app/rest/buildTypes"

_PATH_SAFE_CHARACTERS = "/:@!$&'()*+,;=-._~"

T = TypeVar("T")


def join_url(base: str, *paths: str) -> str:
    """Join ``paths`` onto ``base`` with exactly one ``/`` between segments."""
    result = base
    for path in paths:
        segment = path.lstrip("/")
        if not result.endswith("/"):
            result += "/"
        result += segment
    return result


def format_build_url(build_url: str) -> str:
    """Turn ``.../builds?locator=id:42`` into ``.../builds/id:42``."""
    if "?" not in build_url or "=" not in build_url:
        return build_url
    base = build_url.split("?", 1)[0]
    locator = build_url.split("=", 1)[1]
    return f"{base}/{locator}"


def rebuild_job_url(build_url: str, server_url: str) -> str:
    """Rebuild a build URL with the scheme and credentials of ``server_url``.

    URLs reported by TeamCity drop the user info we authenticate with, so
    the host and path come from ``build_url`` and everything else from the
    configured instance. A literal ``+`` in the path survives decoding.
    """
    instance = urlsplit(server_url)
    if not instance.scheme:
        raise ValueError(f"Instance url '{server_url}' has no scheme")

    decoded = unquote_plus(build_url.replace("+", "%2B"))
    build = urlsplit(decoded)
    if not build.hostname:
        raise ValueError(f"Build url '{build_url}' has no host")

    netloc = build.hostname
    if build.port is not None:
        netloc = f"{netloc}:{build.port}"
    if "@" in instance.netloc:
        user_info = instance.netloc.rpartition("@")[0]
        netloc = f"{user_info}@{netloc}"

    path = quote(build.path, safe=_PATH_SAFE_CHARACTERS)
    return urlunsplit((instance.scheme, netloc, path, "", ""))


class TeamcityClient(JsonHttpClient):
    """Typed access to the project, build type and build endpoints."""

    def __init__(
        self,
        instance_url: str,
        *,
        api_token: Optional[str] = None,
        session: Optional[_SessionWithGet] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: tuple[float, float] = (20.0, 20.0),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(
            rate_limiter or RateLimiter.per_second(10),
            session=session,
            timeout=timeout,
            api_token=api_token,
            logger=logger,
        )
        self._instance_url = instance_url

    @classmethod
    def for_server(
        cls,
        server: "ServerSettings",
        settings: "CollectorSettings",
        *,
        session: Optional[_SessionWithGet] = None,
    ) -> "TeamcityClient":
        return cls(
            server.url,
            api_token=server.api_key,
            session=session,
            rate_limiter=RateLimiter.per_second(settings.max_calls_per_second),
            timeout=settings.timeout_seconds,
        )

    @property
    def instance_url(self) -> str:
        return self._instance_url

    @property
    def builds_url(self) -> str:
        return join_url(self._instance_url, BUILD_DETAILS_URL_SUFFIX)

    def build_locator_url(self, build_id: str) -> str:
        return f"{self.builds_url}?locator=id:{build_id}"

    def get_project(self, project_id: str) -> Decoded[ProjectPayload]:
        url = join_url(
            self._instance_url, f"{PROJECT_API_URL_SUFFIX}/id:{project_id}"
        )
        self._logger.info("Fetching project details for %s", url)
        return self._fetch(url, decode_project, name=f"project({project_id})")

    def get_build_type_settings(
        self, build_type_id: str
    ) -> Decoded[BuildTypeSettingsPayload]:
        url = join_url(
            self._instance_url,
            f"{BUILD_TYPE_DETAILS_URL_SUFFIX}/id:{build_type_id}",
        )
        self._logger.info("Fetching build type details for %s", url)
        return self._fetch(
            url,
            decode_build_type_settings,
            name=f"buildType({build_type_id})",
        )

    def get_build_page(
        self, build_type_id: str, *, start: int, count: int
    ) -> Decoded[BuildPagePayload]:
        url = (
            f"{self.builds_url}?locator=buildType:{build_type_id},"
            f"count:{count},start:{start}"
        )
        return self._fetch(
            url,
            decode_build_page,
            name=f"builds({build_type_id},start={start})",
        )

    def get_build_detail(self, url: str) -> Decoded[BuildDetailPayload]:
        """Fetch a build by an already rebuilt, callable URL."""
        return self._fetch(url, decode_build_detail, name=f"build({url})")

    def _fetch(
        self,
        url: str,
        decoder: Callable[[Any], Decoded[T]],
        *,
        name: str,
    ) -> Decoded[T]:
        raw = self.get_json(url, name=name)
        if not raw.ok:
            return Decoded.failure(raw.error or "request failed")
        decoded = decoder(raw.value)
        if not decoded.ok:
            self._logger.error("Malformed payload from %s: %s", url, decoded.error)
        return decoded
