"""HTTP clients for the CI server."""

from .base_client import BaseClient, JsonHttpClient
from .teamcity_client import (TeamcityClient, format_build_url, join_url,
                              rebuild_job_url)

__all__ = [
    "BaseClient",
    "JsonHttpClient",
    "TeamcityClient",
    "format_build_url",
    "join_url",
    "rebuild_job_url",
]
