"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Paginated build listing and build detail materialization.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Set

from teamcity_collector.branches import (strip_git_extension,
                                         unqualified_branch)
from teamcity_collector.clients.teamcity_client import (TeamcityClient,
                                                        format_build_url,
                                                        rebuild_job_url)
from teamcity_collector.config import BUILD_PAGE_SIZE
from teamcity_collector.dates import DateSchema, parse_timestamp
from teamcity_collector.models import (Build, BuildStatus, BuildSummary,
                                       Commit, Outcome, RepoBranch, RepoType)
from teamcity_collector.payloads import (BuildDetailPayload,
                                         ChangeSetPayload, GitActionPayload)
from teamcity_collector.storage.base import CommitRepository

_LOGGER = logging.getLogger(__name__)


def _now_millis() -> int:
    return int(time.time() * 1000)


class BuildFetcher:
    """Lists the builds of a configuration and materializes finished ones."""

    def __init__(
        self,
        client: TeamcityClient,
        commit_repository: CommitRepository,
        *,
        page_size: int = BUILD_PAGE_SIZE,
        clock: Callable[[], int] = _now_millis,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._client = client
        self._commits = commit_repository
        self._page_size = page_size
        self._clock = clock

    def list_builds(self, configuration_id: str) -> List[BuildSummary]:
        """Return every build of ``configuration_id``, deduplicated by id.

        Pages are requested until one comes back empty. A page that cannot
        be fetched or decoded ends the listing with what was gathered.
        """
        summaries: Dict[str, BuildSummary] = {}
        start = 0
        while True:
            page = self._client.get_build_page(
                configuration_id, start=start, count=self._page_size
            )
            if not page.ok or page.value is None:
                _LOGGER.error(
                    "Stopping build listing for %s at offset %d: %s",
                    configuration_id,
                    start,
                    page.error,
                )
                break
            if not page.value.builds:
                break
            for ref in page.value.builds:
                if ref.id in summaries:
                    continue
                summaries[ref.id] = BuildSummary(
                    number=ref.id,
                    build_url=self._client.build_locator_url(ref.id),
                    status=BuildStatus.from_teamcity(ref.status),
                )
            start += self._page_size
        _LOGGER.debug(
            "Listed %d builds for %s", len(summaries), configuration_id
        )
        return list(summaries.values())

    def get_build_detail(self, build_url: str) -> Optional[Build]:
        """Return the finished build behind ``build_url`` or None."""
        return self.fetch_build_detail(build_url).value

    def fetch_build_detail(self, build_url: str) -> Outcome[Build]:
        formatted_url = format_build_url(build_url)
        try:
            url = rebuild_job_url(formatted_url, self._client.instance_url)
        except ValueError as error:
            _LOGGER.error(
                "Malformed url for loading build details %s: %s",
                formatted_url,
                error,
            )
            return Outcome.failed(formatted_url, str(error))

        detail = self._client.get_build_detail(url)
        if not detail.ok or detail.value is None:
            _LOGGER.error(
                "Error getting build details for %s: %s", url, detail.error
            )
            return Outcome.failed(formatted_url, detail.error or "no payload")

        payload = detail.value
        if not payload.is_finished:
            return Outcome.skipped(formatted_url, "build in progress")

        try:
            build = self._materialize(payload, formatted_url)
        except ValueError as error:
            _LOGGER.error(
                "Malformed build details for %s: %s", formatted_url, error
            )
            return Outcome.failed(formatted_url, str(error))
        return Outcome.success(formatted_url, build)

    def _materialize(self, payload: BuildDetailPayload, build_url: str) -> Build:
        start_time = parse_timestamp(payload.start_date, DateSchema.BUILD)
        end_time = parse_timestamp(payload.finish_date, DateSchema.BUILD)
        duration = end_time - start_time

        code_repos: List[RepoBranch] = []
        for action in payload.git_actions:
            code_repos.extend(_git_repo_branches(action))

        change_set: List[Commit] = []
        if payload.change_sets and not payload.revision_versions:
            seen_commits: Set[str] = set()
            for raw_change_set in payload.change_sets:
                repos, commits = _change_set_entries(
                    raw_change_set, seen_commits
                )
                code_repos.extend(repos)
                change_set.extend(commits)
        else:
            commit = self._revision_commit(payload.revision_versions, build_url)
            if commit is not None:
                change_set.append(commit)

        return Build(
            number=payload.id,
            build_url=build_url,
            status=BuildStatus.from_teamcity(payload.status),
            start_time=start_time,
            end_time=start_time + duration,
            duration=duration,
            timestamp=self._clock(),
            code_repos=tuple(code_repos),
            source_change_set=tuple(change_set),
        )

    def _revision_commit(
        self, revisions: List[str], build_url: str
    ) -> Optional[Commit]:
        if not revisions:
            _LOGGER.warning("No revision detected for build %s", build_url)
            return None
        if len(revisions) > 1:
            _LOGGER.warning(
                "Multiple revisions detected for build %s, considering the first",
                build_url,
            )
        revision = revisions[0]
        commit = self._commits.find_by_revision(revision)
        if commit is None:
            _LOGGER.warning(
                "Commit sha %s not found in commit repository, "
                "skip adding to pipeline commits this time",
                revision,
            )
        return commit


def _git_repo_branches(action: GitActionPayload) -> List[RepoBranch]:
    # Remote urls and branches are not paired in the payload, so every
    # remote is associated with every branch of the last built revision.
    repos: List[RepoBranch] = []
    for remote_url in action.remote_urls:
        url = strip_git_extension(remote_url)
        for branch_name in action.branch_names:
            repos.append(
                RepoBranch(
                    url=url,
                    branch=unqualified_branch(branch_name),
                    type=RepoType.GIT,
                )
            )
    return repos


def _change_set_entries(
    change_set: ChangeSetPayload, seen_commits: Set[str]
) -> tuple[List[RepoBranch], List[Commit]]:
    repo_type = RepoType.from_string(change_set.kind)
    repos_by_revision: Dict[str, RepoBranch] = {}
    for revision in change_set.revisions:
        if revision.revision in repos_by_revision or not revision.module:
            continue
        repos_by_revision[revision.revision] = RepoBranch(
            url=strip_git_extension(revision.module), type=repo_type
        )

    commits: List[Commit] = []
    for item in change_set.items:
        if not item.revision or item.revision in seen_commits:
            continue
        repo = repos_by_revision.get(item.revision)
        if item.timestamp is not None:
            commit_timestamp = item.timestamp
        else:
            commit_timestamp = parse_timestamp(item.date, DateSchema.CHANGESET)
        commits.append(
            Commit(
                revision_number=item.revision,
                author=item.author,
                message=item.message,
                commit_timestamp=commit_timestamp,
                url=repo.url if repo else None,
                branch=repo.branch if repo else None,
                changed_file_count=item.path_count,
            )
        )
        seen_commits.add(item.revision)
    return list(repos_by_revision.values()), commits
