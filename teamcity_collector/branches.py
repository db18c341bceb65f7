"""Helpers that strip source-control qualifiers from branches and URLs."""

from __future__ import annotations

import re

GIT_EXTENSION = ".git"

_QUALIFIED_BRANCH = re.compile(
    r"(refs/)?remotes/[^/]+/(.*)|(origin[0-9]*/)?(.*)"
)


def unqualified_branch(qualified_branch: str) -> str:
    """Return the branch name without its remote qualifiers.

    Handles ``refs/remotes/<remote>/<branch>``, ``remotes/<remote>/<branch>``,
    ``origin[N]/<branch>`` and plain ``<branch>``.
    """
    match = _QUALIFIED_BRANCH.fullmatch(qualified_branch)
    if match is None:
        return qualified_branch
    if match.group(2) is not None:
        return match.group(2)
    if match.group(4) is not None:
        return match.group(4)
    return qualified_branch


def strip_git_extension(url: str) -> str:
    while url.endswith(GIT_EXTENSION):
        url = url[: -len(GIT_EXTENSION)]
    return url
