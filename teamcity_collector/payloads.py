"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Typed views of the TeamCity REST payloads.

Every ``decode_*`` function takes the raw JSON value returned by the server
and yields a :class:`Decoded` result instead of raising, so callers decide
how a malformed payload degrades (empty page, absent build, empty settings).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Mapping, Optional, TypeVar

T = TypeVar("T")


class PayloadError(ValueError):
    """Raised internally when a payload does not have the expected shape."""


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Either a decoded value or the reason decoding failed."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str) -> "Decoded[T]":
        return cls(value=None, error=error)


@dataclass(frozen=True)
class BuildTypeRef:
    id: str
    web_url: Optional[str] = None
    name: Optional[str] = None
    project_id: Optional[str] = None


@dataclass(frozen=True)
class ProjectPayload:
    id: str
    sub_project_ids: List[str] = field(default_factory=list)
    build_types: List[BuildTypeRef] = field(default_factory=list)


@dataclass(frozen=True)
class BuildTypeSettingsPayload:
    """Name/value properties exposed under ``settings.property``."""

    properties: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        return self.properties.get(name)


@dataclass(frozen=True)
class BuildRef:
    id: str
    status: Optional[str] = None


@dataclass(frozen=True)
class BuildPagePayload:
    builds: List[BuildRef] = field(default_factory=list)


@dataclass(frozen=True)
class GitActionPayload:
    """Remote URLs and the branches of the last built revision."""

    remote_urls: List[str] = field(default_factory=list)
    branch_names: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChangeSetRevisionPayload:
    revision: str
    module: Optional[str] = None


@dataclass(frozen=True)
class ChangeSetItemPayload:
    revision: Optional[str] = None
    author_full_name: Optional[str] = None
    user: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[int] = None
    date: Optional[str] = None
    path_count: int = 0

    @property
    def author(self) -> Optional[str]:
        return self.author_full_name if self.author_full_name else self.user


@dataclass(frozen=True)
class ChangeSetPayload:
    kind: Optional[str] = None
    revisions: List[ChangeSetRevisionPayload] = field(default_factory=list)
    items: List[ChangeSetItemPayload] = field(default_factory=list)


@dataclass(frozen=True)
class BuildDetailPayload:
    id: str
    state: str
    status: Optional[str] = None
    start_date: Optional[str] = None
    finish_date: Optional[str] = None
    git_actions: List[GitActionPayload] = field(default_factory=list)
    revision_versions: List[str] = field(default_factory=list)
    change_sets: List[ChangeSetPayload] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.state == "finished"


def decode_project(raw: Any) -> Decoded[ProjectPayload]:
    """Decode ``/app/rest/projects/id:<id>``."""
    return _guarded(_project, raw)


def decode_build_type_settings(raw: Any) -> Decoded[BuildTypeSettingsPayload]:
    """Decode ``/app/rest/buildTypes/id:<id>``; missing settings are empty."""
    return _guarded(_build_type_settings, raw)


def decode_build_page(raw: Any) -> Decoded[BuildPagePayload]:
    return _guarded(_build_page, raw)


def decode_build_detail(raw: Any) -> Decoded[BuildDetailPayload]:
    return _guarded(_build_detail, raw)


def _guarded(decoder: Callable[[Any], T], raw: Any) -> Decoded[T]:
    try:
        return Decoded(value=decoder(raw))
    except PayloadError as error:
        return Decoded.failure(str(error))


def _object(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise PayloadError(f"{what} must be a JSON object")
    return raw


def _optional_object(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    return _object(value, key)


def _array(raw: Mapping[str, Any], key: str) -> List[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadError(f"'{key}' must be a JSON array")
    return value


def _required_text(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None or isinstance(value, (dict, list)) or value == "":
        raise PayloadError(f"missing required field '{key}'")
    return str(value)


def _optional_text(raw: Mapping[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _project(raw: Any) -> ProjectPayload:
    body = _object(raw, "project")
    projects = _optional_object(body, "projects")
    build_types = _optional_object(body, "buildTypes")
    return ProjectPayload(
        id=_required_text(body, "id"),
        sub_project_ids=[
            _required_text(_object(item, "project"), "id")
            for item in _array(projects, "project")
        ],
        build_types=[
            _build_type_ref(item) for item in _array(build_types, "buildType")
        ],
    )


def _build_type_ref(raw: Any) -> BuildTypeRef:
    body = _object(raw, "buildType")
    return BuildTypeRef(
        id=_required_text(body, "id"),
        web_url=_optional_text(body, "webUrl"),
        name=_optional_text(body, "name"),
        project_id=_optional_text(body, "projectId"),
    )


def _build_type_settings(raw: Any) -> BuildTypeSettingsPayload:
    body = _object(raw, "buildType")
    settings = _optional_object(body, "settings")
    properties: dict[str, str] = {}
    for item in _array(settings, "property"):
        prop = _object(item, "property")
        name = _optional_text(prop, "name")
        if name is None or name in properties:
            continue
        properties[name] = _optional_text(prop, "value") or ""
    return BuildTypeSettingsPayload(properties=properties)


def _build_page(raw: Any) -> BuildPagePayload:
    body = _object(raw, "builds")
    return BuildPagePayload(
        builds=[
            BuildRef(
                id=_required_text(_object(item, "build"), "id"),
                status=_optional_text(item, "status"),
            )
            for item in _array(body, "build")
        ]
    )


def _build_detail(raw: Any) -> BuildDetailPayload:
    body = _object(raw, "build")
    revisions = _optional_object(body, "revisions")
    change_sets: List[ChangeSetPayload] = []
    if body.get("changeSet") is not None:
        change_sets.append(_change_set(body["changeSet"]))
    change_sets.extend(_change_set(item) for item in _array(body, "changeSets"))
    return BuildDetailPayload(
        id=_required_text(body, "id"),
        state=_required_text(body, "state"),
        status=_optional_text(body, "status"),
        start_date=_optional_text(body, "startDate"),
        finish_date=_optional_text(body, "finishDate"),
        git_actions=[
            _git_action(item)
            for item in _array(body, "actions")
            if isinstance(item, Mapping) and item
        ],
        revision_versions=[
            _required_text(_object(item, "revision"), "version")
            for item in _array(revisions, "revision")
        ],
        change_sets=change_sets,
    )


def _git_action(action: Mapping[str, Any]) -> GitActionPayload:
    remote_urls = [
        url for url in _array(action, "remoteUrls")
        if isinstance(url, str) and url
    ]
    branch_names: List[str] = []
    if remote_urls:
        last_built = _optional_object(action, "lastBuiltRevision")
        for branch in _array(last_built, "branch"):
            name = _optional_text(_object(branch, "branch"), "name")
            if name is not None:
                branch_names.append(name)
    return GitActionPayload(remote_urls=remote_urls, branch_names=branch_names)


def _change_set(raw: Any) -> ChangeSetPayload:
    body = _object(raw, "changeSet")
    revisions = []
    for item in _array(body, "revisions"):
        revision = _object(item, "revision")
        revision_id = _optional_text(revision, "revision")
        if revision_id:
            revisions.append(
                ChangeSetRevisionPayload(
                    revision=revision_id,
                    module=_optional_text(revision, "module"),
                )
            )
    return ChangeSetPayload(
        kind=_optional_text(body, "kind"),
        revisions=revisions,
        items=[_change_set_item(item) for item in _array(body, "items")],
    )


def _change_set_item(raw: Any) -> ChangeSetItemPayload:
    item = _object(raw, "changeSet item")
    # Prefer an explicit revision, fall back to the item id.
    revision = _optional_text(item, "revision") or _optional_text(item, "id")
    author = item.get("author")
    full_name = None
    if isinstance(author, Mapping):
        full_name = _optional_text(author, "fullName")
    timestamp = item.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        timestamp = None
    return ChangeSetItemPayload(
        revision=revision,
        author_full_name=full_name,
        user=_optional_text(item, "user"),
        message=_optional_text(item, "msg"),
        timestamp=int(timestamp) if timestamp is not None else None,
        date=_optional_text(item, "date"),
        path_count=len(_array(item, "paths")),
    )
