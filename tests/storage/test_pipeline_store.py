"""
TeamCity Pipeline Collector
Introductory remarks: This module is part of the teamcity-pipeline-collector codebase.

Unit tests for pipeline document persistence on disk and in S3.
"""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from teamcity_collector.models import (Commit, EnvironmentStage, Pipeline,
                                       PipelineCommit, PipelineStage)
from teamcity_collector.storage import pipeline_store
from teamcity_collector.storage.errors import PipelineStoreError


def _pipeline(item_id: str = "prod-1") -> Pipeline:
    """
    _pipeline: Function description.
    :param item_id:
    :returns:
    """

    pipeline = Pipeline(collector_item_id=item_id)
    pipeline.environment_stage_map[PipelineStage.BUILD.value] = EnvironmentStage(
        [PipelineCommit(Commit(revision_number="abc", commit_timestamp=5), 50)]
    )
    return pipeline


class _FakeS3Client:
    """
    _FakeS3Client: Class description.
    """

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.objects: Dict[str, bytes] = {}
        self.put_calls: list[Dict[str, Any]] = []
        self._error = error

    def put_object(self, **kwargs: Any) -> None:
        if self._error is not None:
            raise self._error
        self.put_calls.append(kwargs)
        self.objects[kwargs["Key"]] = kwargs["Body"]

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        if self._error is not None:
            raise self._error
        if Key not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
            )
        return {"Body": io.BytesIO(self.objects[Key])}


def test_local_repository_round_trip(tmp_path: Path) -> None:
    repo = pipeline_store.LocalPipelineRepository(tmp_path / "store")

    repo.save(_pipeline("prod/1"))

    assert repo.find_by_collector_item_id("prod/1") == _pipeline("prod/1")
    assert (tmp_path / "store" / "prod%2F1.json").exists()
    assert repo.find_by_collector_item_id("missing") is None


def test_similar_collector_item_ids_do_not_collide(tmp_path: Path) -> None:
    repo = pipeline_store.LocalPipelineRepository(tmp_path)

    repo.save(_pipeline("a/b"))
    repo.save(_pipeline("a_b"))

    assert repo.find_by_collector_item_id("a/b") == _pipeline("a/b")
    assert repo.find_by_collector_item_id("a_b") == _pipeline("a_b")
    assert sorted(path.name for path in tmp_path.glob("*.json")) == [
        "a%2Fb.json",
        "a_b.json",
    ]


def test_local_repository_corrupt_document(tmp_path: Path) -> None:
    repo = pipeline_store.LocalPipelineRepository(tmp_path)
    (tmp_path / "prod-1.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(PipelineStoreError):
        repo.find_by_collector_item_id("prod-1")


def test_blank_collector_item_id_is_rejected(tmp_path: Path) -> None:
    repo = pipeline_store.LocalPipelineRepository(tmp_path)

    with pytest.raises(PipelineStoreError):
        repo.find_by_collector_item_id("")


def test_s3_repository_round_trip() -> None:
    client = _FakeS3Client()
    repo = pipeline_store.S3PipelineRepository(
        "bucket", prefix="/pipelines/", client=client
    )

    repo.save(_pipeline())

    assert client.put_calls[0]["Bucket"] == "bucket"
    assert client.put_calls[0]["Key"] == "pipelines/prod-1.json"
    assert json.loads(client.objects["pipelines/prod-1.json"])["collectorItemId"] == "prod-1"
    assert repo.find_by_collector_item_id("prod-1") == _pipeline()


def test_s3_missing_key_returns_none() -> None:
    repo = pipeline_store.S3PipelineRepository("bucket", client=_FakeS3Client())

    assert repo.find_by_collector_item_id("prod-1") is None


@pytest.mark.parametrize(
    "error",
    [
        ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject"),
        EndpointConnectionError(endpoint_url="https://s3.example.com"),
    ],
)
def test_s3_errors_raise_store_error(error: Exception) -> None:
    repo = pipeline_store.S3PipelineRepository(
        "bucket", client=_FakeS3Client(error=error)
    )

    with pytest.raises(PipelineStoreError):
        repo.find_by_collector_item_id("prod-1")
    with pytest.raises(PipelineStoreError):
        repo.save(_pipeline())


def test_s3_repository_requires_bucket() -> None:
    with pytest.raises(PipelineStoreError):
        pipeline_store.S3PipelineRepository("")


def test_build_repository_from_env_prefers_bucket(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    local = pipeline_store.build_pipeline_repository_from_env(
        {"PIPELINE_STORE_DIR": str(tmp_path / "local")}
    )
    assert isinstance(local, pipeline_store.LocalPipelineRepository)
    assert (tmp_path / "local").is_dir()

    fake = _FakeS3Client()
    monkeypatch.setattr(pipeline_store, "_S3_CLIENT", fake)
    remote = pipeline_store.build_pipeline_repository_from_env(
        {"PIPELINE_STORE_BUCKET": "bucket", "PIPELINE_STORE_PREFIX": "p"}
    )
    assert isinstance(remote, pipeline_store.S3PipelineRepository)
    remote.save(_pipeline())
    assert "p/prod-1.json" in fake.objects
