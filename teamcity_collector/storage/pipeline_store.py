"""Persistent storage for pipeline documents on disk or in S3."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from teamcity_collector.models import Pipeline

from .base import PipelineRepository
from .errors import PipelineStoreError

DEFAULT_PIPELINE_DIR = "/tmp/teamcity-pipelines"
DEFAULT_PIPELINE_PREFIX = "pipelines"

_LOGGER = logging.getLogger(__name__)
_S3_CLIENT = None


def _document_name(collector_item_id: str) -> str:
    # Percent-encoding keeps distinct ids on distinct documents.
    if not collector_item_id:
        raise PipelineStoreError("Collector item id cannot name a document")
    return f"{quote(collector_item_id, safe='')}.json"


def _build_s3_client() -> Any:
    global _S3_CLIENT
    if _S3_CLIENT is not None:
        return _S3_CLIENT

    region = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
    client_kwargs: Dict[str, Any] = {
        "config": Config(retries={"max_attempts": 5, "mode": "standard"}),
    }
    if region:
        client_kwargs["region_name"] = region

    _S3_CLIENT = boto3.client("s3", **client_kwargs)
    return _S3_CLIENT


class LocalPipelineRepository(PipelineRepository):
    """One JSON file per collector item under ``base_dir``."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, collector_item_id: str) -> Path:
        return self._base_dir / _document_name(collector_item_id)

    def find_by_collector_item_id(
        self, collector_item_id: str
    ) -> Optional[Pipeline]:
        path = self._path(collector_item_id)
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            return Pipeline.from_document(document)
        except (OSError, ValueError, KeyError) as exc:
            raise PipelineStoreError(
                f"Failed to load pipeline '{collector_item_id}'"
            ) from exc

    def save(self, pipeline: Pipeline) -> Pipeline:
        path = self._path(pipeline.collector_item_id)
        staging = path.with_suffix(".json.tmp")
        try:
            staging.write_text(
                json.dumps(pipeline.to_document()), encoding="utf-8"
            )
            # Whole-document replace; readers never see a partial write.
            staging.replace(path)
        except OSError as exc:
            raise PipelineStoreError(
                f"Failed to store pipeline '{pipeline.collector_item_id}'"
            ) from exc
        return pipeline


class S3PipelineRepository(PipelineRepository):
    """Pipeline documents stored as ``<prefix>/<collector item>.json``."""

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = DEFAULT_PIPELINE_PREFIX,
        client: Optional[Any] = None,
    ) -> None:
        if not bucket:
            raise PipelineStoreError("An S3 bucket is required")
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._client = client

    def _key(self, collector_item_id: str) -> str:
        name = _document_name(collector_item_id)
        return f"{self._prefix}/{name}" if self._prefix else name

    def _s3(self) -> Any:
        if self._client is None:
            self._client = _build_s3_client()
        return self._client

    def find_by_collector_item_id(
        self, collector_item_id: str
    ) -> Optional[Pipeline]:
        key = self._key(collector_item_id)
        try:
            response = self._s3().get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code == "NoSuchKey":
                return None
            _LOGGER.error(
                "ClientError fetching pipeline %s: %s", collector_item_id, exc
            )
            raise PipelineStoreError(
                f"Failed to load pipeline '{collector_item_id}'"
            ) from exc
        except BotoCoreError as exc:
            _LOGGER.error(
                "BotoCoreError fetching pipeline %s: %s", collector_item_id, exc
            )
            raise PipelineStoreError(
                f"Failed to load pipeline '{collector_item_id}'"
            ) from exc
        try:
            document = json.loads(response["Body"].read())
            return Pipeline.from_document(document)
        except (ValueError, KeyError) as exc:
            raise PipelineStoreError(
                f"Pipeline document '{key}' is malformed"
            ) from exc

    def save(self, pipeline: Pipeline) -> Pipeline:
        key = self._key(pipeline.collector_item_id)
        try:
            self._s3().put_object(
                Bucket=self._bucket,
                Key=key,
                Body=json.dumps(pipeline.to_document()).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            _LOGGER.error(
                "Failed to store pipeline %s: %s",
                pipeline.collector_item_id,
                exc,
            )
            raise PipelineStoreError(
                f"Failed to store pipeline '{pipeline.collector_item_id}'"
            ) from exc
        return pipeline


def build_pipeline_repository_from_env(
    environ: Optional[Mapping[str, str]] = None,
) -> PipelineRepository:
    """S3 when ``PIPELINE_STORE_BUCKET`` is set, else a local directory."""
    env = os.environ if environ is None else environ
    bucket = env.get("PIPELINE_STORE_BUCKET")
    if bucket:
        return S3PipelineRepository(
            bucket,
            prefix=env.get("PIPELINE_STORE_PREFIX", DEFAULT_PIPELINE_PREFIX),
        )
    return LocalPipelineRepository(
        Path(env.get("PIPELINE_STORE_DIR", DEFAULT_PIPELINE_DIR))
    )
