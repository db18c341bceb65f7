"""CLI wiring that runs discovery or a collection pass and emits NDJSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from teamcity_collector.collector import (CollectionRun, RunSummary,
                                          discover_configurations)
from teamcity_collector.config import CollectorSettings, SettingsError
from teamcity_collector.logging_config import configure_logging
from teamcity_collector.models import Outcome, Pipeline, PipelineStage
from teamcity_collector.storage import (RepositoryError,
                                        build_pipeline_repository_from_env,
                                        load_snapshot)

logger = logging.getLogger(__name__)


def to_ndjson_line(record: Mapping[str, Any]) -> str:
    """Serialize a record as one compact JSON line."""
    return json.dumps(record, separators=(",", ":"))


def pipeline_record(outcome: Outcome[Pipeline]) -> Dict[str, Any]:
    record: Dict[str, Any] = {"collectorItemId": outcome.subject}
    record.update(outcome.as_dict())
    del record["subject"]
    if outcome.value is not None:
        build_stage = outcome.value.stage(PipelineStage.BUILD)
        record["buildStageCommits"] = len(build_stage) if build_stage else 0
    return record


def summary_record(summary: RunSummary) -> Dict[str, Any]:
    return {
        "configurations": summary.configurations,
        "newBuilds": summary.new_builds,
        "pipelines": len(summary.pipelines),
        "skipped": len(summary.skipped),
        "failures": [outcome.as_dict() for outcome in summary.failures],
        "cancelled": summary.cancelled,
    }


def build_arg_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(
        prog="teamcity-collector",
        description=(
            "TeamCity pipeline collector: discover build configurations and "
            "reconcile built commits into delivery pipelines."
        ),
    )
    commands = argument_parser.add_subparsers(dest="command", required=True)

    discover = commands.add_parser(
        "discover", help="List the build configurations that would be collected."
    )
    discover.add_argument(
        "--server",
        default=None,
        help="Only walk the configured server with this base URL.",
    )

    collect = commands.add_parser(
        "collect", help="Run one collection pass and reconcile pipelines."
    )
    collect.add_argument(
        "--snapshot",
        type=Path,
        required=True,
        help="JSON snapshot of commits, collectors, components and dashboards.",
    )
    return argument_parser


def _run_discover(settings: CollectorSettings, server: Optional[str]) -> int:
    for record in discover_configurations(settings, server_url=server):
        print(to_ndjson_line(record))
    return 0


def _run_collect(settings: CollectorSettings, snapshot: Path) -> int:
    if not snapshot.exists():
        print(f"Snapshot file not found: {snapshot}", file=sys.stderr)
        return 1
    try:
        stores = load_snapshot(
            snapshot, pipelines=build_pipeline_repository_from_env()
        )
    except RepositoryError as error:
        print(str(error), file=sys.stderr)
        return 1

    summary = CollectionRun(settings, stores).run()
    for outcome in summary.pipelines:
        print(to_ndjson_line(pipeline_record(outcome)))
    logger.info("Run summary: %s", summary_record(summary))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    argument_parser = build_arg_parser()
    parsed_args = argument_parser.parse_args(argv)

    try:
        settings = CollectorSettings.from_env()
    except SettingsError as error:
        print(f"Invalid settings: {error}", file=sys.stderr)
        return 1

    if parsed_args.command == "discover":
        return _run_discover(settings, parsed_args.server)
    return _run_collect(settings, parsed_args.snapshot)


if __name__ == "__main__":
    sys.exit(main())
