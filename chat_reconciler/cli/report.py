"""
Report generation for reconciliation runs.

With ``--log_to_file`` every run gets a timestamped output directory holding
the main log, one file per entity classification and a YAML report.
"""

from __future__ import annotations

import datetime
import logging
import os
from typing import TYPE_CHECKING, Any

import yaml

from chat_reconciler.types import SourceChannel, SourceUser
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.core.context import RunRequest
    from chat_reconciler.core.result import Entity, RunResult

OUTPUT_ROOT = "reconciliation_logs"

ENTITY_LOG_FILES = {
    "succeeded": "succeeded_entities.log",
    "failed": "failed_entities.log",
    "skipped": "skipped_entities.log",
}


def create_output_directory(root: str = OUTPUT_ROOT) -> str:
    """Create the output directory for this run.

    Args:
        root: Parent directory for all runs.

    Returns:
        The path to the newly created output directory.
    """
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = os.path.join(root, f"run_{timestamp}")
    os.makedirs(output_dir, exist_ok=True)
    return output_dir


def describe_entity(entity: Entity) -> str:
    """One log line per entity: kind, identifier and last update."""
    if isinstance(entity, SourceChannel):
        return (
            f"channel {entity.unique_name}; name: {entity.friendly_name}; "
            f"members: {entity.members_count}; updated: {entity.date_updated}"
        )
    if isinstance(entity, SourceUser):
        attributes = f"; {entity.attributes}" if entity.attributes else ""
        return (
            f"user {entity.id}; name: {entity.friendly_name}; "
            f"updated: {entity.date_updated}{attributes}"
        )
    return str(entity)


def write_entity_logs(result: RunResult, output_dir: str) -> dict[str, str]:
    """Write the succeeded, failed and skipped entities to separate files.

    Returns:
        Mapping of classification to the file written.
    """
    written = {}
    for classification, filename in ENTITY_LOG_FILES.items():
        path = os.path.join(output_dir, filename)
        entities = getattr(result, classification)
        with open(path, "w", encoding="utf-8") as f:
            for entity in entities:
                f.write(describe_entity(entity) + "\n")
        written[classification] = path
        log_with_context(
            logging.DEBUG,
            f"Wrote {len(entities)} {classification} entities to {path}",
        )
    return written


def _entity_ids(entities: tuple[Entity, ...]) -> list[str]:
    return [str(e) for e in entities]


def generate_report(
    request: RunRequest,
    result: RunResult,
    output_dir: str,
    duration: float,
    output_file: str = "run_report.yaml",
) -> str:
    """Write a YAML report for the run.

    Args:
        request: The executed request.
        result: The top-level result.
        output_dir: The run's output directory.
        duration: Run duration in seconds.
        output_file: Report file name.

    Returns:
        The path of the report file.
    """
    report_path = os.path.join(output_dir, output_file)

    report: dict[str, Any] = {
        "run_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "action": request.action.value,
            "scope": str(request.scope),
            "date_window": request.window.describe(),
            "page_size": request.page_size,
            "result_limit": request.result_limit,
            "duration_seconds": round(duration, 1),
            "message": result.message,
            "fetched": result.fetched_count,
            "succeeded": result.succeeded_count,
            "skipped": result.skipped_count,
            "failed": result.failed_count,
        },
        "succeeded": _entity_ids(result.succeeded),
        "skipped": _entity_ids(result.skipped),
        "failed": _entity_ids(result.failed),
        "errors": [e.strip() for e in result.errors],
    }
    if request.blocked_listing_ids:
        report["run_summary"]["blocked_listing_ids"] = sorted(request.blocked_listing_ids)

    with open(report_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)

    log_with_context(logging.INFO, f"Run report generated: {report_path}")
    return report_path
