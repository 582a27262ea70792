"""
Backup and export of run data.

- JSON: every run, story, goal and unlocked achievement, restorable with
  `parse_backup` + `RunMetricsEngine.import_backup`.
- CSV: one summary row per run, spreadsheet friendly.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from pydantic import ValidationError

from runmetrics.core.constants import MILE_M
from runmetrics.core.exceptions import InvalidBackup
from runmetrics.schemas.export import BackupDocument
from runmetrics.schemas.goal import Goal
from runmetrics.schemas.run import RunOrigin, RunRecord
from runmetrics.schemas.story import Story

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "Date",
    "File Name",
    "Source",
    "Distance (miles)",
    "Distance (meters)",
    "Duration (minutes)",
    "Avg Pace (min/mile)",
    "Elevation Gain (meters)",
    "Tags",
    "Notes",
]


@dataclass
class ExportResult:
    """A rendered export ready to be sent as a file download."""
    format: str
    filename: str
    content: str
    content_type: str
    row_count: int


def build_backup(
    runs: Sequence[RunRecord],
    stories: Sequence[Story],
    goals: Sequence[Goal],
    achievements: Sequence[str],
    now: datetime,
) -> BackupDocument:
    tags = sorted({t for r in runs for t in r.tags})
    return BackupDocument(
        runs=list(runs),
        stories=list(stories),
        goals=list(goals),
        achievements=list(achievements),
        tags=tags,
        export_date=now,
    )


def backup_to_json(backup: BackupDocument) -> ExportResult:
    day = backup.export_date.date().isoformat() if backup.export_date else "undated"
    return ExportResult(
        format="json",
        filename=f"running-metrics-backup-{day}.json",
        content=backup.model_dump_json(indent=2),
        content_type="application/json",
        row_count=len(backup.runs),
    )


def runs_to_csv(runs: Sequence[RunRecord], now: datetime) -> ExportResult:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    ordered = sorted(runs, key=lambda r: r.start_time)
    for run in ordered:
        writer.writerow([
            run.start_time.date().isoformat(),
            run.source_file,
            "strava" if run.origin == RunOrigin.remote_sync else "gpx",
            f"{run.total_distance_m / MILE_M:.2f}",
            f"{run.total_distance_m:.2f}",
            f"{run.total_duration_s / 60:.2f}",
            f"{run.average_pace:.2f}",
            f"{run.elevation_gain_m:.2f}",
            "; ".join(sorted(run.tags)),
            run.notes or "",
        ])
    content = output.getvalue()
    output.close()

    logger.info("Exported %d runs to CSV", len(ordered))
    return ExportResult(
        format="csv",
        filename=f"running-metrics-runs-{now.date().isoformat()}.csv",
        content=content,
        content_type="text/csv; charset=utf-8",
        row_count=len(ordered),
    )


def parse_backup(raw: str | bytes) -> BackupDocument:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidBackup(f"Failed to parse backup file: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("runs"), list):
        raise InvalidBackup("Invalid backup file: missing runs data")
    try:
        return BackupDocument.model_validate(data)
    except ValidationError as e:
        raise InvalidBackup(f"Failed to parse backup file: {e.error_count()} invalid field(s)") from e
