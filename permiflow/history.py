"""Dated scan archive used by scheduled runs to detect day-over-day drift."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Union

from .diff import DiffResult, diff
from .report import write_diff_report
from .snapshot import Snapshot, dump_snapshot, load_snapshot
from .utils import canonical_json

logger = logging.getLogger(__name__)

SCAN_TEMPLATE = "rbac-scan-{date}.json"
METADATA_TEMPLATE = "scan-{date}-metadata.json"


def snapshot_date(snapshot: Snapshot) -> date:
    """Return the calendar date of ``snapshot.timestamp``."""

    try:
        return datetime.fromisoformat(snapshot.timestamp).date()
    except ValueError as exc:
        raise ValueError(f"Snapshot timestamp '{snapshot.timestamp}' is not ISO-8601") from exc


def archive_path(history_dir: Union[str, Path], day: date) -> Path:
    return Path(history_dir) / SCAN_TEMPLATE.format(date=day.isoformat())


def archive_snapshot(snapshot: Snapshot, history_dir: Union[str, Path]) -> Path:
    """Copy *snapshot* into *history_dir* under its date and write a metadata file."""

    day = snapshot_date(snapshot)
    path = dump_snapshot(snapshot, archive_path(history_dir, day))
    metadata = {
        "cluster_context": snapshot.cluster_context,
        "date": day.isoformat(),
        "summary": snapshot.summary(),
        "timestamp": snapshot.timestamp,
        "warning_count": snapshot.warning_count,
    }
    metadata_path = Path(history_dir) / METADATA_TEMPLATE.format(date=day.isoformat())
    metadata_path.write_text(canonical_json(metadata), encoding="utf-8")
    logger.info("Archived scan to %s", path)
    return path


def previous_scan_path(history_dir: Union[str, Path], day: date) -> Optional[Path]:
    """Return the archive for the day before *day*, or ``None`` when there is a gap."""

    candidate = archive_path(history_dir, day - timedelta(days=1))
    return candidate if candidate.is_file() else None


def compare_with_previous(
    snapshot: Snapshot, history_dir: Union[str, Path], output_dir: Union[str, Path]
) -> Optional[DiffResult]:
    """Diff *snapshot* against yesterday's archive and write ``daily-diff`` reports.

    Returns ``None`` when no archive exists for the previous day (first run or
    a gap in history).
    """

    previous = previous_scan_path(history_dir, snapshot_date(snapshot))
    if previous is None:
        logger.info("No previous scan found in %s (first run or gap in history)", history_dir)
        return None

    result = diff(load_snapshot(previous), snapshot)
    output_dir = Path(output_dir)
    write_diff_report(result, output_dir / "daily-diff.json", "json")
    write_diff_report(result, output_dir / "daily-diff.md", "markdown")
    return result


__all__ = [
    "archive_path",
    "archive_snapshot",
    "compare_with_previous",
    "previous_scan_path",
    "snapshot_date",
]
