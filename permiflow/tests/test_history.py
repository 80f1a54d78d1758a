"""Tests for the dated scan archive."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import date

from permiflow.history import (
    archive_snapshot,
    compare_with_previous,
    previous_scan_path,
    snapshot_date,
)
from permiflow.snapshot import build


def test_archive_writes_scan_and_metadata(tmp_path, source) -> None:
    """Archiving stores the scan under its date with a metadata sidecar."""

    snapshot = build(source, timestamp="2026-10-16T06:00:00+00:00")

    path = archive_snapshot(snapshot, tmp_path)

    assert path == tmp_path / "rbac-scan-2026-10-16.json"
    metadata = json.loads((tmp_path / "scan-2026-10-16-metadata.json").read_text(encoding="utf-8"))
    assert metadata["date"] == "2026-10-16"
    assert metadata["summary"]["total"] == 5
    assert metadata["cluster_context"] == "test-cluster"


def test_previous_scan_lookup(tmp_path) -> None:
    """Only an archive from exactly the previous day counts."""

    (tmp_path / "rbac-scan-2026-10-14.json").write_text("{}", encoding="utf-8")

    assert previous_scan_path(tmp_path, date(2026, 10, 16)) is None
    assert previous_scan_path(tmp_path, date(2026, 10, 15)) == tmp_path / "rbac-scan-2026-10-14.json"


def test_compare_with_previous_writes_daily_diff(tmp_path, source) -> None:
    """Yesterday's archive is diffed against today's scan."""

    history = tmp_path / "history"
    reports = tmp_path / "reports"
    today = build(source, timestamp="2026-10-16T06:00:00+00:00")
    yesterday = replace(
        today,
        timestamp="2026-10-15T06:00:00+00:00",
        bindings=today.bindings[1:],
    )
    archive_snapshot(yesterday, history)

    result = compare_with_previous(today, history, reports)

    assert result is not None
    assert [b.binding_name for b in result.added] == ["build-bot-admin"]
    data = json.loads((reports / "daily-diff.json").read_text(encoding="utf-8"))
    assert len(data["added"]) == 1
    assert (reports / "daily-diff.md").is_file()


def test_compare_without_history_returns_none(tmp_path, source) -> None:
    """The first scheduled run has nothing to compare with."""

    snapshot = build(source, timestamp="2026-10-16T06:00:00+00:00")

    assert compare_with_previous(snapshot, tmp_path, tmp_path / "reports") is None
    assert snapshot_date(snapshot) == date(2026, 10, 16)
