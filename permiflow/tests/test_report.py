"""Tests for report emitters."""

from __future__ import annotations

import csv
import io
import json

import pytest

from permiflow.bindings import PolicyRule
from permiflow.diff import diff
from permiflow.report import (
    format_rule,
    print_drift_summary,
    print_risk_summary,
    render_diff,
    render_snapshot,
    write_diff_report,
    write_snapshot_report,
)
from permiflow.snapshot import Snapshot, build

TIMESTAMP = "2026-10-16T06:00:00+00:00"


@pytest.fixture
def snapshot(source) -> Snapshot:
    return build(source, timestamp=TIMESTAMP)


def test_json_report_matches_pipeline_contract(snapshot) -> None:
    """The scan JSON exposes ``.bindings[].risk``, ``.subject`` and ``.role``."""

    data = json.loads(render_snapshot(snapshot, "json"))

    assert data["timestamp"] == TIMESTAMP
    assert len(data["bindings"]) == 5
    assert [b["risk"] for b in data["bindings"] if b["risk"] == "HIGH"] == ["HIGH"]
    first = data["bindings"][0]
    assert first["subject"] == {"kind": "ServiceAccount", "name": "build-bot", "namespace": "default"}
    assert first["role"] == "cluster-admin"
    assert first["namespace"] == ""
    assert data["warning_count"] == 1
    assert data["summary"] == {"high": 1, "medium": 2, "low": 2, "total": 5}


def test_markdown_groups_bindings_by_tier(snapshot) -> None:
    """Markdown has one section per tier, most severe first."""

    text = render_snapshot(snapshot, "markdown")

    high = text.index("## HIGH risk (1)")
    medium = text.index("## MEDIUM risk (2)")
    low = text.index("## LOW risk (2)")
    assert high < medium < low
    assert "ServiceAccount:default/build-bot" in text
    assert "## Warnings" in text


def test_csv_has_one_row_per_binding(snapshot) -> None:
    """CSV output has a header plus a row per binding."""

    rows = list(csv.reader(io.StringIO(render_snapshot(snapshot, "csv"))))

    assert rows[0][:2] == ["Subject Kind", "Subject"]
    assert len(rows) == 1 + len(snapshot.bindings)
    assert rows[1][8] == "HIGH"


def test_diff_csv_labels_change_type(snapshot) -> None:
    """Each diff row starts with the type of change."""

    emptied = Snapshot(timestamp=TIMESTAMP, cluster_context="", namespace_filter=(), bindings=())
    rows = list(csv.reader(io.StringIO(render_diff(diff(snapshot, emptied), "csv"))))

    assert rows[0][0] == "Change"
    assert {row[0] for row in rows[1:]} == {"removed"}


def test_diff_markdown_reports_no_drift(snapshot) -> None:
    """An empty diff says so explicitly."""

    text = render_diff(diff(snapshot, snapshot), "markdown")

    assert "No permission drift detected." in text
    assert "## Added (0)" in text


def test_write_reports_create_parent_directories(tmp_path, snapshot) -> None:
    """Writers create missing output directories."""

    scan_path = write_snapshot_report(snapshot, tmp_path / "out" / "scan.md", "markdown")
    diff_path = write_diff_report(diff(snapshot, snapshot), tmp_path / "out" / "diff.json", "json")

    assert scan_path.read_text(encoding="utf-8").startswith("# RBAC Scan Report")
    assert json.loads(diff_path.read_text(encoding="utf-8"))["changed"] == []


def test_excel_report(tmp_path, snapshot) -> None:
    """The Excel export writes a header row and one row per binding."""

    openpyxl = pytest.importorskip("openpyxl")

    path = write_snapshot_report(snapshot, tmp_path / "scan.xlsx", "excel")

    sheet = openpyxl.load_workbook(path).active
    assert sheet.title == "Bindings"
    assert sheet.max_row == 1 + len(snapshot.bindings)


def test_unknown_text_format_is_rejected(snapshot) -> None:
    """Only json, markdown and csv render to text."""

    with pytest.raises(ValueError, match="Unsupported text format"):
        render_snapshot(snapshot, "html")


def test_format_rule() -> None:
    """Rules render as ``[groups] resources: verbs``."""

    rule = PolicyRule.from_values(["list", "get"], ["pods"], [""], ["web-0"])

    assert format_rule(rule) == "[core] pods: get,list (web-0)"


def test_console_summaries(capsys, snapshot) -> None:
    """Console summaries print tier counts and drift lines."""

    print_risk_summary(snapshot)
    emptied = Snapshot(timestamp=TIMESTAMP, cluster_context="", namespace_filter=(), bindings=())
    print_drift_summary(diff(emptied, snapshot))

    out = capsys.readouterr().out
    assert "HIGH Risk:      1" in out
    assert "Bindings Added:   5" in out
    assert "+ ServiceAccount:default/build-bot -> ClusterRole/cluster-admin [HIGH]" in out
