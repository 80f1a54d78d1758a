"""Report emitters for snapshots and diffs.

JSON is the stable contract read by CI ``jq`` filters. Markdown, CSV and
Excel are presentation formats and may change between releases.
"""
from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Iterable, List, Sequence, Union

from .bindings import Binding, PolicyRule
from .diff import DiffResult
from .risk import RISK_TIERS
from .snapshot import Snapshot, snapshot_to_dict
from .utils import canonical_json

FORMATS = ("json", "markdown", "csv", "excel")

FORMAT_EXTENSIONS = {"json": ".json", "markdown": ".md", "csv": ".csv", "excel": ".xlsx"}

BINDING_HEADERS = (
    "Subject Kind",
    "Subject",
    "Subject Namespace",
    "Role Kind",
    "Role",
    "Binding",
    "Namespace",
    "Scope",
    "Risk",
    "Rules",
)

CHANGE_HEADERS = ("Change",) + BINDING_HEADERS + ("Changed Fields",)


def format_rule(rule: PolicyRule) -> str:
    """Return a compact one-line description such as ``[apps] deployments: get,list``."""

    groups = ",".join(sorted(group or "core" for group in rule.api_groups)) or "core"
    resources = ",".join(sorted(rule.resources)) or "-"
    verbs = ",".join(sorted(rule.verbs)) or "-"
    text = f"[{groups}] {resources}: {verbs}"
    if rule.resource_names:
        text += f" ({','.join(sorted(rule.resource_names))})"
    return text


def _binding_row(binding: Binding) -> List[str]:
    return [
        binding.subject.kind,
        binding.subject.name,
        binding.subject.namespace,
        binding.role_ref.kind,
        binding.role_ref.name,
        binding.binding_name,
        binding.binding_namespace,
        binding.scope,
        binding.risk,
        "; ".join(format_rule(rule) for rule in binding.sorted_rules()),
    ]


def _diff_rows(result: DiffResult) -> List[List[str]]:
    rows: List[List[str]] = []
    rows.extend(["added"] + _binding_row(binding) + [""] for binding in result.added)
    rows.extend(["removed"] + _binding_row(binding) + [""] for binding in result.removed)
    rows.extend(
        ["changed"] + _binding_row(change.after) + [",".join(change.changed_fields)]
        for change in result.changed
    )
    return rows


def _csv_text(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def _md_cell(value: str) -> str:
    return value.replace("|", "\\|") if value else "-"


def _md_table(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> List[str]:
    lines = ["| " + " | ".join(headers) + " |", "|" + "---|" * len(headers)]
    for row in rows:
        lines.append("| " + " | ".join(_md_cell(str(cell)) for cell in row) + " |")
    return lines


def _md_binding_rows(bindings: Iterable[Binding]) -> List[List[str]]:
    return [
        [
            binding.subject.display(),
            binding.role_ref.display(),
            binding.binding_name,
            binding.binding_namespace,
            binding.scope,
        ]
        for binding in bindings
    ]


def snapshot_to_markdown(snapshot: Snapshot) -> str:
    """Render *snapshot* as Markdown grouped by risk tier."""

    summary = snapshot.summary()
    lines = [
        "# RBAC Scan Report",
        "",
        f"- Timestamp: {snapshot.timestamp}",
        f"- Cluster context: {snapshot.cluster_context or '-'}",
        f"- Namespaces: {', '.join(snapshot.namespace_filter) or 'all'}",
        f"- Total bindings: {summary['total']}",
        f"- Warnings: {snapshot.warning_count}",
        "",
    ]
    headers = ("Subject", "Role", "Binding", "Namespace", "Scope")
    for tier in RISK_TIERS:
        tier_bindings = [binding for binding in snapshot.bindings if binding.risk == tier]
        lines.append(f"## {tier} risk ({len(tier_bindings)})")
        lines.append("")
        if tier_bindings:
            lines.extend(_md_table(headers, _md_binding_rows(tier_bindings)))
        else:
            lines.append("_None._")
        lines.append("")
    if snapshot.warnings:
        lines.append("## Warnings")
        lines.append("")
        lines.extend(f"- {warning}" for warning in snapshot.warnings)
        lines.append("")
    return "\n".join(lines)


def diff_to_markdown(result: DiffResult) -> str:
    """Render *result* as Markdown with added, removed and changed sections."""

    summary = result.summary()
    lines = [
        "# RBAC Drift Report",
        "",
        f"- Baseline: {result.baseline_timestamp or '-'}",
        f"- Current: {result.current_timestamp or '-'}",
        f"- Added: {summary['added']}",
        f"- Removed: {summary['removed']}",
        f"- Changed: {summary['changed']}",
        "",
    ]
    headers = ("Subject", "Role", "Binding", "Namespace", "Risk")

    def rows(bindings: Iterable[Binding]) -> List[List[str]]:
        return [
            [
                binding.subject.display(),
                binding.role_ref.display(),
                binding.binding_name,
                binding.binding_namespace,
                binding.risk,
            ]
            for binding in bindings
        ]

    for title, bindings in (("Added", result.added), ("Removed", result.removed)):
        lines.append(f"## {title} ({len(bindings)})")
        lines.append("")
        lines.extend(_md_table(headers, rows(bindings)) if bindings else ["_None._"])
        lines.append("")

    lines.append(f"## Changed ({len(result.changed)})")
    lines.append("")
    if result.changed:
        change_rows = [
            [
                change.after.subject.display(),
                change.after.role_ref.display(),
                change.after.binding_name,
                change.after.binding_namespace,
                f"{change.before.risk} -> {change.after.risk}",
                ", ".join(change.changed_fields),
            ]
            for change in result.changed
        ]
        lines.extend(_md_table(headers + ("Changed Fields",), change_rows))
    else:
        lines.append("_None._")
    lines.append("")
    if not result.has_drift:
        lines.append("No permission drift detected.")
        lines.append("")
    return "\n".join(lines)


def render_snapshot(snapshot: Snapshot, fmt: str) -> str:
    """Return *snapshot* rendered as ``json``, ``markdown`` or ``csv`` text."""

    if fmt == "json":
        return canonical_json(snapshot_to_dict(snapshot))
    if fmt == "markdown":
        return snapshot_to_markdown(snapshot)
    if fmt == "csv":
        return _csv_text(BINDING_HEADERS, (_binding_row(b) for b in snapshot.bindings))
    raise ValueError(f"Unsupported text format '{fmt}'. Valid formats: json, markdown, csv")


def render_diff(result: DiffResult, fmt: str) -> str:
    """Return *result* rendered as ``json``, ``markdown`` or ``csv`` text."""

    if fmt == "json":
        return canonical_json(result.to_dict())
    if fmt == "markdown":
        return diff_to_markdown(result)
    if fmt == "csv":
        return _csv_text(CHANGE_HEADERS, _diff_rows(result))
    raise ValueError(f"Unsupported text format '{fmt}'. Valid formats: json, markdown, csv")


def write_snapshot_report(snapshot: Snapshot, path: Union[str, Path], fmt: str) -> Path:
    """Write *snapshot* to *path* in *fmt* and return the path."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "excel":
        rows = (_binding_row(binding) for binding in snapshot.bindings)
        return _export_rows_to_excel(rows, BINDING_HEADERS, path, sheet_title="Bindings", purpose="scan")
    path.write_text(render_snapshot(snapshot, fmt), encoding="utf-8")
    return path


def write_diff_report(result: DiffResult, path: Union[str, Path], fmt: str) -> Path:
    """Write *result* to *path* in *fmt* and return the path."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "excel":
        return _export_rows_to_excel(_diff_rows(result), CHANGE_HEADERS, path, sheet_title="Drift", purpose="diff")
    path.write_text(render_diff(result, fmt), encoding="utf-8")
    return path


def print_risk_summary(snapshot: Snapshot) -> None:
    """Pretty-print tier counts and the HIGH risk bindings to stdout."""

    summary = snapshot.summary()
    print("=== Risk Summary ===")
    print(f"  Total Bindings: {summary['total']}")
    print(f"  HIGH Risk:      {summary['high']}")
    print(f"  MEDIUM Risk:    {summary['medium']}")
    print(f"  LOW Risk:       {summary['low']}")
    if snapshot.warning_count:
        print(f"  Skipped:        {snapshot.warning_count}")

    high = [binding for binding in snapshot.bindings if binding.risk == "HIGH"]
    if not high:
        return
    print()
    header = f"{'Subject':<45} {'Role':<40} Binding"
    print(header)
    print("-" * len(header))
    for binding in high:
        subject = binding.subject.display()
        subject = (subject[:42] + "...") if len(subject) > 45 else subject
        role = binding.role_ref.display()
        role = (role[:37] + "...") if len(role) > 40 else role
        location = f"{binding.binding_namespace}/{binding.binding_name}" if binding.binding_namespace else binding.binding_name
        print(f"{subject:<45} {role:<40} {location}")


def print_drift_summary(result: DiffResult) -> None:
    """Pretty-print drift counts and the added/removed grants to stdout."""

    summary = result.summary()
    print("=== Permission Drift Summary ===")
    print(f"  Bindings Added:   {summary['added']}")
    print(f"  Bindings Removed: {summary['removed']}")
    print(f"  Bindings Changed: {summary['changed']}")
    print(f"  Total Changes:    {summary['total']}")
    if not result.has_drift:
        print("No permission drift detected.")
        return
    for binding in result.added:
        print(f"  + {binding.subject.display()} -> {binding.role_ref.display()} [{binding.risk}]")
    for binding in result.removed:
        print(f"  - {binding.subject.display()} -> {binding.role_ref.display()} [{binding.risk}]")
    for change in result.changed:
        print(
            f"  ~ {change.after.subject.display()} -> {change.after.role_ref.display()} "
            f"({', '.join(change.changed_fields)})"
        )


def _export_rows_to_excel(
    rows: Iterable[Sequence[object]],
    headers: Sequence[str],
    path: Path,
    *,
    sheet_title: str,
    purpose: str,
) -> Path:
    """Write ``rows`` with ``headers`` to an Excel sheet using :mod:`openpyxl`."""

    try:
        from openpyxl import Workbook
        from openpyxl.utils import get_column_letter
    except ImportError as exc:  # pragma: no cover - dependency missing during tests
        raise RuntimeError(
            "The 'openpyxl' package is required to export "
            f"the {purpose} report to Excel. Install it with 'pip install openpyxl'."
        ) from exc

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title

    sheet.append(list(headers))
    column_widths = [len(header) for header in headers]

    for row in rows:
        values = list(row)
        sheet.append(values)
        for idx, value in enumerate(values):
            column_widths[idx] = max(column_widths[idx], len(str(value)))

    for idx, width in enumerate(column_widths, start=1):
        column_letter = get_column_letter(idx)
        sheet.column_dimensions[column_letter].width = min(width + 2, 60)

    workbook.save(str(path))
    return path


__all__ = [
    "FORMATS",
    "FORMAT_EXTENSIONS",
    "diff_to_markdown",
    "format_rule",
    "print_drift_summary",
    "print_risk_summary",
    "render_diff",
    "render_snapshot",
    "snapshot_to_markdown",
    "write_diff_report",
    "write_snapshot_report",
]
