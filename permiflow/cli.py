"""Command line interface for the RBAC scanner."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import ScanConfig
from .diagram import generate_binding_diagram
from .diff import DiffResult, diff
from .errors import ConnectivityError
from .history import archive_snapshot, compare_with_previous
from .logging_config import setup_logging
from .report import (
    FORMAT_EXTENSIONS,
    FORMATS,
    print_drift_summary,
    print_risk_summary,
    write_diff_report,
    write_snapshot_report,
)
from .snapshot import Snapshot, build, load_snapshot
from .sources import SOURCES, open_source
from .utils import parse_csv_set

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_HIGH_RISK = 3
EXIT_DRIFT = 4

DEFAULT_SCAN_FORMATS = ("json", "markdown", "csv")
DEFAULT_DIFF_FORMATS = ("json", "markdown")


def _source_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("cluster source")
    group.add_argument(
        "--source",
        choices=sorted(SOURCES),
        default=None,
        help="Where RBAC objects are read from (default: kubernetes, or $PERMIFLOW_SOURCE)",
    )
    group.add_argument(
        "--manifest",
        dest="manifests",
        action="append",
        default=None,
        help="YAML/JSON manifest file or directory for --source manifest (repeatable)",
    )
    group.add_argument("--kubeconfig", default=None, help="Path to a kubeconfig file")
    group.add_argument("--context", default=None, help="Kubeconfig context to use")
    group.add_argument(
        "--namespaces",
        default=None,
        help="Comma separated namespaces to scan; ClusterRoleBindings are always included",
    )
    group.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Threads used to resolve bindings (output order is unaffected)",
    )
    group.add_argument(
        "--output-dir",
        default=None,
        help="Directory for default report files (default: reports, or $PERMIFLOW_OUTPUT_DIR)",
    )
    return parent


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Return parsed command line arguments."""

    parser = argparse.ArgumentParser(
        prog="permiflow",
        description="Scan Kubernetes RBAC bindings and detect permission drift.",
    )
    parser.add_argument("--version", action="version", version=f"permiflow {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    parent = _source_options()

    scan = subparsers.add_parser(
        "scan", parents=[parent], help="Scan cluster RBAC bindings and classify their risk"
    )
    scan.add_argument("--output", default=None, help="Write a single report to this path")
    scan.add_argument("--format", choices=FORMATS, default=None, help="Report format")
    scan.add_argument(
        "--fail-on-high-risk",
        action="store_true",
        default=None,
        help="Exit with status 3 when any HIGH risk binding is found",
    )
    scan.add_argument(
        "--history-dir",
        default=None,
        help="Archive the scan by date and compare it with the previous day's archive",
    )
    scan.add_argument(
        "--diagram",
        dest="diagram_path",
        default=None,
        help="Render a Graphviz subject/role diagram at the given path (requires graphviz)",
    )

    diff_parser = subparsers.add_parser(
        "diff", parents=[parent], help="Compare two scans to detect permission drift"
    )
    diff_parser.add_argument("--baseline", required=True, help="Baseline scan JSON")
    diff_parser.add_argument(
        "--current",
        default=None,
        help="Current scan JSON (omit to run a live scan for the current state)",
    )
    diff_parser.add_argument("--output", default=None, help="Write a single report to this path")
    diff_parser.add_argument("--format", choices=FORMATS, default=None, help="Report format")
    diff_parser.add_argument(
        "--fail-on-drift",
        action="store_true",
        default=None,
        help="Exit with status 4 when any drift is detected",
    )
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> ScanConfig:
    return ScanConfig.from_env().with_overrides(
        namespaces=parse_csv_set(args.namespaces),
        output_dir=args.output_dir,
        fail_on_high_risk=getattr(args, "fail_on_high_risk", None),
        fail_on_drift=getattr(args, "fail_on_drift", None),
        source=args.source,
        kubeconfig=args.kubeconfig,
        context=args.context,
        manifests=args.manifests,
        workers=args.workers,
    )


def _infer_format(path: str, explicit: Optional[str]) -> str:
    if explicit:
        return explicit
    suffix = Path(path).suffix.lower()
    for fmt, extension in FORMAT_EXTENSIONS.items():
        if suffix == extension:
            return fmt
    return "json"


def _report_targets(
    args: argparse.Namespace, config: ScanConfig, stem: str, defaults: tuple
) -> List[tuple]:
    if args.output:
        return [(Path(args.output), _infer_format(args.output, args.format))]
    formats = (args.format,) if args.format else defaults
    return [(config.output_dir / f"{stem}{FORMAT_EXTENSIONS[fmt]}", fmt) for fmt in formats]


def run_scan(config: ScanConfig) -> Snapshot:
    """Build a snapshot from the configured source, holding credentials only while listing."""

    with open_source(config) as source:
        return build(source, config.namespaces, max_workers=config.workers)


def _scan_command(args: argparse.Namespace, config: ScanConfig) -> int:
    snapshot = run_scan(config)
    print_risk_summary(snapshot)
    if snapshot.warning_count:
        print(
            f"Warning: skipped {snapshot.warning_count} binding(s) with dangling role references.",
            file=sys.stderr,
        )

    for path, fmt in _report_targets(args, config, "rbac-scan", DEFAULT_SCAN_FORMATS):
        try:
            written = write_snapshot_report(snapshot, path, fmt)
        except RuntimeError as exc:
            print(f"Failed to export {fmt} report: {exc}", file=sys.stderr)
        else:
            print(f"Scan report written to {written}")

    if args.history_dir:
        archive_snapshot(snapshot, args.history_dir)
        daily = compare_with_previous(snapshot, args.history_dir, config.output_dir)
        if daily is not None:
            print_drift_summary(daily)

    if args.diagram_path:
        try:
            path = generate_binding_diagram(snapshot, args.diagram_path)
            if path:
                print(f"Binding diagram written to {path}")
            else:
                print("graphviz is not installed; diagram was not generated.")
        except RuntimeError as exc:
            print(f"Failed to generate binding diagram: {exc}", file=sys.stderr)

    high = snapshot.summary()["high"]
    if high and config.fail_on_high_risk:
        print(f"Error: Found {high} HIGH risk RBAC binding(s).", file=sys.stderr)
        return EXIT_HIGH_RISK
    return EXIT_OK


def _diff_command(args: argparse.Namespace, config: ScanConfig) -> int:
    baseline = load_snapshot(args.baseline)
    if args.current:
        current = load_snapshot(args.current)
    else:
        logger.info("No --current scan given; running a live scan")
        current = run_scan(config)

    result: DiffResult = diff(baseline, current)
    print_drift_summary(result)

    for path, fmt in _report_targets(args, config, "diff", DEFAULT_DIFF_FORMATS):
        try:
            written = write_diff_report(result, path, fmt)
        except RuntimeError as exc:
            print(f"Failed to export {fmt} report: {exc}", file=sys.stderr)
        else:
            print(f"Diff report written to {written}")

    if result.has_drift and config.fail_on_drift:
        total = result.summary()["total"]
        print(f"Error: RBAC drift detected: {total} change(s) since baseline.", file=sys.stderr)
        return EXIT_DRIFT
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point used by ``permiflow`` and ``python -m permiflow``."""

    args = parse_args(argv)
    setup_logging()

    try:
        config = _load_config(args)
        if args.command == "scan":
            return _scan_command(args, config)
        return _diff_command(args, config)
    except (ConnectivityError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR


__all__ = ["EXIT_DRIFT", "EXIT_ERROR", "EXIT_HIGH_RISK", "EXIT_OK", "main", "parse_args", "run_scan"]
