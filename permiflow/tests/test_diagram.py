"""Tests for the Graphviz binding diagram."""

from __future__ import annotations

import pytest

pytest.importorskip("graphviz")

from permiflow.diagram import (  # noqa: E402
    RISK_COLORS,
    build_binding_graph,
    generate_binding_diagram,
    role_node_id,
    subject_node_id,
)
from permiflow.snapshot import build  # noqa: E402


def test_graph_contains_subjects_roles_and_risk_colours(source) -> None:
    """Each binding becomes a subject to role edge coloured by its tier."""

    snapshot = build(source, timestamp="2026-10-16T00:00:00+00:00")

    dot = build_binding_graph(snapshot).source

    assert "ServiceAccount:default/build-bot" in dot
    assert "ClusterRole/cluster-admin" in dot
    assert "staging/deployer-binding" in dot
    assert RISK_COLORS["HIGH"] in dot


def test_min_risk_filters_lower_tiers(source) -> None:
    """Only bindings at or above ``min_risk`` are drawn."""

    snapshot = build(source, timestamp="2026-10-16T00:00:00+00:00")

    dot = build_binding_graph(snapshot, min_risk="HIGH").source

    assert "ClusterRole/cluster-admin" in dot
    assert "User:alice" not in dot
    assert "Role/reader" not in dot


def test_node_ids_are_stable(source) -> None:
    """Node identifiers depend only on the subject or role identity."""

    binding = build(source).bindings[0]

    assert subject_node_id(binding.subject) == subject_node_id(binding.subject)
    assert role_node_id(binding.role_ref).startswith("role_")


def test_missing_dot_executable_is_reported(source, tmp_path, monkeypatch) -> None:
    """A missing ``dot`` binary surfaces as a RuntimeError."""

    import graphviz

    def fail(self, *args, **kwargs):
        raise graphviz.ExecutableNotFound(["dot"])

    monkeypatch.setattr(graphviz.Digraph, "render", fail)

    with pytest.raises(RuntimeError, match="dot"):
        generate_binding_diagram(build(source), tmp_path / "bindings.png")
