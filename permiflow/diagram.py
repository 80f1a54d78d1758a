"""Graphviz rendering of the subject to role graph of a snapshot."""
from __future__ import annotations

import hashlib
from pathlib import Path
from subprocess import CalledProcessError
from typing import Dict, Optional, Union

try:  # Optional dependency used for diagram generation
    from graphviz import Digraph, ExecutableNotFound  # type: ignore
except ImportError:  # pragma: no cover - library is optional
    Digraph = None  # type: ignore
    ExecutableNotFound = None  # type: ignore

from .bindings import Binding, RoleRef, Subject
from .risk import RISK_RANK
from .snapshot import Snapshot

RISK_COLORS: Dict[str, str] = {
    "HIGH": "#d9534f",
    "MEDIUM": "#f0ad4e",
    "LOW": "#5cb85c",
}

SUBJECT_SHAPES: Dict[str, str] = {
    "ServiceAccount": "box",
    "User": "ellipse",
    "Group": "hexagon",
}


def _node_id(prefix: str, *parts: str) -> str:
    digest = hashlib.sha1("\x00".join(parts).encode("utf-8")).hexdigest()[:12]
    return f"{prefix}_{digest}"


def subject_node_id(subject: Subject) -> str:
    return _node_id("subject", subject.kind, subject.namespace, subject.name)


def role_node_id(role: RoleRef) -> str:
    return _node_id("role", role.kind, role.namespace, role.name)


def _edge_label(binding: Binding) -> str:
    if binding.binding_namespace:
        return f"{binding.binding_namespace}/{binding.binding_name}"
    return binding.binding_name


def build_binding_graph(snapshot: Snapshot, *, min_risk: Optional[str] = None) -> "Digraph":
    """Return a :class:`graphviz.Digraph` with one edge per binding.

    Edges and role nodes are coloured by risk tier. ``min_risk`` drops
    bindings below the given tier to keep large clusters readable.
    """

    if Digraph is None:
        raise RuntimeError("The 'graphviz' package is required to build binding diagrams.")

    threshold = RISK_RANK[min_risk] if min_risk else 0

    graph = Digraph("rbac_bindings", format="png")
    graph.attr(rankdir="LR", fontname="Helvetica", label=f"RBAC bindings {snapshot.timestamp}")
    graph.attr("node", fontname="Helvetica", fontsize="10")
    graph.attr("edge", fontname="Helvetica", fontsize="8")

    role_risk: Dict[str, str] = {}
    for binding in snapshot.bindings:
        if RISK_RANK[binding.risk] < threshold:
            continue
        subject_id = subject_node_id(binding.subject)
        role_id = role_node_id(binding.role_ref)
        graph.node(
            subject_id,
            binding.subject.display(),
            shape=SUBJECT_SHAPES.get(binding.subject.kind, "box"),
        )
        current = role_risk.get(role_id)
        if current is None or RISK_RANK[binding.risk] > RISK_RANK[current]:
            role_risk[role_id] = binding.risk
            graph.node(
                role_id,
                binding.role_ref.display(),
                shape="note",
                style="filled",
                fillcolor=RISK_COLORS[binding.risk],
            )
        graph.edge(
            subject_id,
            role_id,
            label=_edge_label(binding),
            color=RISK_COLORS[binding.risk],
        )
    return graph


def generate_binding_diagram(
    snapshot: Snapshot, output_path: Union[str, Path], *, min_risk: Optional[str] = None
) -> Optional[str]:
    """Render the binding graph next to *output_path*; ``None`` when graphviz is absent."""

    if Digraph is None:
        return None

    graph = build_binding_graph(snapshot, min_risk=min_risk)
    path = Path(output_path)
    if path.suffix:
        graph.format = path.suffix.lstrip(".")
    try:
        return graph.render(str(path.with_suffix("")), cleanup=True)
    except ExecutableNotFound as exc:
        raise RuntimeError(
            "Graphviz 'dot' executable not found; install Graphviz to render diagrams."
        ) from exc
    except CalledProcessError as exc:
        stderr = (
            exc.stderr.decode("utf-8", "replace")
            if isinstance(exc.stderr, bytes)
            else exc.stderr or ""
        )
        message = stderr.strip() or str(exc)
        raise RuntimeError(f"graphviz failed to render the binding diagram: {message}") from exc


__all__ = ["RISK_COLORS", "build_binding_graph", "generate_binding_diagram"]
