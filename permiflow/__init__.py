"""Kubernetes RBAC scanning and drift detection."""

from __future__ import annotations

from .bindings import Binding, PolicyRule, RoleRef, Subject
from .diff import BindingChange, DiffResult, diff
from .errors import (
    ConfigurationError,
    ConnectivityError,
    MalformedSnapshotError,
    PermiflowError,
    ResolutionError,
)
from .risk import classify
from .snapshot import Snapshot, build, load_snapshot

__version__ = "0.1.0"

__all__ = [
    "Binding",
    "BindingChange",
    "ConfigurationError",
    "ConnectivityError",
    "DiffResult",
    "MalformedSnapshotError",
    "PermiflowError",
    "PolicyRule",
    "ResolutionError",
    "RoleRef",
    "Snapshot",
    "Subject",
    "__version__",
    "build",
    "classify",
    "diff",
    "load_snapshot",
]
