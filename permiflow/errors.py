"""Exception hierarchy shared by the scan and diff pipelines."""
from __future__ import annotations


class PermiflowError(Exception):
    """Base class for all errors raised by :mod:`permiflow`."""


class ResolutionError(PermiflowError, LookupError):
    """A binding references a Role or ClusterRole that does not exist."""

    def __init__(self, binding: str, role_kind: str, role_name: str, namespace: str = "") -> None:
        self.binding = binding
        self.role_kind = role_kind
        self.role_name = role_name
        self.namespace = namespace
        target = f"{namespace}/{role_name}" if namespace else role_name
        super().__init__(f"{binding} references missing {role_kind} '{target}'")


class ConnectivityError(PermiflowError, RuntimeError):
    """The cluster API could not be reached or refused a listing call."""


class MalformedSnapshotError(PermiflowError, ValueError):
    """A serialized snapshot is missing required fields or is otherwise invalid."""

    def __init__(self, message: str, *, source: str = "<snapshot>") -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class ConfigurationError(PermiflowError, ValueError):
    """An environment variable or command line option has an invalid value."""


__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "MalformedSnapshotError",
    "PermiflowError",
    "ResolutionError",
]
