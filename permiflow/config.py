"""Typed run configuration assembled from the environment and CLI flags."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .utils import parse_csv_set

DEFAULT_OUTPUT_DIR = "reports"
DEFAULT_SOURCE = "kubernetes"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def parse_bool(value: Optional[str], *, name: str) -> bool:
    """Interpret an environment flag, rejecting anything ambiguous."""

    if value is None:
        return False
    normalized = value.strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false), got '{value}'")


def _parse_workers(value: Optional[str]) -> int:
    if not value:
        return 1
    try:
        workers = int(value)
    except ValueError as exc:
        raise ConfigurationError(f"PERMIFLOW_WORKERS must be an integer, got '{value}'") from exc
    if workers < 1:
        raise ConfigurationError("PERMIFLOW_WORKERS must be at least 1")
    return workers


@dataclass(frozen=True)
class ScanConfig:
    """Options recognised by ``permiflow scan`` and ``permiflow diff``."""

    namespaces: Optional[FrozenSet[str]] = None
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    fail_on_high_risk: bool = False
    fail_on_drift: bool = False
    source: str = DEFAULT_SOURCE
    kubeconfig: Optional[str] = None
    kubeconfig_b64: Optional[str] = field(default=None, repr=False)
    context: Optional[str] = None
    manifests: Tuple[str, ...] = ()
    workers: int = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ScanConfig":
        """Build a configuration from ``PERMIFLOW_*`` and kubeconfig variables."""

        env = os.environ if environ is None else environ
        return cls(
            namespaces=parse_csv_set(env.get("PERMIFLOW_NAMESPACES")),
            output_dir=Path(env.get("PERMIFLOW_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR),
            fail_on_high_risk=parse_bool(
                env.get("PERMIFLOW_FAIL_ON_HIGH_RISK"), name="PERMIFLOW_FAIL_ON_HIGH_RISK"
            ),
            fail_on_drift=parse_bool(
                env.get("PERMIFLOW_FAIL_ON_DRIFT"), name="PERMIFLOW_FAIL_ON_DRIFT"
            ),
            source=(env.get("PERMIFLOW_SOURCE") or DEFAULT_SOURCE).strip().lower(),
            kubeconfig=env.get("KUBECONFIG") or None,
            kubeconfig_b64=env.get("KUBECONFIG_BASE64") or None,
            context=env.get("KUBE_CONTEXT") or None,
            workers=_parse_workers(env.get("PERMIFLOW_WORKERS")),
        )

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Return a copy where every non-``None`` override replaces the current value."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        if "output_dir" in changes:
            changes["output_dir"] = Path(changes["output_dir"])
        if "manifests" in changes:
            changes["manifests"] = tuple(changes["manifests"])
        if "source" in changes:
            changes["source"] = str(changes["source"]).strip().lower()
        if changes.get("workers", 1) < 1:
            raise ConfigurationError("--workers must be at least 1")
        return replace(self, **changes)


__all__ = ["DEFAULT_OUTPUT_DIR", "DEFAULT_SOURCE", "ScanConfig", "parse_bool"]
