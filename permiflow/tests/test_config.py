"""Tests for run configuration parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from permiflow.config import ScanConfig, parse_bool
from permiflow.errors import ConfigurationError


def test_from_env_defaults() -> None:
    """An empty environment yields the documented defaults."""

    config = ScanConfig.from_env({})

    assert config.namespaces is None
    assert config.output_dir == Path("reports")
    assert config.fail_on_high_risk is False
    assert config.fail_on_drift is False
    assert config.source == "kubernetes"
    assert config.workers == 1


def test_from_env_parses_every_option() -> None:
    """``PERMIFLOW_*`` and kubeconfig variables populate the config."""

    config = ScanConfig.from_env(
        {
            "PERMIFLOW_NAMESPACES": "staging, prod  staging",
            "PERMIFLOW_OUTPUT_DIR": "/tmp/out",
            "PERMIFLOW_FAIL_ON_HIGH_RISK": "true",
            "PERMIFLOW_FAIL_ON_DRIFT": "0",
            "PERMIFLOW_SOURCE": "Manifest",
            "PERMIFLOW_WORKERS": "4",
            "KUBECONFIG_BASE64": "c2VjcmV0",
            "KUBE_CONTEXT": "prod",
        }
    )

    assert config.namespaces == frozenset({"staging", "prod"})
    assert config.output_dir == Path("/tmp/out")
    assert config.fail_on_high_risk is True
    assert config.fail_on_drift is False
    assert config.source == "manifest"
    assert config.workers == 4
    assert config.context == "prod"
    assert "c2VjcmV0" not in repr(config)


@pytest.mark.parametrize("value", ["maybe", "2", "enabled"])
def test_ambiguous_booleans_are_rejected(value: str) -> None:
    """Unknown boolean spellings raise instead of defaulting."""

    with pytest.raises(ConfigurationError, match="PERMIFLOW_FAIL_ON_DRIFT"):
        ScanConfig.from_env({"PERMIFLOW_FAIL_ON_DRIFT": value})


def test_parse_bool_accepts_common_spellings() -> None:
    """Common true/false spellings are accepted case-insensitively."""

    assert parse_bool("YES", name="x") is True
    assert parse_bool("off", name="x") is False
    assert parse_bool(None, name="x") is False


def test_invalid_workers_are_rejected() -> None:
    """Worker counts must be positive integers."""

    with pytest.raises(ConfigurationError):
        ScanConfig.from_env({"PERMIFLOW_WORKERS": "many"})
    with pytest.raises(ConfigurationError):
        ScanConfig().with_overrides(workers=0)


def test_overrides_replace_only_given_values() -> None:
    """``None`` overrides leave the environment value untouched."""

    base = ScanConfig.from_env({"PERMIFLOW_FAIL_ON_DRIFT": "true", "PERMIFLOW_OUTPUT_DIR": "env"})

    config = base.with_overrides(
        output_dir="cli",
        fail_on_drift=None,
        manifests=["a.yaml", "b.yaml"],
        source=" MANIFEST ",
    )

    assert config.output_dir == Path("cli")
    assert config.fail_on_drift is True
    assert config.manifests == ("a.yaml", "b.yaml")
    assert config.source == "manifest"
