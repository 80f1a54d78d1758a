"""Shared fixtures describing a small cluster's RBAC objects."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


from permiflow.sources.manifest import ManifestSource


def rule(verbs, resources, api_groups=("",), resource_names=None) -> Dict[str, object]:
    data: Dict[str, object] = {
        "apiGroups": list(api_groups),
        "resources": list(resources),
        "verbs": list(verbs),
    }
    if resource_names:
        data["resourceNames"] = list(resource_names)
    return data


def role(name: str, rules: List[Dict[str, object]], namespace: Optional[str] = None) -> Dict[str, object]:
    metadata: Dict[str, str] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role" if namespace else "ClusterRole",
        "metadata": metadata,
        "rules": rules,
    }


def binding(
    name: str,
    role_kind: str,
    role_name: str,
    subjects: List[Dict[str, str]],
    namespace: Optional[str] = None,
) -> Dict[str, object]:
    metadata: Dict[str, str] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding" if namespace else "ClusterRoleBinding",
        "metadata": metadata,
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": role_kind,
            "name": role_name,
        },
        "subjects": subjects,
    }


def sa(name: str, namespace: Optional[str] = None) -> Dict[str, str]:
    subject = {"kind": "ServiceAccount", "name": name}
    if namespace:
        subject["namespace"] = namespace
    return subject


def user(name: str) -> Dict[str, str]:
    return {"kind": "User", "name": name, "apiGroup": "rbac.authorization.k8s.io"}


def group(name: str) -> Dict[str, str]:
    return {"kind": "Group", "name": name, "apiGroup": "rbac.authorization.k8s.io"}


@pytest.fixture
def rbac() -> SimpleNamespace:
    """Factories for RBAC manifest objects."""

    return SimpleNamespace(rule=rule, role=role, binding=binding, sa=sa, user=user, group=group)


@pytest.fixture
def cluster_objects() -> List[Dict[str, object]]:
    """Objects covering every risk tier plus one dangling reference."""

    return [
        role("cluster-admin", [rule(["*"], ["*"], ["*"])]),
        role("view", [rule(["get", "list", "watch"], ["pods", "services"])]),
        role("secret-reader", [rule(["get"], ["secrets"])]),
        role("deployer", [rule(["create", "update", "patch"], ["deployments"], ["apps"])], "staging"),
        role("reader", [rule(["get", "list"], ["pods"])], "prod"),
        binding("build-bot-admin", "ClusterRole", "cluster-admin", [sa("build-bot", "default")]),
        binding("viewers", "ClusterRole", "view", [group("devs")]),
        binding("deployer-binding", "Role", "deployer", [sa("ci")], "staging"),
        binding("reader-binding", "Role", "reader", [user("alice")], "prod"),
        binding("secret-binding", "ClusterRole", "secret-reader", [user("bob")], "prod"),
        binding("dangling", "Role", "missing", [user("carol")], "staging"),
    ]


@pytest.fixture
def source(cluster_objects) -> ManifestSource:
    return ManifestSource.from_objects(cluster_objects, cluster_context="test-cluster")
