"""Risk tiers for resolved RBAC bindings.

The classifier is a pure function of a binding's rules and its scope. Every
rule is scored independently and the binding takes the highest tier any rule
reaches, so rule order never affects the result and adding a rule can never
lower the tier.
"""
from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Set

from .bindings import PolicyRule

HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"

RISK_TIERS = (HIGH, MEDIUM, LOW)

# Higher rank means more dangerous.
RISK_RANK: Dict[str, int] = {LOW: 0, MEDIUM: 1, HIGH: 2}

WILDCARD = "*"

RBAC_RESOURCES: FrozenSet[str] = frozenset(
    {"clusterroles", "clusterrolebindings", "roles", "rolebindings"}
)
RBAC_WRITE_VERBS: FrozenSet[str] = frozenset(
    {"create", "update", "patch", "escalate", "bind", "impersonate"}
)
SECRET_READ_VERBS: FrozenSet[str] = frozenset({"get", "list", "watch"})
WRITE_VERBS: FrozenSet[str] = frozenset({"create", "update", "patch", "delete"})
RBAC_GROUPS: FrozenSet[str] = frozenset({"rbac.authorization.k8s.io"})
CORE_GROUPS: FrozenSet[str] = frozenset({""})
WORKLOAD_GROUPS: FrozenSet[str] = frozenset({"", "apps", "batch", "extensions"})
WORKLOAD_RESOURCES: FrozenSet[str] = frozenset(
    {
        "pods",
        "deployments",
        "replicasets",
        "statefulsets",
        "daemonsets",
        "jobs",
        "cronjobs",
        "replicationcontrollers",
    }
)


def _grants_verb(rule: PolicyRule, verbs: Iterable[str]) -> bool:
    return WILDCARD in rule.verbs or not rule.verbs.isdisjoint(verbs)


def _grants_resource(
    rule: PolicyRule, resources: Iterable[str], groups: FrozenSet[str]
) -> bool:
    # A rule without apiGroups is scored as if it named every group.
    if rule.api_groups and WILDCARD not in rule.api_groups and rule.api_groups.isdisjoint(groups):
        return False
    if WILDCARD in rule.resources:
        return True
    wanted: Set[str] = set(resources)
    for resource in wanted:
        if resource in rule.resources:
            return True
        parent, sep, _ = resource.partition("/")
        if sep and f"{parent}/{WILDCARD}" in rule.resources:
            return True
    return False


def _is_full_wildcard(rule: PolicyRule) -> bool:
    return (
        WILDCARD in rule.verbs
        and WILDCARD in rule.resources
        and WILDCARD in rule.api_groups
    )


def classify_rule(rule: PolicyRule, scope: str) -> str:
    """Return the tier reached by a single *rule* bound at *scope*."""

    if _is_full_wildcard(rule):
        return HIGH
    if _grants_verb(rule, RBAC_WRITE_VERBS) and _grants_resource(rule, RBAC_RESOURCES, RBAC_GROUPS):
        return HIGH
    if (
        scope == "ClusterWide"
        and _grants_verb(rule, SECRET_READ_VERBS)
        and _grants_resource(rule, {"secrets"}, CORE_GROUPS)
    ):
        return HIGH
    if _grants_verb(rule, {"create"}) and _grants_resource(rule, {"pods/exec"}, CORE_GROUPS):
        return HIGH
    if _grants_verb(rule, WRITE_VERBS) and _grants_resource(rule, WORKLOAD_RESOURCES, WORKLOAD_GROUPS):
        return MEDIUM
    return LOW


def classify(rules: Iterable[PolicyRule], binding_scope: str) -> str:
    """Return the highest risk tier granted by *rules* at *binding_scope*.

    ``binding_scope`` is ``"ClusterWide"`` for ClusterRoleBindings and
    ``"Namespaced"`` otherwise. A cluster-wide binding is at least MEDIUM even
    when its rules are read-only.
    """

    tier = MEDIUM if binding_scope == "ClusterWide" else LOW
    for rule in rules:
        rule_tier = classify_rule(rule, binding_scope)
        if RISK_RANK[rule_tier] > RISK_RANK[tier]:
            tier = rule_tier
            if tier == HIGH:
                break
    return tier


def max_tier(tiers: Iterable[str]) -> str:
    """Return the most severe tier in *tiers* (``LOW`` when empty)."""

    return max(tiers, key=RISK_RANK.__getitem__, default=LOW)


__all__ = [
    "HIGH",
    "LOW",
    "MEDIUM",
    "RISK_RANK",
    "RISK_TIERS",
    "classify",
    "classify_rule",
    "max_tier",
]
