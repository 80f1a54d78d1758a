"""Data models for resolved RBAC bindings."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Literal, Optional, Tuple

SubjectKind = Literal["ServiceAccount", "User", "Group"]
RoleKind = Literal["Role", "ClusterRole"]
Scope = Literal["Namespaced", "ClusterWide"]

SUBJECT_KINDS: Tuple[str, ...] = ("ServiceAccount", "User", "Group")
ROLE_KINDS: Tuple[str, ...] = ("Role", "ClusterRole")

IdentityKey = Tuple[str, str, str, str, str, str, str]


@dataclass(frozen=True)
class Subject:
    """A ServiceAccount, User or Group named by a binding."""

    kind: str
    name: str
    namespace: str = ""

    def display(self) -> str:
        """Return ``Kind:namespace/name`` or ``Kind:name`` for cluster-scoped subjects."""

        qualified = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{self.kind}:{qualified}"

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "name": self.name, "namespace": self.namespace}


@dataclass(frozen=True)
class RoleRef:
    """The Role or ClusterRole a binding points at."""

    name: str
    kind: str
    namespace: str = ""

    def display(self) -> str:
        return f"{self.kind}/{self.name}"


def _frozen(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    return frozenset(values or ())


@dataclass(frozen=True)
class PolicyRule:
    """A single rule of a Role or ClusterRole.

    All collections are stored as frozensets so two rules that list the same
    verbs, resources or API groups in a different order compare equal.
    ``resource_names`` is ``None`` when the rule is not restricted to named
    objects.
    """

    verbs: FrozenSet[str] = field(default_factory=frozenset)
    resources: FrozenSet[str] = field(default_factory=frozenset)
    api_groups: FrozenSet[str] = field(default_factory=frozenset)
    resource_names: Optional[FrozenSet[str]] = None

    @classmethod
    def from_values(
        cls,
        verbs: Optional[Iterable[str]] = None,
        resources: Optional[Iterable[str]] = None,
        api_groups: Optional[Iterable[str]] = None,
        resource_names: Optional[Iterable[str]] = None,
    ) -> "PolicyRule":
        """Build a rule from arbitrary iterables, normalising empty name lists to ``None``."""

        names = _frozen(resource_names)
        return cls(
            verbs=_frozen(verbs),
            resources=_frozen(resources),
            api_groups=_frozen(api_groups),
            resource_names=names or None,
        )

    @classmethod
    def from_manifest(cls, rule: Dict[str, object]) -> "PolicyRule":
        """Build a rule from the camelCase mapping used in Kubernetes manifests."""

        return cls.from_values(
            verbs=rule.get("verbs"),  # type: ignore[arg-type]
            resources=rule.get("resources"),  # type: ignore[arg-type]
            api_groups=rule.get("apiGroups"),  # type: ignore[arg-type]
            resource_names=rule.get("resourceNames"),  # type: ignore[arg-type]
        )

    def sort_key(self) -> Tuple[Tuple[str, ...], ...]:
        return (
            tuple(sorted(self.api_groups)),
            tuple(sorted(self.resources)),
            tuple(sorted(self.verbs)),
            tuple(sorted(self.resource_names or ())),
        )

    def to_dict(self) -> Dict[str, List[str]]:
        data = {
            "apiGroups": sorted(self.api_groups),
            "resources": sorted(self.resources),
            "verbs": sorted(self.verbs),
        }
        if self.resource_names is not None:
            data["resourceNames"] = sorted(self.resource_names)
        return data


@dataclass(frozen=True)
class Binding:
    """One subject granted one role through one RoleBinding or ClusterRoleBinding."""

    binding_name: str
    binding_namespace: str
    subject: Subject
    role_ref: RoleRef
    rules: Tuple[PolicyRule, ...] = ()
    risk: str = "LOW"

    @property
    def scope(self) -> Scope:
        """ClusterRoleBindings carry no namespace and apply cluster-wide."""

        return "Namespaced" if self.binding_namespace else "ClusterWide"

    @property
    def binding_kind(self) -> str:
        return "RoleBinding" if self.binding_namespace else "ClusterRoleBinding"

    def key(self) -> IdentityKey:
        """Identity of the grant across snapshots; ``rules`` and ``risk`` are excluded."""

        return (
            self.binding_name,
            self.binding_namespace,
            self.subject.kind,
            self.subject.name,
            self.subject.namespace,
            self.role_ref.name,
            self.role_ref.kind,
        )

    def rule_set(self) -> FrozenSet[PolicyRule]:
        return frozenset(self.rules)

    def sorted_rules(self) -> List[PolicyRule]:
        return sorted(set(self.rules), key=PolicyRule.sort_key)

    def to_dict(self) -> Dict[str, object]:
        """Return the JSON representation consumed by downstream ``jq`` filters."""

        return {
            "binding": self.binding_name,
            "binding_kind": self.binding_kind,
            "namespace": self.binding_namespace,
            "risk": self.risk,
            "role": self.role_ref.name,
            "role_kind": self.role_ref.kind,
            "role_namespace": self.role_ref.namespace,
            "rules": [rule.to_dict() for rule in self.sorted_rules()],
            "scope": self.scope,
            "subject": self.subject.to_dict(),
        }


def sort_bindings(bindings: Iterable[Binding]) -> List[Binding]:
    """Return *bindings* ordered lexicographically by identity key."""

    return sorted(bindings, key=Binding.key)


__all__ = [
    "Binding",
    "IdentityKey",
    "PolicyRule",
    "ROLE_KINDS",
    "RoleKind",
    "RoleRef",
    "SUBJECT_KINDS",
    "Scope",
    "Subject",
    "SubjectKind",
    "sort_bindings",
]
