"""Snapshot construction from a binding source, plus JSON persistence."""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .bindings import (
    ROLE_KINDS,
    SUBJECT_KINDS,
    Binding,
    IdentityKey,
    PolicyRule,
    RoleRef,
    Subject,
    sort_bindings,
)
from .errors import MalformedSnapshotError, ResolutionError
from .risk import HIGH, LOW, MEDIUM, RISK_TIERS, classify
from .sources import BindingSource
from .utils import canonical_json, metadata_field, utc_timestamp

logger = logging.getLogger(__name__)

RuleSet = Tuple[PolicyRule, ...]


@dataclass(frozen=True)
class Snapshot:
    """Canonical capture of every binding visible at one point in time."""

    timestamp: str
    cluster_context: str
    namespace_filter: Tuple[str, ...]
    bindings: Tuple[Binding, ...]
    warnings: Tuple[str, ...] = ()

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def risk_counts(self) -> Dict[str, int]:
        """Return the number of bindings per risk tier."""

        counts = {tier: 0 for tier in RISK_TIERS}
        for binding in self.bindings:
            counts[binding.risk] += 1
        return counts

    def summary(self) -> Dict[str, int]:
        counts = self.risk_counts()
        return {
            "high": counts[HIGH],
            "medium": counts[MEDIUM],
            "low": counts[LOW],
            "total": len(self.bindings),
        }


def _rules_from(obj: Dict[str, Any]) -> RuleSet:
    return tuple(PolicyRule.from_manifest(rule) for rule in (obj.get("rules") or []))


def _index_roles(
    source: BindingSource,
) -> Tuple[Dict[Tuple[str, str], RuleSet], Dict[str, RuleSet]]:
    roles = {
        (metadata_field(role, "namespace"), metadata_field(role, "name")): _rules_from(role)
        for role in source.list_roles()
    }
    cluster_roles = {
        metadata_field(role, "name"): _rules_from(role) for role in source.list_cluster_roles()
    }
    return roles, cluster_roles


def _subject_from(raw: Dict[str, Any], binding_namespace: str) -> Optional[Subject]:
    kind = raw.get("kind")
    name = raw.get("name")
    if kind not in SUBJECT_KINDS or not name:
        return None
    if kind == "ServiceAccount":
        namespace = raw.get("namespace") or binding_namespace
    else:
        namespace = ""
    return Subject(kind=kind, name=str(name), namespace=str(namespace))


def resolve_binding(
    obj: Dict[str, Any],
    *,
    cluster_scoped: bool,
    roles: Dict[Tuple[str, str], RuleSet],
    cluster_roles: Dict[str, RuleSet],
) -> List[Binding]:
    """Expand one RoleBinding or ClusterRoleBinding into a Binding per subject.

    Raises :class:`ResolutionError` when the referenced role does not exist.
    A ClusterRoleBinding that points at a namespaced Role can never resolve
    and is treated the same way.
    """

    name = metadata_field(obj, "name")
    namespace = "" if cluster_scoped else metadata_field(obj, "namespace")
    label = (
        f"ClusterRoleBinding '{name}'" if cluster_scoped else f"RoleBinding '{namespace}/{name}'"
    )
    role_ref = obj.get("roleRef") or {}
    role_kind = str(role_ref.get("kind") or "")
    role_name = str(role_ref.get("name") or "")

    rules: Optional[RuleSet] = None
    role_namespace = ""
    if role_kind == "ClusterRole":
        rules = cluster_roles.get(role_name)
    elif role_kind == "Role" and not cluster_scoped:
        role_namespace = namespace
        rules = roles.get((namespace, role_name))
    if rules is None:
        raise ResolutionError(label, role_kind or "role", role_name, role_namespace)

    scope = "ClusterWide" if cluster_scoped else "Namespaced"
    risk = classify(rules, scope)
    ref = RoleRef(name=role_name, kind=role_kind, namespace=role_namespace)

    bindings: List[Binding] = []
    for raw_subject in obj.get("subjects") or []:
        subject = _subject_from(raw_subject, namespace)
        if subject is None:
            logger.debug("Ignoring unsupported subject %r in %s", raw_subject, label)
            continue
        bindings.append(
            Binding(
                binding_name=name,
                binding_namespace=namespace,
                subject=subject,
                role_ref=ref,
                rules=rules,
                risk=risk,
            )
        )
    return bindings


def build(
    source: BindingSource,
    namespace_filter: Optional[Iterable[str]] = None,
    *,
    timestamp: Optional[str] = None,
    max_workers: int = 1,
) -> Snapshot:
    """Collect every binding from *source* into a canonical :class:`Snapshot`.

    A non-empty ``namespace_filter`` keeps only RoleBindings whose own
    namespace is listed. ClusterRoleBindings are not "in" any namespace and
    are always included.

    Bindings that reference a missing role are skipped and recorded in
    ``Snapshot.warnings``; enumeration continues. Connectivity failures
    raised by the source propagate and abort the build.
    """

    namespaces = frozenset(namespace_filter or ())
    roles, cluster_roles = _index_roles(source)

    candidates: List[Tuple[Dict[str, Any], bool]] = []
    for obj in source.list_role_bindings():
        if namespaces and metadata_field(obj, "namespace") not in namespaces:
            continue
        candidates.append((obj, False))
    for obj in source.list_cluster_role_bindings():
        candidates.append((obj, True))

    def resolve(candidate: Tuple[Dict[str, Any], bool]) -> Tuple[List[Binding], Optional[str]]:
        obj, cluster_scoped = candidate
        try:
            resolved = resolve_binding(
                obj, cluster_scoped=cluster_scoped, roles=roles, cluster_roles=cluster_roles
            )
        except ResolutionError as exc:
            logger.warning("Skipping binding: %s", exc)
            return [], str(exc)
        return resolved, None

    if max_workers > 1 and len(candidates) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(resolve, candidates))
    else:
        results = [resolve(candidate) for candidate in candidates]

    merged: Dict[IdentityKey, Binding] = {}
    warnings: List[str] = []
    for resolved, warning in results:
        if warning is not None:
            warnings.append(warning)
        for binding in resolved:
            merged[binding.key()] = binding

    if warnings:
        logger.warning("%d binding(s) skipped due to dangling role references", len(warnings))

    return Snapshot(
        timestamp=timestamp or utc_timestamp(),
        cluster_context=source.cluster_context,
        namespace_filter=tuple(sorted(namespaces)),
        bindings=tuple(sort_bindings(merged.values())),
        warnings=tuple(sorted(warnings)),
    )


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    """Return the scan JSON document for *snapshot*."""

    return {
        "bindings": [binding.to_dict() for binding in snapshot.bindings],
        "cluster_context": snapshot.cluster_context,
        "namespace_filter": list(snapshot.namespace_filter),
        "summary": snapshot.summary(),
        "timestamp": snapshot.timestamp,
        "warning_count": snapshot.warning_count,
        "warnings": list(snapshot.warnings),
    }


def _require_str(data: Dict[str, Any], field: str, where: str, source: str, *, optional: bool = False) -> str:
    value = data.get(field)
    if value is None and optional:
        return ""
    if not isinstance(value, str) or (not optional and not value):
        raise MalformedSnapshotError(f"{where} is missing required field '{field}'", source=source)
    return value


def _string_list(value: Any, field: str, where: str, source: str) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise MalformedSnapshotError(f"{where} field '{field}' must be a list of strings", source=source)
    return value


def _rule_from_dict(raw: Any, where: str, source: str) -> PolicyRule:
    if not isinstance(raw, dict):
        raise MalformedSnapshotError(f"{where} must be an object", source=source)
    return PolicyRule.from_values(
        verbs=_string_list(raw.get("verbs"), "verbs", where, source),
        resources=_string_list(raw.get("resources"), "resources", where, source),
        api_groups=_string_list(raw.get("apiGroups"), "apiGroups", where, source),
        resource_names=_string_list(raw.get("resourceNames"), "resourceNames", where, source),
    )


def binding_from_dict(raw: Any, index: int, *, source: str = "<snapshot>") -> Binding:
    """Parse one serialised binding, raising :class:`MalformedSnapshotError` on bad input."""

    where = f"bindings[{index}]"
    if not isinstance(raw, dict):
        raise MalformedSnapshotError(f"{where} must be an object", source=source)

    raw_subject = raw.get("subject")
    if not isinstance(raw_subject, dict):
        raise MalformedSnapshotError(f"{where} is missing required field 'subject'", source=source)
    subject_kind = _require_str(raw_subject, "kind", f"{where}.subject", source)
    if subject_kind not in SUBJECT_KINDS:
        raise MalformedSnapshotError(
            f"{where}.subject has unknown kind '{subject_kind}'", source=source
        )
    subject = Subject(
        kind=subject_kind,
        name=_require_str(raw_subject, "name", f"{where}.subject", source),
        namespace=_require_str(raw_subject, "namespace", f"{where}.subject", source, optional=True),
    )

    binding_name = _require_str(raw, "binding", where, source)
    if "namespace" not in raw:
        # Empty means cluster-scoped; absent is malformed.
        raise MalformedSnapshotError(f"{where} is missing required field 'namespace'", source=source)
    namespace = _require_str(raw, "namespace", where, source, optional=True)
    role_name = _require_str(raw, "role", where, source)
    role_kind = _require_str(raw, "role_kind", where, source)
    if role_kind not in ROLE_KINDS:
        raise MalformedSnapshotError(f"{where} has unknown role_kind '{role_kind}'", source=source)
    if "role_namespace" in raw:
        role_namespace = _require_str(raw, "role_namespace", where, source, optional=True)
    else:
        role_namespace = namespace if role_kind == "Role" else ""

    raw_rules = raw.get("rules")
    if not isinstance(raw_rules, list):
        raise MalformedSnapshotError(f"{where} is missing required field 'rules'", source=source)
    rules = tuple(
        _rule_from_dict(rule, f"{where}.rules[{rule_index}]", source)
        for rule_index, rule in enumerate(raw_rules)
    )

    scope = "Namespaced" if namespace else "ClusterWide"
    risk = raw.get("risk")
    if risk is None:
        risk = classify(rules, scope)
    elif risk not in RISK_TIERS:
        raise MalformedSnapshotError(f"{where} has invalid risk '{risk}'", source=source)

    return Binding(
        binding_name=binding_name,
        binding_namespace=namespace,
        subject=subject,
        role_ref=RoleRef(name=role_name, kind=role_kind, namespace=role_namespace),
        rules=rules,
        risk=risk,
    )


def snapshot_from_dict(data: Any, *, source: str = "<snapshot>") -> Snapshot:
    """Rebuild a :class:`Snapshot` from its JSON document.

    The snapshot is re-canonicalised, so input order does not matter, but
    duplicate identity keys are rejected rather than silently merged.
    """

    if not isinstance(data, dict):
        raise MalformedSnapshotError("top-level value must be an object", source=source)
    raw_bindings = data.get("bindings")
    if not isinstance(raw_bindings, list):
        raise MalformedSnapshotError("missing required 'bindings' array", source=source)

    seen: Dict[IdentityKey, int] = {}
    bindings: List[Binding] = []
    for index, raw in enumerate(raw_bindings):
        binding = binding_from_dict(raw, index, source=source)
        key = binding.key()
        if key in seen:
            raise MalformedSnapshotError(
                f"bindings[{index}] duplicates the identity of bindings[{seen[key]}]",
                source=source,
            )
        seen[key] = index
        bindings.append(binding)

    if "timestamp" not in data:
        raise MalformedSnapshotError("missing required field 'timestamp'", source=source)
    timestamp = data["timestamp"]
    if not isinstance(timestamp, str):
        raise MalformedSnapshotError("'timestamp' must be a string", source=source)
    namespace_filter = _string_list(data.get("namespace_filter"), "namespace_filter", "snapshot", source)
    warnings = _string_list(data.get("warnings"), "warnings", "snapshot", source)

    return Snapshot(
        timestamp=timestamp,
        cluster_context=str(data.get("cluster_context") or ""),
        namespace_filter=tuple(sorted(namespace_filter or ())),
        bindings=tuple(sort_bindings(bindings)),
        warnings=tuple(warnings or ()),
    )


def load_snapshot(path: Union[str, Path]) -> Snapshot:
    """Read a scan JSON file written by :func:`dump_snapshot` or a previous run."""

    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise MalformedSnapshotError(f"invalid JSON: {exc}", source=str(path)) from exc
        except UnicodeDecodeError as exc:
            raise MalformedSnapshotError(f"not valid UTF-8: {exc}", source=str(path)) from exc
    return snapshot_from_dict(data, source=str(path))


def dump_snapshot(snapshot: Snapshot, path: Union[str, Path]) -> Path:
    """Write *snapshot* as canonical JSON and return the path."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(canonical_json(snapshot_to_dict(snapshot)), encoding="utf-8")
    return path


__all__ = [
    "Snapshot",
    "binding_from_dict",
    "build",
    "dump_snapshot",
    "load_snapshot",
    "resolve_binding",
    "snapshot_from_dict",
    "snapshot_to_dict",
]
