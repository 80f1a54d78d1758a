"""Structural comparison of two snapshots keyed by binding identity."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Tuple

from .bindings import Binding, IdentityKey, sort_bindings
from .snapshot import Snapshot

# Order in which differing fields are reported.
COMPARED_FIELDS: Tuple[Tuple[str, Callable[[Binding], Any]], ...] = (
    ("rules", Binding.rule_set),
    ("risk", lambda binding: binding.risk),
    ("role_namespace", lambda binding: binding.role_ref.namespace),
)


@dataclass(frozen=True)
class BindingChange:
    """A binding present in both snapshots whose content differs."""

    identity_key: IdentityKey
    before: Binding
    after: Binding
    changed_fields: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "after": self.after.to_dict(),
            "before": self.before.to_dict(),
            "binding": self.after.binding_name,
            "changed_fields": list(self.changed_fields),
            "namespace": self.after.binding_namespace,
            "risk": self.after.risk,
            "role": self.after.role_ref.name,
            "role_kind": self.after.role_ref.kind,
            "subject": self.after.subject.to_dict(),
        }


@dataclass(frozen=True)
class DiffResult:
    """Drift between a baseline and a current snapshot; unchanged bindings are omitted."""

    added: Tuple[Binding, ...] = ()
    removed: Tuple[Binding, ...] = ()
    changed: Tuple[BindingChange, ...] = ()
    baseline_timestamp: str = ""
    current_timestamp: str = ""

    @property
    def has_drift(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def summary(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "removed": len(self.removed),
            "changed": len(self.changed),
            "total": len(self.added) + len(self.removed) + len(self.changed),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Return the diff JSON document; empty sections serialise as ``[]``."""

        return {
            "added": [binding.to_dict() for binding in self.added],
            "baseline_timestamp": self.baseline_timestamp,
            "changed": [change.to_dict() for change in self.changed],
            "current_timestamp": self.current_timestamp,
            "removed": [binding.to_dict() for binding in self.removed],
            "summary": self.summary(),
        }


def changed_fields(before: Binding, after: Binding) -> Tuple[str, ...]:
    """Return the names of the non-identity fields that differ.

    Rules compare as a set of rules whose members are themselves set-valued,
    so reordering rules, verbs, resources or API groups is not a change.
    """

    return tuple(
        name for name, getter in COMPARED_FIELDS if getter(before) != getter(after)
    )


def _by_key(bindings: Iterable[Binding]) -> Dict[IdentityKey, Binding]:
    return {binding.key(): binding for binding in bindings}


def diff_bindings(
    baseline: Iterable[Binding], current: Iterable[Binding]
) -> Tuple[List[Binding], List[Binding], List[BindingChange]]:
    """Return ``(added, removed, changed)`` sorted by identity key."""

    before = _by_key(baseline)
    after = _by_key(current)

    added = sort_bindings(after[key] for key in after.keys() - before.keys())
    removed = sort_bindings(before[key] for key in before.keys() - after.keys())

    changed: List[BindingChange] = []
    for key in sorted(before.keys() & after.keys()):
        fields = changed_fields(before[key], after[key])
        if fields:
            changed.append(
                BindingChange(
                    identity_key=key,
                    before=before[key],
                    after=after[key],
                    changed_fields=fields,
                )
            )
    return added, removed, changed


def diff(baseline: Snapshot, current: Snapshot) -> DiffResult:
    """Compare *baseline* with *current*.

    Neither snapshot is assumed to be sorted or freshly scanned; a snapshot
    loaded from an archived artifact compares the same way as a live one.
    """

    added, removed, changed = diff_bindings(baseline.bindings, current.bindings)
    return DiffResult(
        added=tuple(added),
        removed=tuple(removed),
        changed=tuple(changed),
        baseline_timestamp=baseline.timestamp,
        current_timestamp=current.timestamp,
    )


__all__ = ["BindingChange", "COMPARED_FIELDS", "DiffResult", "changed_fields", "diff", "diff_bindings"]
