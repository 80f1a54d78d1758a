"""Offline binding source backed by YAML or JSON manifests."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Sequence, Union

import yaml

from ..errors import ConfigurationError
from . import register_source

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ScanConfig

RBAC_KINDS = ("RoleBinding", "ClusterRoleBinding", "Role", "ClusterRole")


def _iter_objects(document: Any) -> Iterator[Dict[str, Any]]:
    """Yield RBAC objects from a manifest document, unwrapping ``kind: List``."""

    if not isinstance(document, dict):
        return
    items = document.get("items")
    if isinstance(items, list) and str(document.get("kind") or "").endswith("List"):
        for item in items:
            yield from _iter_objects(item)
        return
    if document.get("kind") in RBAC_KINDS:
        yield document


@dataclass
class ManifestSource:
    """Serve RBAC objects captured with ``kubectl get ... -o yaml``."""

    objects: List[Dict[str, Any]] = field(default_factory=list)
    cluster_context: str = "manifest"

    @classmethod
    def from_objects(
        cls, objects: Iterable[Dict[str, Any]], *, cluster_context: str = "manifest"
    ) -> "ManifestSource":
        collected: List[Dict[str, Any]] = []
        for obj in objects:
            collected.extend(_iter_objects(obj))
        return cls(objects=collected, cluster_context=cluster_context)

    @classmethod
    def from_paths(
        cls, paths: Sequence[Union[str, Path]], *, cluster_context: str = "manifest"
    ) -> "ManifestSource":
        """Load every document in *paths*; directories contribute their ``*.yaml``, ``*.yml`` and ``*.json`` files."""

        files: List[Path] = []
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                files.extend(
                    sorted(
                        p
                        for p in path.iterdir()
                        if p.suffix.lower() in {".yaml", ".yml", ".json"}
                    )
                )
            elif path.is_file():
                files.append(path)
            else:
                raise ConfigurationError(f"Manifest path '{path}' does not exist")

        documents: List[Any] = []
        for file_path in files:
            try:
                with file_path.open("r", encoding="utf-8") as fh:
                    documents.extend(yaml.safe_load_all(fh))
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Failed to parse manifest '{file_path}': {exc}") from exc
            except UnicodeDecodeError as exc:
                raise ConfigurationError(f"Manifest '{file_path}' is not valid UTF-8: {exc}") from exc
        return cls.from_objects(documents, cluster_context=cluster_context)

    def _of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [obj for obj in self.objects if obj.get("kind") == kind]

    def list_role_bindings(self) -> List[Dict[str, Any]]:
        return self._of_kind("RoleBinding")

    def list_cluster_role_bindings(self) -> List[Dict[str, Any]]:
        return self._of_kind("ClusterRoleBinding")

    def list_roles(self) -> List[Dict[str, Any]]:
        return self._of_kind("Role")

    def list_cluster_roles(self) -> List[Dict[str, Any]]:
        return self._of_kind("ClusterRole")


@register_source("manifest")
@contextmanager
def manifest_source(config: "ScanConfig") -> Iterator[ManifestSource]:
    """Yield a :class:`ManifestSource` for ``config.manifests``."""

    if not config.manifests:
        raise ConfigurationError("The manifest source requires at least one --manifest path")
    yield ManifestSource.from_paths(config.manifests, cluster_context=config.context or "manifest")


__all__ = ["ManifestSource", "RBAC_KINDS", "manifest_source"]
