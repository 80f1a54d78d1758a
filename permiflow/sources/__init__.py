"""Binding sources and the registry used to select one by name."""
from __future__ import annotations

import importlib
import pkgutil
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ContextManager,
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Protocol,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ScanConfig


class BindingSource(Protocol):
    """Read-only lister of raw RBAC objects.

    Each method yields objects in their Kubernetes manifest shape (camelCase
    keys, ``metadata``/``subjects``/``roleRef``/``rules``). Implementations
    may raise :class:`permiflow.errors.ConnectivityError`; the snapshot
    builder lets it propagate.
    """

    cluster_context: str

    def list_role_bindings(self) -> Iterable[Dict[str, Any]]:
        ...

    def list_cluster_role_bindings(self) -> Iterable[Dict[str, Any]]:
        ...

    def list_roles(self) -> Iterable[Dict[str, Any]]:
        ...

    def list_cluster_roles(self) -> Iterable[Dict[str, Any]]:
        ...


SourceFactory = Callable[["ScanConfig"], ContextManager[BindingSource]]


class SourceRegistry:
    """Registry that stores available binding source factories."""

    def __init__(self) -> None:
        self._factories: Dict[str, SourceFactory] = {}

    @staticmethod
    def _normalize(name: str) -> str:
        if not name:
            raise ValueError("Source name must be a non-empty string")
        return name.strip().lower()

    def register(self, name: str) -> Callable[[SourceFactory], SourceFactory]:
        """Return a decorator that registers *name* for the wrapped factory."""

        normalized = self._normalize(name)

        def decorator(func: SourceFactory) -> SourceFactory:
            if normalized in self._factories and self._factories[normalized] is not func:
                raise ValueError(f"Source '{name}' is already registered")
            self._factories[normalized] = func
            return func

        return decorator

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self._normalize(name) in self._factories

    def __getitem__(self, name: str) -> SourceFactory:
        return self._factories[self._normalize(name)]

    def keys(self) -> Iterator[str]:
        return iter(self._factories)

    def as_mapping(self) -> Mapping[str, SourceFactory]:
        return MappingProxyType(self._factories)


SOURCE_REGISTRY = SourceRegistry()
register_source = SOURCE_REGISTRY.register


def open_source(config: "ScanConfig") -> ContextManager[BindingSource]:
    """Return the context manager that yields the source named by ``config.source``."""

    if config.source not in SOURCE_REGISTRY:
        valid = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{config.source}'. Valid sources: {valid}")
    return SOURCE_REGISTRY[config.source](config)


def _import_source_modules() -> None:
    """Import modules that register sources via decorators."""

    package_name = __name__
    package_paths = getattr(__spec__, "submodule_search_locations", None)
    if not package_paths:
        return

    for module_info in pkgutil.iter_modules(package_paths):
        module_name = module_info.name
        if module_name.startswith("_"):
            continue
        importlib.import_module(f"{package_name}.{module_name}")


_import_source_modules()

SOURCES: Mapping[str, SourceFactory] = SOURCE_REGISTRY.as_mapping()

__all__ = [
    "BindingSource",
    "SOURCES",
    "SOURCE_REGISTRY",
    "SourceFactory",
    "open_source",
    "register_source",
]
