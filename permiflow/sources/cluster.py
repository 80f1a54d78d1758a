"""Live binding source backed by the Kubernetes RBAC API."""
from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from ..credentials import scoped_api_client
from ..errors import ConnectivityError
from ..utils import safe_paginate
from . import register_source

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ScanConfig


class KubernetesSource:
    """List RBAC objects cluster-wide through ``RbacAuthorizationV1Api``."""

    def __init__(self, api_client: client.ApiClient, cluster_context: str = "") -> None:
        self._api_client = api_client
        self._rbac = client.RbacAuthorizationV1Api(api_client)
        self.cluster_context = cluster_context

    def _list(self, resource: str, list_func: Callable[..., Any]) -> List[Dict[str, Any]]:
        try:
            return [
                self._api_client.sanitize_for_serialization(item)
                for item in safe_paginate(list_func)
            ]
        except ApiException as exc:
            raise ConnectivityError(
                f"Failed to list {resource} in context '{self.cluster_context}': "
                f"({exc.status}) {exc.reason}"
            ) from exc
        except HTTPError as exc:
            raise ConnectivityError(
                f"Cluster unreachable while listing {resource} in context "
                f"'{self.cluster_context}': {exc}"
            ) from exc

    def list_role_bindings(self) -> List[Dict[str, Any]]:
        return self._list("rolebindings", self._rbac.list_role_binding_for_all_namespaces)

    def list_cluster_role_bindings(self) -> List[Dict[str, Any]]:
        return self._list("clusterrolebindings", self._rbac.list_cluster_role_binding)

    def list_roles(self) -> List[Dict[str, Any]]:
        return self._list("roles", self._rbac.list_role_for_all_namespaces)

    def list_cluster_roles(self) -> List[Dict[str, Any]]:
        return self._list("clusterroles", self._rbac.list_cluster_role)


@register_source("kubernetes")
@contextmanager
def kubernetes_source(config: "ScanConfig") -> Iterator[KubernetesSource]:
    """Yield a :class:`KubernetesSource` holding scoped credentials."""

    with scoped_api_client(
        kubeconfig=config.kubeconfig,
        kubeconfig_b64=config.kubeconfig_b64,
        context=config.context,
    ) as (api_client, active_context):
        yield KubernetesSource(api_client, active_context)


__all__ = ["KubernetesSource", "kubernetes_source"]
