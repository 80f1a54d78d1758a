"""Scoped kubeconfig acquisition.

Credentials are loaded for the duration of a single ``with`` block. A base64
kubeconfig (``KUBECONFIG_BASE64``) is decoded into memory and never written to
the user's home directory. Certificate material that the Kubernetes client
insists on materialising goes to a private temporary directory. On every exit
path the decoded buffer is zeroed, the parsed mapping is cleared, the
temporary directory is removed along with the client's cache entries for it,
and the API client is closed.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Tuple

import kubernetes.config.kube_config as kube_config_loader
import yaml
from kubernetes import client as kube_client
from kubernetes import config as kube_config
from kubernetes.config.config_exception import ConfigException

from .errors import ConfigurationError, ConnectivityError

logger = logging.getLogger(__name__)

IN_CLUSTER_CONTEXT = "in-cluster"


def decode_kubeconfig(encoded: str) -> bytearray:
    """Decode a base64 kubeconfig into a mutable buffer that can be wiped."""

    try:
        return bytearray(base64.b64decode(encoded.strip(), validate=True))
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"KUBECONFIG_BASE64 is not valid base64: {exc}") from exc


def wipe(buffer: bytearray) -> None:
    """Overwrite *buffer* with zero bytes in place."""

    buffer[:] = bytes(len(buffer))


def clear_mapping(data: Any) -> None:
    """Recursively empty nested dicts and lists so secrets lose their last reference."""

    if isinstance(data, dict):
        for value in data.values():
            clear_mapping(value)
        data.clear()
    elif isinstance(data, list):
        for value in data:
            clear_mapping(value)
        data.clear()


def forget_cached_files(temp_dir: str) -> int:
    """Drop the client's cached certificate and key files that live under *temp_dir*.

    The Kubernetes client keeps a process-wide map from file contents to the
    temporary file it wrote them to. Its keys hold the decoded client key, so
    the entries are removed together with the directory.
    """

    cache = kube_config_loader._temp_files
    prefix = os.path.join(os.path.abspath(temp_dir), "")
    stale = [content for content, path in cache.items() if os.path.abspath(path).startswith(prefix)]
    for content in stale:
        del cache[content]
    return len(stale)


def _client_from_blob(
    buffer: bytearray, context: Optional[str], temp_dir: str
) -> Tuple[kube_client.ApiClient, str, dict]:
    try:
        config_dict = yaml.safe_load(bytes(buffer))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"KUBECONFIG_BASE64 does not contain YAML: {exc}") from exc
    if not isinstance(config_dict, dict):
        raise ConfigurationError("KUBECONFIG_BASE64 does not decode to a kubeconfig mapping")
    active = context or str(config_dict.get("current-context") or "")
    api_client = kube_config.new_client_from_config_dict(
        config_dict,
        context=context,
        persist_config=False,
        temp_file_path=temp_dir,
    )
    return api_client, active, config_dict


def _client_from_file(
    path: Optional[str], context: Optional[str]
) -> Tuple[kube_client.ApiClient, str]:
    if path is None and "KUBERNETES_SERVICE_HOST" in os.environ:
        configuration = kube_client.Configuration()
        kube_config.load_incluster_config(client_configuration=configuration)
        return kube_client.ApiClient(configuration=configuration), IN_CLUSTER_CONTEXT

    api_client = kube_config.new_client_from_config(
        config_file=path, context=context, persist_config=False
    )
    if context:
        return api_client, context
    _, active = kube_config.list_kube_config_contexts(config_file=path)
    return api_client, str((active or {}).get("name") or "")


@contextmanager
def scoped_api_client(
    *,
    kubeconfig: Optional[str] = None,
    kubeconfig_b64: Optional[str] = None,
    context: Optional[str] = None,
) -> Iterator[Tuple[kube_client.ApiClient, str]]:
    """Yield ``(api_client, context_name)`` and release every credential on exit.

    ``kubeconfig_b64`` takes precedence over ``kubeconfig``. Without either,
    the default kubeconfig location is used, or the in-cluster service
    account when running inside a pod.
    """

    buffer: Optional[bytearray] = None
    config_dict: Optional[dict] = None
    api_client: Optional[kube_client.ApiClient] = None
    with tempfile.TemporaryDirectory(prefix="permiflow-") as temp_dir:
        try:
            try:
                if kubeconfig_b64:
                    buffer = decode_kubeconfig(kubeconfig_b64)
                    api_client, active, config_dict = _client_from_blob(buffer, context, temp_dir)
                else:
                    api_client, active = _client_from_file(kubeconfig, context)
            except ConfigException as exc:
                raise ConnectivityError(f"Failed to load kubeconfig: {exc}") from exc
            logger.debug("Loaded credentials for context '%s'", active)
            yield api_client, active
        finally:
            if api_client is not None:
                api_client.close()
            if config_dict is not None:
                clear_mapping(config_dict)
            if buffer is not None:
                wipe(buffer)
            forget_cached_files(temp_dir)
            logger.debug("Released cluster credentials")


__all__ = [
    "IN_CLUSTER_CONTEXT",
    "clear_mapping",
    "decode_kubeconfig",
    "forget_cached_files",
    "scoped_api_client",
    "wipe",
]
