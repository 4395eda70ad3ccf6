# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/k8s/client.py
"""
Narrow facade over the management cluster's Cluster API objects.

This is the only module that talks to the control-plane API. Every call
takes a ``Deadline``, performs exactly one request (no retries, no cache)
and either returns a parsed record or raises a classified ``CapiError``.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException

from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.models import (
    CAPI_GROUP,
    CAPI_VERSION,
    CLUSTER_NAME_LABEL,
    KUBECONFIG_SECRET_SUFFIX,
    Cluster,
    ClusterClass,
    NodePool,
)
from capimcp.utils.deadline import Deadline

log = logging.getLogger("capimcp")

CLUSTERS = "clusters"
MACHINE_DEPLOYMENTS = "machinedeployments"
CLUSTER_CLASSES = "clusterclasses"

DEFAULT_REQUEST_TIMEOUT = 30.0

_STATUS_CODES = {
    404: ErrorCode.NOT_FOUND,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    409: ErrorCode.ALREADY_EXISTS,
    429: ErrorCode.RESOURCE_EXHAUSTED,
    408: ErrorCode.TIMEOUT,
    504: ErrorCode.TIMEOUT,
}


def classify_api_exception(exc: ApiException, operation: str, resource: str) -> CapiError:
    code = _STATUS_CODES.get(getattr(exc, "status", None), ErrorCode.KUBERNETES_API)
    if code == ErrorCode.NOT_FOUND:
        message = f"{resource} not found"
    elif code == ErrorCode.ALREADY_EXISTS:
        message = f"{resource} already exists"
    elif code == ErrorCode.UNAUTHORIZED:
        message = f"unauthorized to {operation}"
    elif code == ErrorCode.FORBIDDEN:
        message = f"forbidden to {operation}"
    elif code == ErrorCode.RESOURCE_EXHAUSTED:
        message = f"control plane throttled {operation}"
    elif code == ErrorCode.TIMEOUT:
        message = f"timeout during {operation}"
    else:
        message = f"failed to {operation}"
    return CapiError(code, message, details={"operation": operation, "resource": resource}, cause=exc)


def classify_transport_error(exc: Exception, operation: str, resource: str) -> CapiError:
    details = {"operation": operation, "resource": resource}
    reason = getattr(exc, "reason", None)
    if isinstance(exc, (urllib3.exceptions.ReadTimeoutError, TimeoutError)) or isinstance(
        reason, urllib3.exceptions.ReadTimeoutError
    ):
        return CapiError(ErrorCode.TIMEOUT, f"timeout during {operation}", details=details, cause=exc)
    return CapiError(
        ErrorCode.UNAVAILABLE,
        f"control plane unreachable during {operation}",
        details=details,
        cause=exc,
    )


class ControlPlaneClient:
    """
    Cluster, MachineDeployment, ClusterClass and kubeconfig Secret access
    within one namespace of the management cluster.
    """

    def __init__(
        self,
        custom_api: Any,
        core_api: Any,
        namespace: str = "default",
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.custom = custom_api
        self.core = core_api
        self.namespace = namespace
        self.request_timeout = request_timeout

    def __repr__(self) -> str:
        return f"ControlPlaneClient(namespace={self.namespace!r})"

    # -----------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------
    def _call(
        self,
        operation: str,
        resource: str,
        fn: Callable[..., Any],
        deadline: Optional[Deadline],
        **kwargs: Any,
    ) -> Any:
        deadline = deadline or Deadline.never()
        deadline.check(operation)
        kwargs["_request_timeout"] = deadline.request_timeout(self.request_timeout)
        log.debug("control-plane %s %s", operation, resource)
        try:
            return fn(**kwargs)
        except ApiException as exc:
            raise classify_api_exception(exc, operation, resource) from exc
        except (urllib3.exceptions.HTTPError, TimeoutError, ConnectionError) as exc:
            raise classify_transport_error(exc, operation, resource) from exc

    def _custom_kwargs(self, plural: str) -> Dict[str, Any]:
        return {
            "group": CAPI_GROUP,
            "version": CAPI_VERSION,
            "namespace": self.namespace,
            "plural": plural,
        }

    # -----------------------------------------------------------------
    # Clusters
    # -----------------------------------------------------------------
    def list_clusters(self, deadline: Optional[Deadline] = None) -> List[Cluster]:
        resp = self._call(
            "list clusters",
            "clusters",
            self.custom.list_namespaced_custom_object,
            deadline,
            **self._custom_kwargs(CLUSTERS),
        )
        return [Cluster.from_object(item) for item in (resp or {}).get("items", [])]

    def get_cluster(self, name: str, deadline: Optional[Deadline] = None) -> Cluster:
        obj = self._call(
            "get cluster",
            f"cluster {name}",
            self.custom.get_namespaced_custom_object,
            deadline,
            name=name,
            **self._custom_kwargs(CLUSTERS),
        )
        return Cluster.from_object(obj)

    def create_cluster(self, body: Dict[str, Any], deadline: Optional[Deadline] = None) -> Cluster:
        name = (body.get("metadata") or {}).get("name", "")
        body.setdefault("metadata", {})["namespace"] = self.namespace
        obj = self._call(
            "create cluster",
            f"cluster {name}",
            self.custom.create_namespaced_custom_object,
            deadline,
            body=body,
            **self._custom_kwargs(CLUSTERS),
        )
        return Cluster.from_object(obj)

    def delete_cluster(self, name: str, deadline: Optional[Deadline] = None) -> None:
        self._call(
            "delete cluster",
            f"cluster {name}",
            self.custom.delete_namespaced_custom_object,
            deadline,
            name=name,
            **self._custom_kwargs(CLUSTERS),
        )

    # -----------------------------------------------------------------
    # Node pools (MachineDeployments)
    # -----------------------------------------------------------------
    def list_node_pools(self, cluster_name: str, deadline: Optional[Deadline] = None) -> List[NodePool]:
        resp = self._call(
            "list node pools",
            f"node pools of cluster {cluster_name}",
            self.custom.list_namespaced_custom_object,
            deadline,
            label_selector=f"{CLUSTER_NAME_LABEL}={cluster_name}",
            **self._custom_kwargs(MACHINE_DEPLOYMENTS),
        )
        return [NodePool.from_object(item) for item in (resp or {}).get("items", [])]

    def get_node_pool(self, cluster_name: str, pool_name: str, deadline: Optional[Deadline] = None) -> NodePool:
        for pool in self.list_node_pools(cluster_name, deadline):
            if pool.name == pool_name:
                return pool
        raise CapiError(
            ErrorCode.NOT_FOUND,
            f"node pool {pool_name} not found in cluster {cluster_name}",
            details={
                "operation": "get node pool",
                "resource": f"node pool {pool_name}",
                "cluster_name": cluster_name,
            },
        )

    def update_node_pool_replicas(
        self,
        pool: NodePool,
        replicas: int,
        deadline: Optional[Deadline] = None,
    ) -> NodePool:
        # merge patch on spec.replicas only; concurrent writers resolve last-write-wins
        obj = self._call(
            "scale node pool",
            f"node pool {pool.name}",
            self.custom.patch_namespaced_custom_object,
            deadline,
            name=pool.name,
            body={"spec": {"replicas": int(replicas)}},
            **self._custom_kwargs(MACHINE_DEPLOYMENTS),
        )
        return NodePool.from_object(obj) if obj else pool

    # -----------------------------------------------------------------
    # Templates (ClusterClasses)
    # -----------------------------------------------------------------
    def list_cluster_classes(self, deadline: Optional[Deadline] = None) -> List[ClusterClass]:
        resp = self._call(
            "list cluster templates",
            "cluster templates",
            self.custom.list_namespaced_custom_object,
            deadline,
            **self._custom_kwargs(CLUSTER_CLASSES),
        )
        return [ClusterClass.from_object(item) for item in (resp or {}).get("items", [])]

    def get_cluster_class(self, name: str, deadline: Optional[Deadline] = None) -> ClusterClass:
        obj = self._call(
            "get cluster template",
            f"cluster template {name}",
            self.custom.get_namespaced_custom_object,
            deadline,
            name=name,
            **self._custom_kwargs(CLUSTER_CLASSES),
        )
        return ClusterClass.from_object(obj)

    # -----------------------------------------------------------------
    # Credentials
    # -----------------------------------------------------------------
    def get_kubeconfig_secret(self, cluster_name: str, deadline: Optional[Deadline] = None) -> Dict[str, bytes]:
        """
        Decoded data of the ``<cluster>-kubeconfig`` Secret. Only this one
        well-known name is ever read.
        """
        secret = self._call(
            "get kubeconfig",
            f"kubeconfig for cluster {cluster_name}",
            self.core.read_namespaced_secret,
            deadline,
            name=f"{cluster_name}{KUBECONFIG_SECRET_SUFFIX}",
            namespace=self.namespace,
        )
        data = getattr(secret, "data", None) or {}
        out: Dict[str, bytes] = {}
        for key, value in data.items():
            try:
                out[key] = base64.b64decode(value or "")
            except (ValueError, TypeError) as exc:
                raise CapiError(
                    ErrorCode.INTERNAL,
                    "kubeconfig data is not valid base64",
                    details={"cluster_name": cluster_name},
                    cause=exc,
                ) from exc
        return out


def load_control_plane_client(
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    namespace: str = "default",
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> ControlPlaneClient:
    """
    Build a client for the management cluster.

    With neither kubeconfig nor context, in-cluster service-account config is
    tried first and the default kubeconfig second.
    """
    try:
        if kubeconfig or context:
            api_client = config.new_client_from_config(config_file=kubeconfig, context=context)
        else:
            try:
                config.load_incluster_config()
                api_client = client.ApiClient()
            except config.ConfigException:
                api_client = config.new_client_from_config()
    except (config.ConfigException, OSError) as exc:
        raise CapiError(
            ErrorCode.UNAVAILABLE,
            "unable to load control-plane configuration",
            cause=exc,
        ) from exc

    log.info("control-plane client ready (namespace=%s)", namespace)
    return ControlPlaneClient(
        client.CustomObjectsApi(api_client),
        client.CoreV1Api(api_client),
        namespace=namespace,
        request_timeout=request_timeout,
    )
