# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/k8s/workload.py
from __future__ import annotations

import logging
from typing import Any, List, Optional

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client import ApiException

from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.client import classify_api_exception, classify_transport_error
from capimcp.k8s.models import NodeInfo
from capimcp.utils.deadline import Deadline

log = logging.getLogger("capimcp")

ROLE_LABEL_PREFIX = "node-role.kubernetes.io/"
INSTANCE_TYPE_LABEL = "node.kubernetes.io/instance-type"
ZONE_LABEL = "topology.kubernetes.io/zone"
DEFAULT_ROLE = "worker"


class WorkloadClient:
    """
    Short-lived client for a workload cluster, built from the kubeconfig
    the control plane generated for it. Never shares configuration with
    the management-cluster client.
    """

    def __init__(self, core_api: Any, request_timeout: float = 30.0, api_client: Any = None):
        self.core = core_api
        self.request_timeout = request_timeout
        self.api_client = api_client

    @classmethod
    def from_kubeconfig(cls, kubeconfig: bytes, request_timeout: float = 30.0) -> "WorkloadClient":
        try:
            data = yaml.safe_load(kubeconfig.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as exc:
            raise CapiError(ErrorCode.INTERNAL, "kubeconfig is not valid YAML", cause=exc) from exc
        if not isinstance(data, dict):
            raise CapiError(ErrorCode.INTERNAL, "kubeconfig is not a mapping")

        try:
            api_client = config.new_client_from_config_dict(data)
        except (config.ConfigException, KeyError, TypeError, ValueError) as exc:
            raise CapiError(ErrorCode.INTERNAL, "failed to build workload cluster client", cause=exc) from exc
        return cls(client.CoreV1Api(api_client), request_timeout=request_timeout, api_client=api_client)

    def close(self) -> None:
        """Release the connection pool of the underlying ApiClient."""
        if self.api_client is not None:
            self.api_client.close()
            self.api_client = None

    def list_nodes(self, deadline: Optional[Deadline] = None) -> List[NodeInfo]:
        deadline = deadline or Deadline.never()
        deadline.check("list nodes")
        try:
            resp = self.core.list_node(_request_timeout=deadline.request_timeout(self.request_timeout))
        except ApiException as exc:
            raise classify_api_exception(exc, "list nodes", "nodes") from exc
        except (urllib3.exceptions.HTTPError, TimeoutError, ConnectionError) as exc:
            raise classify_transport_error(exc, "list nodes", "nodes") from exc
        return [node_info(n) for n in (resp.items or [])]


def node_status(node: Any) -> str:
    for cond in getattr(node.status, "conditions", None) or []:
        if cond.type == "Ready":
            return "Ready" if cond.status == "True" else "NotReady"
    return "Unknown"


def node_roles(labels: dict) -> List[str]:
    roles = sorted(
        key[len(ROLE_LABEL_PREFIX):]
        for key in labels
        if key.startswith(ROLE_LABEL_PREFIX) and key[len(ROLE_LABEL_PREFIX):]
    )
    return roles or [DEFAULT_ROLE]


def node_info(node: Any) -> NodeInfo:
    labels = dict(node.metadata.labels or {})
    status = node.status

    internal_ip = external_ip = ""
    for addr in getattr(status, "addresses", None) or []:
        if addr.type == "InternalIP":
            internal_ip = addr.address
        elif addr.type == "ExternalIP":
            external_ip = addr.address

    node_sys = getattr(status, "node_info", None)
    return NodeInfo(
        name=node.metadata.name,
        status=node_status(node),
        roles=node_roles(labels),
        kubelet_version=getattr(node_sys, "kubelet_version", "") or "",
        internal_ip=internal_ip,
        external_ip=external_ip,
        instance_type=labels.get(INSTANCE_TYPE_LABEL, ""),
        availability_zone=labels.get(ZONE_LABEL, ""),
        labels=labels,
    )
