# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/k8s/models.py
"""
Typed views over the Cluster API custom objects returned by the control
plane. The raw dicts come from ``CustomObjectsApi``; ``from_object`` parses
only the fields capimcp reads and keeps the original under ``raw`` so
updates can be written back without dropping unknown fields.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

CAPI_GROUP = "cluster.x-k8s.io"
CAPI_VERSION = "v1beta1"
CAPI_API_VERSION = f"{CAPI_GROUP}/{CAPI_VERSION}"

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
PROVIDER_LABEL = "cluster.x-k8s.io/provider"

KUBECONFIG_SECRET_SUFFIX = "-kubeconfig"
KUBECONFIG_SECRET_KEY = "value"

# caller-facing phase labels
PHASE_UNKNOWN = "Unknown"
PHASE_PROVISIONING = "Provisioning"
PHASE_READY = "Ready"
PHASE_FAILED = "Failed"
PHASE_DELETING = "Deleting"

# phases as reported by the control plane
CAPI_PHASE_PROVISIONED = "Provisioned"
CAPI_PHASE_FAILED = "Failed"

_PHASE_MAP = {
    "provisioning": PHASE_PROVISIONING,
    "provisioned": PHASE_READY,
    "failed": PHASE_FAILED,
    "deleting": PHASE_DELETING,
}


def normalize_phase(phase: Optional[str]) -> str:
    """Map a reported phase onto the caller-facing label; unknown values pass through."""
    if not phase:
        return PHASE_UNKNOWN
    return _PHASE_MAP.get(phase.lower(), phase)


def _meta(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


@dataclass
class Condition:
    type: str
    status: str
    reason: str = ""
    message: str = ""
    severity: str = ""
    last_transition_time: str = ""

    @classmethod
    def from_object(cls, c: Dict[str, Any]) -> "Condition":
        return cls(
            type=c.get("type", ""),
            status=c.get("status", ""),
            reason=c.get("reason") or "",
            message=c.get("message") or "",
            severity=c.get("severity") or "",
            last_transition_time=c.get("lastTransitionTime") or "",
        )


@dataclass
class InfrastructureRef:
    kind: str
    name: str
    api_version: str = ""
    namespace: str = ""

    @classmethod
    def from_object(cls, ref: Optional[Dict[str, Any]]) -> Optional["InfrastructureRef"]:
        if not ref:
            return None
        return cls(
            kind=ref.get("kind", ""),
            name=ref.get("name", ""),
            api_version=ref.get("apiVersion", ""),
            namespace=ref.get("namespace", ""),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "api_version": self.api_version,
            "namespace": self.namespace,
        }


@dataclass
class Cluster:
    name: str
    namespace: str
    phase: str = ""
    kubernetes_version: str = ""
    topology_class: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    control_plane_ready: bool = False
    infrastructure_ready: bool = False
    creation_timestamp: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    infrastructure_ref: Optional[InfrastructureRef] = None
    control_plane_endpoint: str = ""
    conditions: List[Condition] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Cluster":
        meta = _meta(obj)
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        topology = spec.get("topology") or {}

        variables: Dict[str, Any] = {}
        for v in topology.get("variables") or []:
            if "name" in v:
                variables[v["name"]] = v.get("value")

        endpoint = ""
        ep = spec.get("controlPlaneEndpoint") or {}
        if ep.get("host"):
            endpoint = f"https://{ep['host']}:{ep.get('port', 6443)}"

        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            phase=status.get("phase") or "",
            kubernetes_version=topology.get("version", ""),
            topology_class=topology.get("class", ""),
            variables=variables,
            control_plane_ready=bool(status.get("controlPlaneReady", False)),
            infrastructure_ready=bool(status.get("infrastructureReady", False)),
            creation_timestamp=meta.get("creationTimestamp") or "",
            labels=dict(meta.get("labels") or {}),
            annotations=dict(meta.get("annotations") or {}),
            infrastructure_ref=InfrastructureRef.from_object(spec.get("infrastructureRef")),
            control_plane_endpoint=endpoint,
            conditions=[Condition.from_object(c) for c in status.get("conditions") or []],
            raw=obj,
        )

    @property
    def status(self) -> str:
        return normalize_phase(self.phase)

    @property
    def ready(self) -> bool:
        return (
            self.phase == CAPI_PHASE_PROVISIONED
            and self.control_plane_ready
            and self.infrastructure_ready
        )

    @property
    def failed(self) -> bool:
        return self.phase == CAPI_PHASE_FAILED

    def failure_message(self) -> str:
        for c in self.conditions:
            if c.status == "False" and c.severity == "Error":
                return f"{c.reason}: {c.message}"
        return "unknown failure"


@dataclass
class NodePool:
    """A MachineDeployment bound to one cluster by the cluster-name label."""

    name: str
    namespace: str
    cluster_name: str
    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    available_replicas: int = 0
    phase: str = ""
    machine_type: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "NodePool":
        meta = _meta(obj)
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        labels = meta.get("labels") or {}
        infra = ((spec.get("template") or {}).get("spec") or {}).get("infrastructureRef") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            cluster_name=spec.get("clusterName") or labels.get(CLUSTER_NAME_LABEL, ""),
            replicas=int(spec.get("replicas") or 0),
            ready_replicas=int(status.get("readyReplicas") or 0),
            updated_replicas=int(status.get("updatedReplicas") or 0),
            available_replicas=int(status.get("availableReplicas") or 0),
            phase=status.get("phase") or "",
            machine_type=infra.get("name", ""),
            raw=obj,
        )


@dataclass
class TemplateVariable:
    name: str
    required: bool = False
    type: str = ""
    default: Any = None
    description: str = ""

    @classmethod
    def from_object(cls, v: Dict[str, Any]) -> "TemplateVariable":
        schema = (v.get("schema") or {}).get("openAPIV3Schema") or {}
        return cls(
            name=v.get("name", ""),
            required=bool(v.get("required", False)),
            type=schema.get("type", ""),
            default=schema.get("default"),
            description=schema.get("description", ""),
        )


@dataclass
class ClusterClass:
    name: str
    namespace: str
    variables: List[TemplateVariable] = field(default_factory=list)
    infrastructure_kind: str = ""
    creation_timestamp: str = ""
    description: str = ""

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ClusterClass":
        meta = _meta(obj)
        spec = obj.get("spec") or {}
        infra = ((spec.get("infrastructure") or {}).get("ref")) or {}
        annotations = meta.get("annotations") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            variables=[TemplateVariable.from_object(v) for v in spec.get("variables") or []],
            infrastructure_kind=infra.get("kind", ""),
            creation_timestamp=meta.get("creationTimestamp") or "",
            description=annotations.get("description", ""),
        )


@dataclass
class NodeInfo:
    name: str
    status: str
    roles: List[str]
    kubelet_version: str = ""
    internal_ip: str = ""
    external_ip: str = ""
    instance_type: str = ""
    availability_zone: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
