# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/api/models.py
"""Inputs and outputs of the lifecycle operations, as serialized to callers."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------
class CreateClusterInput(BaseModel):
    cluster_name: str
    template_name: str
    kubernetes_version: str
    variables: Dict[str, Any] = Field(default_factory=dict)


class ScaleClusterInput(BaseModel):
    cluster_name: str
    node_pool_name: str
    replicas: int


# ---------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------
class ClusterSummary(BaseModel):
    name: str
    namespace: str
    provider: str = ""
    kubernetes_version: str = ""
    status: str
    created_at: str = ""
    node_count: Optional[int] = None


class ListClustersOutput(BaseModel):
    clusters: List[ClusterSummary] = Field(default_factory=list)


class NodePoolSummary(BaseModel):
    name: str
    replicas: int
    ready_replicas: int = 0
    machine_type: str = ""


class ClusterCondition(BaseModel):
    type: str
    status: str
    last_transition_time: str = ""
    reason: str = ""
    message: str = ""


class ClusterDetails(BaseModel):
    name: str
    namespace: str
    provider: str = ""
    region: str = ""
    kubernetes_version: str = ""
    cluster_class: str = ""
    status: str
    control_plane_ready: bool = False
    infrastructure_ready: bool = False
    created_at: str = ""
    endpoint: str = ""
    node_count: Optional[int] = None
    node_pools: List[NodePoolSummary] = Field(default_factory=list)
    conditions: List[ClusterCondition] = Field(default_factory=list)
    infrastructure_ref: Optional[Dict[str, Any]] = None


class GetClusterOutput(BaseModel):
    cluster: ClusterDetails
    provider_status: Optional[Dict[str, Any]] = None


class CreateClusterOutput(BaseModel):
    success: bool = True
    cluster: ClusterSummary
    message: str
    timed_out: bool = False


class DeleteClusterOutput(BaseModel):
    status: str                      # "deleted" | "deleting"
    message: str
    timed_out: bool = False


class ScaleClusterOutput(BaseModel):
    status: str                      # "ready" | "scaling"
    message: str
    old_replicas: int
    new_replicas: int


class GetClusterKubeconfigOutput(BaseModel):
    kubeconfig: str


class NodeInfo(BaseModel):
    name: str
    status: str
    roles: List[str]
    kubelet_version: str = ""
    internal_ip: str = ""
    external_ip: str = ""
    instance_type: str = ""
    availability_zone: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)


class GetClusterNodesOutput(BaseModel):
    nodes: List[NodeInfo] = Field(default_factory=list)


class WaitForClusterOutput(BaseModel):
    cluster: ClusterSummary
    ready: bool
    timed_out: bool = False
    message: str
    diagnosis: Optional[str] = None


# ---------------------------------------------------------------------
# Templates and providers
# ---------------------------------------------------------------------
class TemplateVariable(BaseModel):
    name: str
    required: bool = False
    type: str = ""
    default: Any = None
    description: str = ""


class ClusterTemplate(BaseModel):
    name: str
    namespace: str
    provider: str = ""
    infrastructure_kind: str = ""
    description: str = ""
    variables: List[TemplateVariable] = Field(default_factory=list)


class ListClusterTemplatesOutput(BaseModel):
    templates: List[ClusterTemplate] = Field(default_factory=list)


class ProviderInfo(BaseModel):
    name: str
    regions: List[str] = Field(default_factory=list)
    kubernetes_versions: List[str] = Field(default_factory=list)


class ListProvidersOutput(BaseModel):
    providers: List[ProviderInfo] = Field(default_factory=list)
    default: str


class InstanceTypesOutput(BaseModel):
    provider: str
    region: str
    instance_types: List[str] = Field(default_factory=list)


class ValidateClusterOutput(BaseModel):
    valid: bool
    provider: str
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    suggested_name: Optional[str] = None


class HealthCheckResult(BaseModel):
    name: str
    ok: bool
    ms: int = 0
    code: Optional[str] = None
    error: Optional[str] = None


class HealthCheckOutput(BaseModel):
    healthy: bool = True          # the server answered at all
    ready: bool                   # every dependency check passed
    checked_at: str
    checks: List[HealthCheckResult] = Field(default_factory=list)
