# tests/k8s/test_k8s_models.py
from __future__ import annotations

import pytest

from capimcp.k8s.models import Cluster, NodePool, normalize_phase


@pytest.mark.parametrize(
    "phase,label",
    [("Provisioning", "Provisioning"), ("Provisioned", "Ready"), ("Failed", "Failed"), ("Deleting", "Deleting"), ("", "Unknown"), (None, "Unknown"), ("Pending", "Pending")],
)
def test_normalize_phase(phase, label):
    assert normalize_phase(phase) == label


def test_cluster_from_object():
    obj = {
        "metadata": {
            "name": "dev-1",
            "namespace": "capi",
            "creationTimestamp": "2026-01-02T03:04:05Z",
            "labels": {"cluster.x-k8s.io/provider": "aws"},
        },
        "spec": {
            "controlPlaneEndpoint": {"host": "api.example.com", "port": 443},
            "infrastructureRef": {"kind": "AWSCluster", "name": "dev-1-abc", "apiVersion": "infrastructure.cluster.x-k8s.io/v1beta2"},
            "topology": {
                "class": "aws-quick-start",
                "version": "v1.29.0",
                "variables": [{"name": "region", "value": "us-east-1"}, {"value": "nameless"}],
            },
        },
        "status": {
            "phase": "Failed",
            "conditions": [
                {"type": "Ready", "status": "False", "severity": "Warning", "reason": "Waiting", "message": "later"},
                {"type": "InfrastructureReady", "status": "False", "severity": "Error", "reason": "VPCError", "message": "no quota"},
            ],
        },
    }

    c = Cluster.from_object(obj)

    assert c.name == "dev-1"
    assert c.topology_class == "aws-quick-start"
    assert c.variables == {"region": "us-east-1"}
    assert c.control_plane_endpoint == "https://api.example.com:443"
    assert c.infrastructure_ref.kind == "AWSCluster"
    assert c.creation_timestamp == "2026-01-02T03:04:05Z"
    assert c.failed is True
    assert c.ready is False
    assert c.status == "Failed"
    assert c.failure_message() == "VPCError: no quota"


def test_ready_needs_phase_and_both_flags():
    base = {"metadata": {"name": "a"}, "status": {"phase": "Provisioned", "controlPlaneReady": True}}
    assert Cluster.from_object(base).ready is False
    base["status"]["infrastructureReady"] = True
    assert Cluster.from_object(base).ready is True
    assert Cluster.from_object({"metadata": {"name": "a"}}).failure_message() == "unknown failure"


def test_node_pool_from_object():
    obj = {
        "metadata": {"name": "md-0", "namespace": "capi", "labels": {"cluster.x-k8s.io/cluster-name": "dev-1"}},
        "spec": {
            "replicas": 3,
            "template": {"spec": {"infrastructureRef": {"kind": "AWSMachineTemplate", "name": "dev-1-md-0"}}},
        },
        "status": {"readyReplicas": 2, "phase": "ScalingUp"},
    }
    pool = NodePool.from_object(obj)
    assert pool.cluster_name == "dev-1"
    assert (pool.replicas, pool.ready_replicas) == (3, 2)
    assert pool.machine_type == "dev-1-md-0"

