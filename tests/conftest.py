# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# tests/conftest.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import pytest

from capimcp.config.models import OperationTimeouts
from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.models import (
    PROVIDER_LABEL,
    Cluster,
    ClusterClass,
    InfrastructureRef,
    NodeInfo,
    NodePool,
    TemplateVariable,
)
from capimcp.observers.dispatcher import EventBus
from capimcp.providers.aws import AWSProvider
from capimcp.providers.registry import ProviderRegistry
from capimcp.service.cluster_service import ClusterService


# ---- Event capture ----

class Capture:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def of(self, name: str):
        return [e for e in self.events if type(e).__name__ == name]


# ---- In-memory control plane ----

def _not_found(what: str) -> CapiError:
    return CapiError(ErrorCode.NOT_FOUND, f"{what} not found", details={"resource": what})


class FakeControlPlane:
    """
    Stands in for ControlPlaneClient. ``fail[method]`` raises on every call,
    ``get_sequence`` scripts get_cluster results (Cluster or exception) one
    call at a time before falling back to the stored clusters.
    """

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace
        self.clusters: Dict[str, Cluster] = {}
        self.pools: Dict[Tuple[str, str], NodePool] = {}
        self.classes: Dict[str, ClusterClass] = {}
        self.secrets: Dict[str, Dict[str, bytes]] = {}
        self.fail: Dict[str, Exception] = {}
        self.get_sequence: List[Any] = []
        self.delete_removes = True
        self.created_phase = ""
        self.calls: List[tuple] = []
        self.created: List[dict] = []

    def _enter(self, method: str, deadline, *args) -> None:
        self.calls.append((method,) + args)
        if deadline is not None:
            deadline.check(method)
        err = self.fail.get(method)
        if err is not None:
            raise err

    def called(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def list_clusters(self, deadline=None):
        self._enter("list_clusters", deadline)
        return list(self.clusters.values())

    def get_cluster(self, name, deadline=None):
        self._enter("get_cluster", deadline, name)
        if self.get_sequence:
            nxt = self.get_sequence.pop(0)
            if isinstance(nxt, Exception):
                raise nxt
            return nxt
        if name not in self.clusters:
            raise _not_found(f"cluster {name}")
        return self.clusters[name]

    def create_cluster(self, body, deadline=None):
        name = body["metadata"]["name"]
        self._enter("create_cluster", deadline, name)
        body["metadata"]["namespace"] = self.namespace
        self.created.append(body)
        cluster = Cluster.from_object(body)
        cluster.phase = self.created_phase
        self.clusters[name] = cluster
        return cluster

    def delete_cluster(self, name, deadline=None):
        self._enter("delete_cluster", deadline, name)
        if name not in self.clusters:
            raise _not_found(f"cluster {name}")
        if self.delete_removes:
            del self.clusters[name]

    def list_node_pools(self, cluster_name, deadline=None):
        self._enter("list_node_pools", deadline, cluster_name)
        return [p for (c, _), p in self.pools.items() if c == cluster_name]

    def get_node_pool(self, cluster_name, pool_name, deadline=None):
        self._enter("get_node_pool", deadline, cluster_name, pool_name)
        if (cluster_name, pool_name) not in self.pools:
            raise _not_found(f"node pool {pool_name}")
        return self.pools[(cluster_name, pool_name)]

    def update_node_pool_replicas(self, pool, replicas, deadline=None):
        self._enter("update_node_pool_replicas", deadline, pool.name, replicas)
        pool.replicas = replicas
        return pool

    def list_cluster_classes(self, deadline=None):
        self._enter("list_cluster_classes", deadline)
        return list(self.classes.values())

    def get_cluster_class(self, name, deadline=None):
        self._enter("get_cluster_class", deadline, name)
        if name not in self.classes:
            raise _not_found(f"cluster template {name}")
        return self.classes[name]

    def get_kubeconfig_secret(self, cluster_name, deadline=None):
        self._enter("get_kubeconfig_secret", deadline, cluster_name)
        if cluster_name not in self.secrets:
            raise _not_found(f"kubeconfig for cluster {cluster_name}")
        return self.secrets[cluster_name]


class FakeWorkload:
    def __init__(self, nodes: Optional[List[NodeInfo]] = None, error: Optional[Exception] = None):
        self.nodes = nodes or []
        self.error = error
        self.closed = False

    def list_nodes(self, deadline=None):
        if self.error is not None:
            raise self.error
        return self.nodes

    def close(self):
        self.closed = True


# ---- Builders ----

def make_cluster(name="dev-1", phase="Provisioned", cp_ready=True, infra_ready=True, **kw) -> Cluster:
    kw.setdefault("labels", {PROVIDER_LABEL: "aws"})
    kw.setdefault("kubernetes_version", "v1.29.0")
    kw.setdefault("infrastructure_ref", InfrastructureRef(kind="AWSCluster", name=f"{name}-infra"))
    return Cluster(
        name=name,
        namespace="default",
        phase=phase,
        control_plane_ready=cp_ready,
        infrastructure_ready=infra_ready,
        **kw,
    )


def make_pool(cluster="dev-1", name="md-0", replicas=3) -> NodePool:
    return NodePool(name=name, namespace="default", cluster_name=cluster, replicas=replicas, ready_replicas=replicas)


def make_class(name="aws-quick-start") -> ClusterClass:
    return ClusterClass(
        name=name,
        namespace="default",
        variables=[TemplateVariable(name="region", required=True, type="string")],
        infrastructure_kind="AWSClusterTemplate",
    )


FAST = OperationTimeouts(
    poll_interval=0.01,
    create_wait=0.05,
    delete_wait=0.05,
    ready_wait=0.05,
    request=1,
    nodes=1,
)


# ---- Fixtures ----

@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def registry():
    reg = ProviderRegistry()
    reg.register(AWSProvider())
    return reg


@pytest.fixture
def fake_cp():
    return FakeControlPlane()


@pytest.fixture
def workload():
    return FakeWorkload()


@pytest.fixture
def service(fake_cp, registry, capture, workload):
    return ClusterService(
        fake_cp,
        registry,
        timeouts=FAST,
        bus=EventBus(observers=[capture]),
        workload_factory=lambda kubeconfig, timeout: workload,
    )


@pytest.fixture
def restore_capimcp_logger():
    """init_logging rewires the capimcp logger; put it back afterwards."""
    logger = logging.getLogger("capimcp")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for h in list(logger.handlers):
        if h not in handlers:
            h.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
