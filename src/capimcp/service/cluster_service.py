# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/service/cluster_service.py
"""
Cluster lifecycle orchestration.

Every public operation follows the same skeleton:

    validate -> resolve provider -> call the control-plane facade
             -> (mutations) bounded poll-wait -> normalize result

Mutations report *initiation*: once the control plane has accepted a create,
delete or scale, a poll-wait that runs out of time (or is cancelled) yields
the best-known state rather than an error. Read paths enrich their results
best-effort; a failed enrichment drops that one field and nothing else.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from capimcp.api.models import (
    ClusterCondition,
    ClusterDetails,
    ClusterSummary,
    ClusterTemplate,
    CreateClusterOutput,
    DeleteClusterOutput,
    GetClusterKubeconfigOutput,
    GetClusterNodesOutput,
    GetClusterOutput,
    HealthCheckOutput,
    HealthCheckResult,
    InstanceTypesOutput,
    ListClustersOutput,
    ListClusterTemplatesOutput,
    ListProvidersOutput,
    NodeInfo,
    NodePoolSummary,
    ProviderInfo,
    ScaleClusterOutput,
    TemplateVariable,
    ValidateClusterOutput,
    WaitForClusterOutput,
)
from capimcp.config.models import OperationTimeouts
from capimcp.errors import (
    CapiError,
    ErrorCode,
    combine_errors,
    error_code,
    sanitize_message,
    to_safe_dict,
    user_message,
    wrap_error,
)
from capimcp.k8s.client import ControlPlaneClient
from capimcp.k8s.manifests import ManifestRenderer, build_cluster_manifest
from capimcp.k8s.models import (
    KUBECONFIG_SECRET_KEY,
    PROVIDER_LABEL,
    Cluster,
    ClusterClass,
    NodePool,
)
from capimcp.k8s.workload import WorkloadClient
from capimcp.observers.dispatcher import EventBus
from capimcp.observers.events import (
    EnrichmentSkipped,
    OperationFailed,
    OperationStarted,
    OperationSucceeded,
)
from capimcp.providers.base import Provider
from capimcp.providers.registry import ProviderRegistry, resolve_provider_name
from capimcp.service.polling import poll_until
from capimcp.utils.deadline import Deadline
from capimcp.validation.validator import (
    sanitize_cluster_name,
    validate_cluster_name,
    validate_cluster_request,
    validate_node_pool_name,
    validate_replica_count,
)

log = logging.getLogger("capimcp")

WorkloadFactory = Callable[[bytes, float], WorkloadClient]

STATUS_DELETED = "deleted"
STATUS_DELETING = "deleting"
STATUS_READY = "ready"
STATUS_SCALING = "scaling"


def _rewrap(exc: CapiError, message: str, **details: Any) -> CapiError:
    """Keep the facade's classification, replace the message with operation context."""
    return wrap_error(exc, exc.code, message).with_details(**details)


def _not_found(message: str, resource: str, **details: Any) -> CapiError:
    return CapiError(ErrorCode.NOT_FOUND, message, details={"resource": resource, **details})


def _default_workload_factory(kubeconfig: bytes, request_timeout: float) -> WorkloadClient:
    return WorkloadClient.from_kubeconfig(kubeconfig, request_timeout=request_timeout)


class ClusterService:
    """
    The one implementation of the lifecycle operations. Instrumentation
    (operation events, duration, outcome) is built in rather than layered
    on as a second service.

    ``client`` may be None: validation-only and metadata operations still
    work, backend operations report SERVICE_UNAVAILABLE and listings come
    back empty.
    """

    def __init__(
        self,
        client: Optional[ControlPlaneClient],
        registry: ProviderRegistry,
        *,
        timeouts: Optional[OperationTimeouts] = None,
        bus: Optional[EventBus] = None,
        namespace: Optional[str] = None,
        workload_factory: Optional[WorkloadFactory] = None,
        renderer: Optional[ManifestRenderer] = None,
    ):
        self.client = client
        self.registry = registry
        self.timeouts = timeouts or OperationTimeouts()
        self.bus = bus or EventBus()
        self.namespace = namespace or (client.namespace if client is not None else "default")
        self._workload_factory = workload_factory or _default_workload_factory
        self._renderer = renderer or ManifestRenderer()

    # -----------------------------------------------------------------
    # Instrumentation
    # -----------------------------------------------------------------
    @contextmanager
    def _operation(self, operation: str, cluster_name: str = "") -> Iterator[Dict[str, str]]:
        """
        Emit OperationStarted, then exactly one of OperationSucceeded or
        OperationFailed. The body may set ``outcome["status"]``.
        """
        started = time.monotonic()
        outcome = {"status": "ok"}
        self.bus.publish(OperationStarted, operation=operation, cluster_name=cluster_name)
        try:
            yield outcome
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            code = error_code(exc) or ErrorCode.INTERNAL
            if isinstance(exc, CapiError) and exc.caller_fault:
                log.info("%s %s rejected: %s", operation, cluster_name, sanitize_message(str(exc)))
            else:
                log.error("%s %s failed: %s", operation, cluster_name, sanitize_message(str(exc)))
            self.bus.publish(
                OperationFailed,
                operation=operation,
                cluster_name=cluster_name,
                duration_ms=duration_ms,
                error_code=code.value,
                error=sanitize_message(str(exc)),
            )
            raise
        duration_ms = int((time.monotonic() - started) * 1000)
        self.bus.publish(
            OperationSucceeded,
            operation=operation,
            cluster_name=cluster_name,
            duration_ms=duration_ms,
            status=outcome["status"],
        )

    def _enrich(self, operation: str, cluster_name: str, field: str, fn: Callable[[], Any]) -> Any:
        """Best-effort lookup: on any failure log it, emit EnrichmentSkipped and return None."""
        try:
            return fn()
        except Exception as exc:
            message = sanitize_message(str(exc))
            log.warning("%s %s: could not determine %s: %s", operation, cluster_name, field, message)
            self.bus.publish(
                EnrichmentSkipped,
                operation=operation,
                cluster_name=cluster_name,
                field=field,
                error=message,
            )
            return None

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------
    def _require_client(self) -> ControlPlaneClient:
        if self.client is None:
            raise CapiError(ErrorCode.UNAVAILABLE, "Kubernetes client not initialized")
        return self.client

    @staticmethod
    def _check(err: Optional[CapiError]) -> None:
        if err is not None:
            raise err

    def _provider_name_for(self, cluster: Cluster) -> str:
        return cluster.labels.get(PROVIDER_LABEL) or self.registry.default

    def _provider_for(self, cluster: Cluster) -> Optional[Provider]:
        return self.registry.for_cluster_labels(cluster.labels, PROVIDER_LABEL)

    def _get_cluster(self, name: str, deadline: Optional[Deadline], action: str = "get cluster") -> Cluster:
        client = self._require_client()
        try:
            return client.get_cluster(name, deadline)
        except CapiError as exc:
            if exc.code == ErrorCode.NOT_FOUND:
                raise _not_found(f"cluster '{name}' not found", "cluster", cluster_name=name) from exc
            raise _rewrap(exc, f"failed to {action}", cluster_name=name) from exc

    @staticmethod
    def _node_count(pools: List[NodePool]) -> int:
        # worker replicas plus one control-plane node
        return sum(p.replicas for p in pools) + 1

    def _summary(self, cluster: Cluster, node_count: Optional[int] = None, version: Optional[str] = None) -> ClusterSummary:
        return ClusterSummary(
            name=cluster.name,
            namespace=cluster.namespace or self.namespace,
            provider=self._provider_name_for(cluster),
            kubernetes_version=version if version is not None else cluster.kubernetes_version,
            status=cluster.status,
            created_at=cluster.creation_timestamp,
            node_count=node_count,
        )

    # -----------------------------------------------------------------
    # Read paths
    # -----------------------------------------------------------------
    def list_clusters(self, deadline: Optional[Deadline] = None) -> ListClustersOutput:
        with self._operation("list_clusters"):
            if self.client is None:
                log.warning("Kubernetes client not initialized; reporting no clusters")
                return ListClustersOutput(clusters=[])

            try:
                clusters = self.client.list_clusters(deadline)
            except CapiError as exc:
                if exc.code == ErrorCode.TIMEOUT:
                    raise _rewrap(exc, "timeout listing clusters") from exc
                if exc.code in (ErrorCode.UNAUTHORIZED, ErrorCode.FORBIDDEN):
                    raise _rewrap(exc, "unauthorized to list clusters") from exc
                raise _rewrap(exc, "failed to list clusters") from exc

            summaries = []
            for cluster in clusters:
                pools = self._enrich(
                    "list_clusters",
                    cluster.name,
                    "node_count",
                    lambda c=cluster: self.client.list_node_pools(c.name, deadline),
                )
                summaries.append(
                    self._summary(cluster, node_count=self._node_count(pools) if pools is not None else None)
                )

            log.info("Listed %d clusters", len(summaries))
            return ListClustersOutput(clusters=summaries)

    def get_cluster(self, cluster_name: str, deadline: Optional[Deadline] = None) -> GetClusterOutput:
        with self._operation("get_cluster", cluster_name):
            self._check(validate_cluster_name(cluster_name))
            cluster = self._get_cluster(cluster_name, deadline)

            pools = self._enrich(
                "get_cluster",
                cluster_name,
                "node_pools",
                lambda: self._require_client().list_node_pools(cluster_name, deadline),
            )
            provider = self._provider_for(cluster)
            provider_status = None
            if provider is not None:
                provider_status = self._enrich(
                    "get_cluster",
                    cluster_name,
                    "provider_status",
                    lambda: provider.provider_status(cluster),
                )

            region = ""
            if provider_status and isinstance(provider_status.get("region"), str):
                region = provider_status["region"]
            elif isinstance(cluster.variables.get("region"), str):
                region = cluster.variables["region"]

            details = ClusterDetails(
                name=cluster.name,
                namespace=cluster.namespace or self.namespace,
                provider=self._provider_name_for(cluster),
                region=region,
                kubernetes_version=cluster.kubernetes_version,
                cluster_class=cluster.topology_class,
                status=cluster.status,
                control_plane_ready=cluster.control_plane_ready,
                infrastructure_ready=cluster.infrastructure_ready,
                created_at=cluster.creation_timestamp,
                endpoint=cluster.control_plane_endpoint,
                node_count=self._node_count(pools) if pools is not None else None,
                node_pools=[
                    NodePoolSummary(
                        name=p.name,
                        replicas=p.replicas,
                        ready_replicas=p.ready_replicas,
                        machine_type=p.machine_type,
                    )
                    for p in pools or []
                ],
                conditions=[
                    ClusterCondition(
                        type=c.type,
                        status=c.status,
                        last_transition_time=c.last_transition_time,
                        reason=c.reason,
                        message=c.message,
                    )
                    for c in cluster.conditions
                ],
                infrastructure_ref=cluster.infrastructure_ref.as_dict() if cluster.infrastructure_ref else None,
            )
            log.info("Retrieved cluster %s (%s)", cluster_name, details.status)
            return GetClusterOutput(cluster=details, provider_status=provider_status)

    def list_cluster_templates(self, deadline: Optional[Deadline] = None) -> ListClusterTemplatesOutput:
        with self._operation("list_cluster_templates"):
            if self.client is None:
                log.warning("Kubernetes client not initialized; reporting no templates")
                return ListClusterTemplatesOutput(templates=[])
            try:
                classes = self.client.list_cluster_classes(deadline)
            except CapiError as exc:
                raise _rewrap(exc, "failed to list cluster templates") from exc
            return ListClusterTemplatesOutput(templates=[self._template(cc) for cc in classes])

    def _template(self, cc: ClusterClass) -> ClusterTemplate:
        kind = cc.infrastructure_kind.lower()
        provider = resolve_provider_name({}, kind, default="") or resolve_provider_name(
            {}, cc.name, self.registry.default
        )
        return ClusterTemplate(
            name=cc.name,
            namespace=cc.namespace or self.namespace,
            provider=provider,
            infrastructure_kind=cc.infrastructure_kind,
            description=cc.description,
            variables=[TemplateVariable(**asdict(v)) for v in cc.variables],
        )

    # -----------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------
    def create_cluster(
        self,
        cluster_name: str,
        template_name: str,
        kubernetes_version: str,
        variables: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> CreateClusterOutput:
        with self._operation("create_cluster", cluster_name) as outcome:
            variables = dict(variables or {})
            provider_name = resolve_provider_name(variables, template_name, self.registry.default)
            provider = self.registry.get(provider_name)

            # every structural violation at once, before any backend call
            self._check(
                validate_cluster_request(
                    cluster_name,
                    template_name,
                    kubernetes_version,
                    variables,
                )
            )
            self._validate_with_provider(provider, provider_name, variables)

            client = self._require_client()
            log.info(
                "Creating cluster %s (template=%s, version=%s, provider=%s)",
                cluster_name,
                template_name,
                kubernetes_version,
                provider_name,
            )

            self._ensure_absent(cluster_name, deadline)
            cluster_class = self._get_template(template_name, deadline)

            body = build_cluster_manifest(
                cluster_name,
                cluster_class.name,
                kubernetes_version,
                self.namespace,
                variables=variables,
                provider=provider_name,
                renderer=self._renderer,
            )
            try:
                created = client.create_cluster(body, deadline)
            except CapiError as exc:
                if exc.code == ErrorCode.ALREADY_EXISTS:
                    raise CapiError(
                        ErrorCode.ALREADY_EXISTS,
                        f"cluster '{cluster_name}' already exists",
                        details={"resource": "cluster", "cluster_name": cluster_name},
                        cause=exc,
                    ) from exc
                raise _rewrap(exc, "failed to create cluster", cluster_name=cluster_name) from exc

            # the record is durable from here on; waiting only improves the reported phase
            result = poll_until(
                self._phase_check(cluster_name),
                interval=self.timeouts.poll_interval,
                timeout=self.timeouts.create_wait,
                deadline=deadline,
                bus=self.bus,
                operation="create_cluster",
                cluster_name=cluster_name,
            )
            final = result.value if result.value is not None else created
            if not final.namespace:
                final.namespace = self.namespace

            outcome["status"] = final.status
            log.info("Cluster %s creation initiated (phase=%s)", cluster_name, final.status)
            return CreateClusterOutput(
                success=True,
                cluster=self._summary(final, version=kubernetes_version),
                message=f"Cluster '{cluster_name}' creation initiated successfully",
                timed_out=result.timed_out,
            )

    def _validate_with_provider(
        self, provider: Optional[Provider], provider_name: str, variables: Dict[str, Any]
    ) -> None:
        if provider is None:
            log.debug("No provider registered as %s; skipping provider validation", provider_name)
            return
        try:
            provider.validate_cluster_config(variables)
        except CapiError as exc:
            raise CapiError(
                ErrorCode.PROVIDER_VALIDATION,
                f"provider validation failed: {exc.message}",
                details={**exc.details, "provider": provider_name},
                cause=exc,
            ) from exc

    def _ensure_absent(self, cluster_name: str, deadline: Optional[Deadline]) -> None:
        client = self._require_client()
        try:
            client.get_cluster(cluster_name, deadline)
        except CapiError as exc:
            if exc.code == ErrorCode.NOT_FOUND:
                return
            raise _rewrap(exc, "failed to check for an existing cluster", cluster_name=cluster_name) from exc
        raise CapiError(
            ErrorCode.ALREADY_EXISTS,
            f"cluster '{cluster_name}' already exists",
            details={"resource": "cluster", "cluster_name": cluster_name},
        )

    def _get_template(self, template_name: str, deadline: Optional[Deadline]) -> ClusterClass:
        client = self._require_client()
        try:
            return client.get_cluster_class(template_name, deadline)
        except CapiError as exc:
            if exc.code == ErrorCode.NOT_FOUND:
                raise _not_found(
                    f"cluster template '{template_name}' not found", "cluster template", field="template_name"
                ) from exc
            raise _rewrap(exc, "failed to get cluster template") from exc

    def _phase_check(self, cluster_name: str) -> Callable[[Deadline], Tuple[bool, Optional[Cluster], str]]:
        def check(wait: Deadline) -> Tuple[bool, Optional[Cluster], str]:
            try:
                cluster = self._require_client().get_cluster(cluster_name, wait)
            except CapiError as exc:
                # transient; the next tick tries again
                log.debug("create_cluster %s: poll read failed: %s", cluster_name, exc.code.value)
                return False, None, f"error:{exc.code.value}"
            return bool(cluster.phase), cluster, cluster.phase or "pending"

        return check

    # -----------------------------------------------------------------
    # Delete
    # -----------------------------------------------------------------
    def delete_cluster(self, cluster_name: str, deadline: Optional[Deadline] = None) -> DeleteClusterOutput:
        with self._operation("delete_cluster", cluster_name) as outcome:
            self._check(validate_cluster_name(cluster_name))
            client = self._require_client()

            self._get_cluster(cluster_name, deadline, action="verify cluster exists")

            log.info("Deleting cluster %s", cluster_name)
            try:
                client.delete_cluster(cluster_name, deadline)
            except CapiError as exc:
                if exc.code != ErrorCode.NOT_FOUND:
                    raise _rewrap(exc, "failed to delete cluster", cluster_name=cluster_name) from exc
                log.info("Cluster %s disappeared before delete was submitted", cluster_name)

            def check(wait: Deadline) -> Tuple[bool, Optional[Cluster], str]:
                try:
                    cluster = client.get_cluster(cluster_name, wait)
                except CapiError as exc:
                    if exc.code == ErrorCode.NOT_FOUND:
                        return True, None, "absent"
                    return False, None, f"error:{exc.code.value}"
                return False, cluster, cluster.status

            result = poll_until(
                check,
                interval=self.timeouts.poll_interval,
                timeout=self.timeouts.delete_wait,
                deadline=deadline,
                bus=self.bus,
                operation="delete_cluster",
                cluster_name=cluster_name,
            )

            if result.done:
                outcome["status"] = STATUS_DELETED
                log.info("Cluster %s deleted", cluster_name)
                return DeleteClusterOutput(
                    status=STATUS_DELETED,
                    message=f"Cluster '{cluster_name}' deleted successfully",
                )

            outcome["status"] = STATUS_DELETING
            if result.cancelled:
                message = f"Cluster '{cluster_name}' deletion initiated (stopped waiting: request cancelled)"
            else:
                message = f"Cluster '{cluster_name}' deletion initiated (may still be in progress)"
            return DeleteClusterOutput(
                status=STATUS_DELETING,
                message=message,
                timed_out=True,
            )

    # -----------------------------------------------------------------
    # Scale
    # -----------------------------------------------------------------
    def scale_cluster(
        self,
        cluster_name: str,
        node_pool_name: str,
        replicas: int,
        deadline: Optional[Deadline] = None,
    ) -> ScaleClusterOutput:
        with self._operation("scale_cluster", cluster_name) as outcome:
            self._check(
                combine_errors(
                    [
                        e
                        for e in (
                            validate_cluster_name(cluster_name),
                            validate_node_pool_name(node_pool_name),
                            validate_replica_count(replicas),
                        )
                        if e is not None
                    ]
                )
            )
            client = self._require_client()
            target = int(replicas)

            try:
                pool = client.get_node_pool(cluster_name, node_pool_name, deadline)
            except CapiError as exc:
                if exc.code == ErrorCode.NOT_FOUND:
                    raise _not_found(
                        f"node pool '{node_pool_name}' not found in cluster '{cluster_name}'",
                        "node pool",
                        cluster_name=cluster_name,
                    ) from exc
                raise _rewrap(exc, "failed to get node pool", cluster_name=cluster_name) from exc

            current = pool.replicas
            if current == target:
                outcome["status"] = STATUS_READY
                log.info("Node pool %s/%s already at %d replicas", cluster_name, node_pool_name, target)
                return ScaleClusterOutput(
                    status=STATUS_READY,
                    message=f"Node pool '{node_pool_name}' already has {target} replicas",
                    old_replicas=current,
                    new_replicas=target,
                )

            log.info("Scaling node pool %s/%s from %d to %d", cluster_name, node_pool_name, current, target)
            try:
                client.update_node_pool_replicas(pool, target, deadline)
            except CapiError as exc:
                raise _rewrap(exc, "failed to scale node pool", cluster_name=cluster_name) from exc

            outcome["status"] = STATUS_SCALING
            return ScaleClusterOutput(
                status=STATUS_SCALING,
                message=f"Scaling node pool '{node_pool_name}' from {current} to {target} replicas",
                old_replicas=current,
                new_replicas=target,
            )

    # -----------------------------------------------------------------
    # Credentials and workload view
    # -----------------------------------------------------------------
    def _fetch_kubeconfig(self, cluster_name: str, deadline: Optional[Deadline]) -> bytes:
        client = self._require_client()
        try:
            data = client.get_kubeconfig_secret(cluster_name, deadline)
        except CapiError as exc:
            if exc.code == ErrorCode.NOT_FOUND:
                raise _not_found(
                    f"kubeconfig for cluster '{cluster_name}' not found", "kubeconfig", cluster_name=cluster_name
                ) from exc
            raise _rewrap(exc, "failed to get kubeconfig", cluster_name=cluster_name) from exc

        if KUBECONFIG_SECRET_KEY not in data:
            raise CapiError(
                ErrorCode.INTERNAL,
                "kubeconfig data not found in secret",
                details={"cluster_name": cluster_name},
            )
        kubeconfig = data[KUBECONFIG_SECRET_KEY]
        if not kubeconfig:
            raise CapiError(ErrorCode.INTERNAL, "kubeconfig data is empty", details={"cluster_name": cluster_name})
        # size only; the bundle itself never reaches a log
        log.info("Retrieved kubeconfig for %s (%d bytes)", cluster_name, len(kubeconfig))
        return kubeconfig

    def get_cluster_kubeconfig(
        self, cluster_name: str, deadline: Optional[Deadline] = None
    ) -> GetClusterKubeconfigOutput:
        with self._operation("get_cluster_kubeconfig", cluster_name):
            self._check(validate_cluster_name(cluster_name))
            kubeconfig = self._fetch_kubeconfig(cluster_name, deadline)
            try:
                text = kubeconfig.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise CapiError(
                    ErrorCode.INTERNAL, "kubeconfig is not valid UTF-8", details={"cluster_name": cluster_name}
                ) from exc
            return GetClusterKubeconfigOutput(kubeconfig=text)

    def get_cluster_nodes(self, cluster_name: str, deadline: Optional[Deadline] = None) -> GetClusterNodesOutput:
        with self._operation("get_cluster_nodes", cluster_name):
            self._check(validate_cluster_name(cluster_name))
            self._require_client()
            scoped = (deadline or Deadline.never()).child(self.timeouts.nodes)

            try:
                kubeconfig = self._fetch_kubeconfig(cluster_name, scoped)
            except CapiError as exc:
                if exc.code == ErrorCode.TIMEOUT:
                    raise
                raise wrap_error(exc, ErrorCode.DEPENDENCY_FAILURE, "failed to get kubeconfig") from exc

            try:
                workload = self._workload_factory(kubeconfig, self.timeouts.request)
            except CapiError as exc:
                raise wrap_error(
                    exc, ErrorCode.INTERNAL, "failed to create workload cluster client"
                ).with_details(cluster_name=cluster_name) from exc

            try:
                nodes = workload.list_nodes(scoped)
            except CapiError as exc:
                if exc.code == ErrorCode.TIMEOUT:
                    raise wrap_error(
                        exc, ErrorCode.TIMEOUT, "timeout listing nodes from workload cluster"
                    ).with_details(cluster_name=cluster_name) from exc
                raise wrap_error(
                    exc, ErrorCode.WORKLOAD_CLUSTER, "failed to list nodes from workload cluster"
                ).with_details(cluster_name=cluster_name) from exc
            finally:
                workload.close()

            log.info("Retrieved %d nodes of cluster %s", len(nodes), cluster_name)
            return GetClusterNodesOutput(nodes=[NodeInfo(**asdict(n)) for n in nodes])

    # -----------------------------------------------------------------
    # Wait for readiness
    # -----------------------------------------------------------------
    def wait_for_cluster_ready(self, cluster_name: str, deadline: Optional[Deadline] = None) -> WaitForClusterOutput:
        """
        Block until the cluster is Provisioned with control plane and
        infrastructure ready, it reports Failed, or the ready-wait ceiling
        passes. A timeout is not an error: the best-known state comes back
        with a diagnosis from the cluster's provider.
        """
        with self._operation("wait_for_cluster_ready", cluster_name) as outcome:
            self._check(validate_cluster_name(cluster_name))
            cluster = self._get_cluster(cluster_name, deadline)

            if not (cluster.ready or cluster.failed):
                result = poll_until(
                    self._ready_check(cluster_name),
                    interval=self.timeouts.poll_interval,
                    timeout=self.timeouts.ready_wait,
                    deadline=deadline,
                    bus=self.bus,
                    operation="wait_for_cluster_ready",
                    cluster_name=cluster_name,
                )
                if result.value is not None:
                    cluster = result.value
                timed_out = not result.done
            else:
                timed_out = False

            outcome["status"] = cluster.status
            summary = self._summary(cluster)

            if cluster.ready:
                return WaitForClusterOutput(
                    cluster=summary, ready=True, message=f"Cluster '{cluster_name}' is ready"
                )
            if cluster.failed:
                reason = cluster.failure_message()
                return WaitForClusterOutput(
                    cluster=summary,
                    ready=False,
                    message=f"Cluster '{cluster_name}' has failed: {reason}",
                    diagnosis=reason,
                )

            diagnosis = self._infrastructure_diagnosis(cluster)
            return WaitForClusterOutput(
                cluster=summary,
                ready=False,
                timed_out=timed_out,
                message=f"Cluster '{cluster_name}' is not ready yet (phase {cluster.status})",
                diagnosis=diagnosis,
            )

    def _ready_check(self, cluster_name: str) -> Callable[[Deadline], Tuple[bool, Optional[Cluster], str]]:
        def check(wait: Deadline) -> Tuple[bool, Optional[Cluster], str]:
            try:
                cluster = self._require_client().get_cluster(cluster_name, wait)
            except CapiError as exc:
                if exc.code == ErrorCode.NOT_FOUND:
                    raise _not_found(
                        f"cluster '{cluster_name}' disappeared while waiting", "cluster", cluster_name=cluster_name
                    ) from exc
                return False, None, f"error:{exc.code.value}"
            return cluster.ready or cluster.failed, cluster, cluster.phase or "pending"

        return check

    def _infrastructure_diagnosis(self, cluster: Cluster) -> Optional[str]:
        provider = self._provider_for(cluster)
        if provider is None:
            return None
        try:
            provider.validate_infrastructure_readiness(cluster)
        except CapiError as exc:
            return exc.message
        if not cluster.control_plane_ready:
            return "infrastructure is ready; control plane is not ready yet"
        return None

    # -----------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------
    def health_check(self, deadline: Optional[Deadline] = None) -> HealthCheckOutput:
        """
        Reachability of what the tools depend on. ``healthy`` only says the
        server answered; ``ready`` needs the default provider registered and
        one cluster listing to succeed against the control plane.
        """
        with self._operation("health_check") as outcome:
            checks: List[HealthCheckResult] = []

            def _run(name: str, fn: Callable[[], Any]) -> None:
                started = time.perf_counter()
                try:
                    fn()
                except Exception as exc:
                    code = error_code(exc) or ErrorCode.INTERNAL
                    checks.append(
                        HealthCheckResult(
                            name=name,
                            ok=False,
                            ms=int((time.perf_counter() - started) * 1000),
                            code=code.value,
                            error=sanitize_message(user_message(exc)),
                        )
                    )
                    return
                checks.append(HealthCheckResult(name=name, ok=True, ms=int((time.perf_counter() - started) * 1000)))

            _run("providers", lambda: self.registry.require(self.registry.default))
            _run("control_plane", lambda: self._require_client().list_clusters(deadline))

            ready = all(c.ok for c in checks)
            outcome["status"] = "ready" if ready else "not_ready"
            if not ready:
                log.warning("health check: not ready (%s)", ", ".join(c.name for c in checks if not c.ok))
            return HealthCheckOutput(
                ready=ready,
                checked_at=datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
                checks=checks,
            )

    # -----------------------------------------------------------------
    # Providers and validate-only mode
    # -----------------------------------------------------------------
    def list_providers(self) -> ListProvidersOutput:
        with self._operation("list_providers"):
            infos = [ProviderInfo(**self.registry.require(name).describe()) for name in self.registry.names()]
            return ListProvidersOutput(providers=infos, default=self.registry.default)

    def get_provider_instance_types(self, provider: str, region: Optional[str] = None) -> InstanceTypesOutput:
        with self._operation("get_provider_instance_types"):
            impl = self.registry.require(provider or self.registry.default)
            region = region or getattr(impl, "region", "")
            return InstanceTypesOutput(
                provider=impl.name,
                region=region,
                instance_types=impl.instance_types(region),
            )

    def validate_cluster_request(
        self,
        cluster_name: str,
        template_name: str,
        kubernetes_version: str,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> ValidateClusterOutput:
        """
        Dry run of the create validation path; needs no control plane.
        When the name is invalid a sanitized suggestion is offered, never
        applied.
        """
        with self._operation("validate_cluster_request", cluster_name if isinstance(cluster_name, str) else ""):
            variables = dict(variables or {})
            provider_name = resolve_provider_name(variables, template_name, self.registry.default)
            provider = self.registry.get(provider_name)

            errors: List[Dict[str, Any]] = []
            structural = validate_cluster_request(
                cluster_name,
                template_name,
                kubernetes_version,
                variables,
            )
            if structural is not None:
                errors.append(to_safe_dict(structural))
            try:
                self._validate_with_provider(provider, provider_name, variables)
            except CapiError as exc:
                errors.append(to_safe_dict(exc))

            suggested = None
            if validate_cluster_name(cluster_name) is not None:
                suggested = sanitize_cluster_name(cluster_name if isinstance(cluster_name, str) else "")

            return ValidateClusterOutput(
                valid=not errors,
                provider=provider_name,
                errors=errors,
                suggested_name=suggested,
            )
