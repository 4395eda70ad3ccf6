# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/tools/handlers.py
"""
Tool-call boundary.

Each handler authenticates the caller, runs one service operation under a
request deadline tied to the server's stop event, and returns a plain dict:

    {"ok": True, ...operation output...}
    {"ok": False, "error": {"code": ..., "message": ..., "details": {...}}}

Only sanitized, allow-listed error fields cross this line. Unexpected
exceptions are logged with their traceback and reported as INTERNAL_ERROR.
"""
from __future__ import annotations

import hmac
import logging
import threading
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from capimcp.context import AppContext
from capimcp.errors import CapiError, ErrorCode, to_safe_dict
from capimcp.utils.deadline import Deadline

log = logging.getLogger("capimcp")

Result = Dict[str, Any]


class ToolHandlers:
    def __init__(self, ctx: AppContext, *, stop: Optional[threading.Event] = None):
        self.ctx = ctx
        self.service = ctx.service
        self.stop = stop or threading.Event()

    # -----------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------
    def _auth_or_error(self, _client_token: Optional[str]) -> Optional[Result]:
        expected = self.ctx.config.api_key_value()
        if not expected:
            return None
        if not _client_token or not hmac.compare_digest(str(_client_token), expected):
            return {
                "ok": False,
                "error": {"code": ErrorCode.UNAUTHORIZED.value, "message": "unauthorized"},
                "hint": "Invalid or missing client token.",
            }
        return None

    def _run(self, tool: str, _client_token: Optional[str], fn: Callable[[Deadline], BaseModel]) -> Result:
        err = self._auth_or_error(_client_token)
        if err:
            log.warning("tool %s: rejected unauthenticated call", tool)
            return err

        deadline = Deadline(self.ctx.config.mcp.tool_timeout, stop=self.stop)
        try:
            out = fn(deadline)
        except CapiError as exc:
            return {"ok": False, "error": to_safe_dict(exc)}
        except Exception as exc:
            log.exception("tool %s: unexpected failure", tool)
            return {"ok": False, "error": to_safe_dict(exc)}
        return {"ok": True, **out.model_dump()}

    # -----------------------------------------------------------------
    # Tools
    # -----------------------------------------------------------------
    def list_clusters(self, _client_token: Optional[str] = None) -> Result:
        return self._run("list_clusters", _client_token, lambda d: self.service.list_clusters(d))

    def get_cluster(self, cluster_name: str, _client_token: Optional[str] = None) -> Result:
        return self._run("get_cluster", _client_token, lambda d: self.service.get_cluster(cluster_name, d))

    def create_cluster(
        self,
        cluster_name: str,
        template_name: str,
        kubernetes_version: str,
        variables: Optional[Dict[str, Any]] = None,
        _client_token: Optional[str] = None,
    ) -> Result:
        return self._run(
            "create_cluster",
            _client_token,
            lambda d: self.service.create_cluster(
                cluster_name, template_name, kubernetes_version, variables or {}, d
            ),
        )

    def delete_cluster(self, cluster_name: str, _client_token: Optional[str] = None) -> Result:
        return self._run("delete_cluster", _client_token, lambda d: self.service.delete_cluster(cluster_name, d))

    def scale_cluster(
        self,
        cluster_name: str,
        node_pool_name: str,
        replicas: int,
        _client_token: Optional[str] = None,
    ) -> Result:
        return self._run(
            "scale_cluster",
            _client_token,
            lambda d: self.service.scale_cluster(cluster_name, node_pool_name, replicas, d),
        )

    def get_cluster_kubeconfig(self, cluster_name: str, _client_token: Optional[str] = None) -> Result:
        return self._run(
            "get_cluster_kubeconfig",
            _client_token,
            lambda d: self.service.get_cluster_kubeconfig(cluster_name, d),
        )

    def get_cluster_nodes(self, cluster_name: str, _client_token: Optional[str] = None) -> Result:
        return self._run(
            "get_cluster_nodes", _client_token, lambda d: self.service.get_cluster_nodes(cluster_name, d)
        )

    def wait_for_cluster_ready(self, cluster_name: str, _client_token: Optional[str] = None) -> Result:
        return self._run(
            "wait_for_cluster_ready",
            _client_token,
            lambda d: self.service.wait_for_cluster_ready(cluster_name, d),
        )

    def list_cluster_templates(self, _client_token: Optional[str] = None) -> Result:
        return self._run(
            "list_cluster_templates", _client_token, lambda d: self.service.list_cluster_templates(d)
        )

    def list_providers(self, _client_token: Optional[str] = None) -> Result:
        return self._run("list_providers", _client_token, lambda d: self.service.list_providers())

    def get_provider_instance_types(
        self,
        provider: str = "aws",
        region: Optional[str] = None,
        _client_token: Optional[str] = None,
    ) -> Result:
        return self._run(
            "get_provider_instance_types",
            _client_token,
            lambda d: self.service.get_provider_instance_types(provider, region),
        )

    def validate_cluster_request(
        self,
        cluster_name: str,
        template_name: str,
        kubernetes_version: str,
        variables: Optional[Dict[str, Any]] = None,
        _client_token: Optional[str] = None,
    ) -> Result:
        return self._run(
            "validate_cluster_request",
            _client_token,
            lambda d: self.service.validate_cluster_request(
                cluster_name, template_name, kubernetes_version, variables or {}
            ),
        )

    def health_check(self, _client_token: Optional[str] = None) -> Result:
        return self._run("health_check", _client_token, lambda d: self.service.health_check(d))


# tool name -> one-line description shown to the agent
TOOL_DESCRIPTIONS: Dict[str, str] = {
    "list_clusters": "List workload clusters on the management cluster with status and node counts.",
    "get_cluster": "Detailed view of one cluster: node pools, conditions and provider status.",
    "create_cluster": "Create a cluster from a ClusterClass template and wait briefly for it to report a phase.",
    "delete_cluster": "Delete a cluster and wait for it to disappear.",
    "scale_cluster": "Set the replica count of one node pool (MachineDeployment) of a cluster.",
    "get_cluster_kubeconfig": "Return the admin kubeconfig of a workload cluster.",
    "get_cluster_nodes": "List the nodes of a workload cluster with status, roles and addresses.",
    "wait_for_cluster_ready": "Block until a cluster is ready, has failed, or the wait ceiling passes.",
    "list_cluster_templates": "List the ClusterClass templates available for cluster creation.",
    "list_providers": "List registered infrastructure providers with their regions and versions.",
    "get_provider_instance_types": "List instance types a provider offers in a region.",
    "validate_cluster_request": "Check a create request without touching the control plane.",
    "health_check": "Report whether the server is up and can reach the management cluster.",
}
