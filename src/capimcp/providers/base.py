# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/providers/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from capimcp.k8s.models import Cluster


class Provider(ABC):
    """
    Cloud-backend strategy.

    A provider validates the free-form variables of a creation request,
    publishes region/version/instance metadata and interprets the
    infrastructure side of an existing cluster. Providers hold only their
    startup configuration and are shared by every request.
    """

    name: str = ""

    @abstractmethod
    def validate_cluster_config(self, variables: Mapping[str, Any]) -> None:
        """Raise ``CapiError(PROVIDER_VALIDATION)`` when a backend rule is violated."""

    @abstractmethod
    def supported_kubernetes_versions(self) -> List[str]: ...

    @abstractmethod
    def regions(self) -> List[str]: ...

    @abstractmethod
    def instance_types(self, region: str) -> List[str]: ...

    @abstractmethod
    def validate_infrastructure_readiness(self, cluster: Cluster) -> None:
        """Raise ``CapiError(PRECONDITION_FAILED)`` with a precise diagnosis when not ready."""

    @abstractmethod
    def provider_status(self, cluster: Cluster) -> Dict[str, Any]: ...

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "regions": self.regions(),
            "kubernetes_versions": self.supported_kubernetes_versions(),
        }
