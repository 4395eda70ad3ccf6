# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/providers/aws.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.models import Cluster
from capimcp.providers.base import Provider

DEFAULT_REGION = "us-west-2"
INFRASTRUCTURE_KIND = "AWSCluster"

_REGION_PREFIXES = ("us", "eu", "ap", "ca", "sa", "af", "me")

_INSTANCE_SIZES = frozenset(
    {
        "nano", "micro", "small", "medium", "large", "xlarge",
        "2xlarge", "3xlarge", "4xlarge", "8xlarge", "9xlarge",
        "12xlarge", "16xlarge", "18xlarge", "24xlarge",
    }
)

SUPPORTED_VERSIONS = ["v1.31.0", "v1.30.5", "v1.29.9", "v1.28.14"]

REGIONS = [
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "ca-central-1",
    "eu-west-1",
    "eu-west-2",
    "eu-west-3",
    "eu-central-1",
    "eu-north-1",
    "ap-northeast-1",
    "ap-northeast-2",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-south-1",
    "sa-east-1",
]

INSTANCE_TYPES = [
    # general purpose
    "t3.micro", "t3.small", "t3.medium", "t3.large", "t3.xlarge", "t3.2xlarge",
    "m5.large", "m5.xlarge", "m5.2xlarge", "m5.4xlarge", "m5.8xlarge", "m5.12xlarge",
    "m6i.large", "m6i.xlarge", "m6i.2xlarge", "m6i.4xlarge", "m6i.8xlarge",
    # compute optimized
    "c5.large", "c5.xlarge", "c5.2xlarge", "c5.4xlarge", "c5.9xlarge", "c5.18xlarge",
    "c6i.large", "c6i.xlarge", "c6i.2xlarge", "c6i.4xlarge", "c6i.8xlarge",
    # memory optimized
    "r5.large", "r5.xlarge", "r5.2xlarge", "r5.4xlarge", "r5.8xlarge", "r5.12xlarge",
    "r6i.large", "r6i.xlarge", "r6i.2xlarge", "r6i.4xlarge", "r6i.8xlarge",
]


def is_valid_region(region: str) -> bool:
    """``<area>-<direction>-<number>`` with a known area prefix, e.g. ``eu-central-1``."""
    parts = region.split("-")
    return len(parts) == 3 and parts[0] in _REGION_PREFIXES


def is_valid_instance_type(instance_type: str) -> bool:
    """``<family><generation>.<size>``, e.g. ``m5.large`` or ``c6i.4xlarge``."""
    parts = instance_type.split(".")
    if len(parts) != 2:
        return False
    family, size = parts
    if len(family) < 2:
        return False
    has_letter = any("a" <= ch <= "z" for ch in family)
    has_digit = any(ch.isdigit() for ch in family)
    return has_letter and has_digit and size in _INSTANCE_SIZES


def _provider_error(message: str, field: str) -> CapiError:
    return CapiError(
        ErrorCode.PROVIDER_VALIDATION,
        message,
        details={"field": field, "provider": AWSProvider.name},
    )


class AWSProvider(Provider):
    """Cluster API Provider AWS (CAPA) backed clusters."""

    name = "aws"

    def __init__(self, region: Optional[str] = None):
        self.region = region or DEFAULT_REGION

    def __repr__(self) -> str:
        return f"AWSProvider(region={self.region!r})"

    # -----------------------------------------------------------------
    # Request validation
    # -----------------------------------------------------------------
    def validate_cluster_config(self, variables: Mapping[str, Any]) -> None:
        variables = variables or {}

        if "region" in variables:
            region = variables["region"]
            if not isinstance(region, str):
                raise _provider_error("region must be a string", "region")
            if not is_valid_region(region):
                raise _provider_error(f"invalid AWS region: {region}", "region")
            if region not in REGIONS:
                raise _provider_error(f"unsupported AWS region: {region}", "region")

        if "instanceType" in variables:
            instance_type = variables["instanceType"]
            if not isinstance(instance_type, str):
                raise _provider_error("instanceType must be a string", "instanceType")
            if not is_valid_instance_type(instance_type):
                raise _provider_error(f"invalid AWS instance type: {instance_type}", "instanceType")

        if "nodeCount" in variables:
            count = variables["nodeCount"]
            if isinstance(count, bool) or not isinstance(count, (int, float)):
                raise _provider_error("nodeCount must be an integer", "nodeCount")
            if isinstance(count, float) and not count.is_integer():
                raise _provider_error(
                    f"nodeCount must be an integer between 1 and 100, got {count}", "nodeCount"
                )
            if not 1 <= int(count) <= 100:
                raise _provider_error(
                    f"nodeCount must be between 1 and 100, got {int(count)}", "nodeCount"
                )

    # -----------------------------------------------------------------
    # Metadata
    # -----------------------------------------------------------------
    def supported_kubernetes_versions(self) -> List[str]:
        return list(SUPPORTED_VERSIONS)

    def regions(self) -> List[str]:
        return list(REGIONS)

    def instance_types(self, region: str) -> List[str]:
        if not isinstance(region, str) or not is_valid_region(region):
            raise CapiError(
                ErrorCode.PROVIDER_ERROR,
                f"invalid AWS region: {region}",
                details={"field": "region", "provider": self.name},
            )
        return list(INSTANCE_TYPES)

    # -----------------------------------------------------------------
    # Existing clusters
    # -----------------------------------------------------------------
    def validate_infrastructure_readiness(self, cluster: Cluster) -> None:
        ref = cluster.infrastructure_ref
        details = {"cluster_name": cluster.name, "provider": self.name}
        if ref is None:
            raise CapiError(
                ErrorCode.PRECONDITION_FAILED,
                f"cluster {cluster.name} has no infrastructure reference",
                details=details,
            )
        if ref.kind != INFRASTRUCTURE_KIND:
            raise CapiError(
                ErrorCode.PRECONDITION_FAILED,
                f"cluster {cluster.name} infrastructure is not an {INFRASTRUCTURE_KIND} (got {ref.kind})",
                details=details,
            )
        if not cluster.infrastructure_ready:
            raise CapiError(
                ErrorCode.PRECONDITION_FAILED,
                f"AWS infrastructure for cluster {cluster.name} is not ready",
                details=details,
            )

    def provider_status(self, cluster: Cluster) -> Dict[str, Any]:
        status: Dict[str, Any] = {}
        if cluster.infrastructure_ref is not None:
            status["infrastructureKind"] = cluster.infrastructure_ref.kind
            status["infrastructureName"] = cluster.infrastructure_ref.name

        region = cluster.variables.get("region")
        status["region"] = region if isinstance(region, str) and region else self.region
        status["provider"] = self.name
        status["ready"] = cluster.infrastructure_ready
        return status
