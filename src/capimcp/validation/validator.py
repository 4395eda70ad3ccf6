# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/validation/validator.py
"""
Structural checks for names, versions, replica counts and the well-known
provider-config variables.

Every ``validate_*`` function returns ``None`` when the value is fine and a
``CapiError`` describing the violation otherwise; nothing here raises.
``validate_cluster_request`` collects every violation of a creation request
into a single combined error.
"""
from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from capimcp.errors import CapiError, ErrorCode, combine_errors

MAX_NAME_LENGTH = 63
MIN_REPLICAS = 0
MAX_REPLICAS = 100
MIN_NODE_COUNT = 1
MAX_NODE_COUNT = 100

IPV4_PREFIX_RANGE = (8, 28)
IPV6_PREFIX_RANGE = (16, 120)

_NAME_RE = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
_VERSION_RE = re.compile(r"v\d+\.\d+\.\d+(-[0-9A-Za-z][0-9A-Za-z.-]*)?")
_INSTANCE_TYPE_RE = re.compile(r"[a-z]+[0-9][a-z0-9-]*\.[a-z0-9]+")


class Field(str, Enum):
    CLUSTER_NAME = "cluster_name"
    TEMPLATE_NAME = "template_name"
    NODE_POOL_NAME = "node_pool_name"
    NAMESPACE = "namespace"
    KUBERNETES_VERSION = "kubernetes_version"
    REPLICAS = "replicas"
    VARIABLES = "variables"


def _invalid(field: str, message: str, **details: Any) -> CapiError:
    return CapiError(ErrorCode.INVALID_INPUT, message, details={"field": field, **details})


# ---------------------------------------------------------------------
# Names, versions, counts
# ---------------------------------------------------------------------
def _validate_name(value: Any, field: str, label: str) -> Optional[CapiError]:
    if not isinstance(value, str):
        return _invalid(field, f"{label} must be a string")
    if value == "":
        return _invalid(field, f"{label} cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        return _invalid(field, f"{label} must be {MAX_NAME_LENGTH} characters or less")
    if not _NAME_RE.fullmatch(value):
        return _invalid(
            field,
            f"{label} must consist of lowercase alphanumeric characters or '-', "
            "and must start and end with an alphanumeric character",
        )
    return None


def validate_cluster_name(value: Any) -> Optional[CapiError]:
    return _validate_name(value, Field.CLUSTER_NAME.value, "cluster name")


def validate_template_name(value: Any) -> Optional[CapiError]:
    return _validate_name(value, Field.TEMPLATE_NAME.value, "template name")


def validate_node_pool_name(value: Any) -> Optional[CapiError]:
    return _validate_name(value, Field.NODE_POOL_NAME.value, "node pool name")


def validate_namespace(value: Any) -> Optional[CapiError]:
    return _validate_name(value, Field.NAMESPACE.value, "namespace")


def validate_kubernetes_version(value: Any) -> Optional[CapiError]:
    field = Field.KUBERNETES_VERSION.value
    if not isinstance(value, str) or value == "":
        return _invalid(field, "kubernetes version cannot be empty")
    if not _VERSION_RE.fullmatch(value):
        return _invalid(field, "kubernetes version must be in format 'vX.Y.Z' (e.g., v1.28.0)")
    return None


def _as_int(value: Any) -> Optional[int]:
    # bool is an int subclass; never accept it as a count
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def validate_replica_count(value: Any, field: str = Field.REPLICAS.value) -> Optional[CapiError]:
    count = _as_int(value)
    if count is None:
        return _invalid(field, "replica count must be an integer")
    if count < MIN_REPLICAS:
        return _invalid(field, "replica count cannot be negative")
    if count > MAX_REPLICAS:
        return _invalid(field, f"replica count cannot exceed {MAX_REPLICAS}")
    return None


# ---------------------------------------------------------------------
# Provider-config variables
# ---------------------------------------------------------------------
def validate_node_count(value: Any) -> Optional[CapiError]:
    count = _as_int(value)
    if count is None:
        return _invalid("nodeCount", "nodeCount must be an integer")
    if not MIN_NODE_COUNT <= count <= MAX_NODE_COUNT:
        return _invalid(
            "nodeCount",
            f"nodeCount must be between {MIN_NODE_COUNT} and {MAX_NODE_COUNT}, got {count}",
        )
    return None


def validate_region(value: Any) -> Optional[CapiError]:
    # membership in a region list is a provider rule, not a structural one
    if not isinstance(value, str) or not value.strip():
        return _invalid("region", "region must be a non-empty string")
    return None


def validate_instance_type(value: Any) -> Optional[CapiError]:
    if not isinstance(value, str) or not value:
        return _invalid("instanceType", "instanceType must be a non-empty string")
    if not _INSTANCE_TYPE_RE.fullmatch(value):
        return _invalid(
            "instanceType",
            f"instanceType must look like <family>.<size> (e.g., m5.large), got {value}",
        )
    return None


def validate_cidr(value: Any, field: str = "cidr") -> Optional[CapiError]:
    if not isinstance(value, str) or not value:
        return _invalid(field, f"{field} must be a non-empty CIDR string")
    try:
        network = ipaddress.ip_network(value, strict=True)
    except ValueError:
        return _invalid(field, f"{field} is not a valid network: {value}")

    low, high = IPV4_PREFIX_RANGE if network.version == 4 else IPV6_PREFIX_RANGE
    if not low <= network.prefixlen <= high:
        return _invalid(
            field,
            f"{field} prefix length must be between /{low} and /{high}, got /{network.prefixlen}",
        )
    return None


def validate_key_name(value: Any, field: str = "sshKeyName") -> Optional[CapiError]:
    if not isinstance(value, str) or not value.strip():
        return _invalid(field, f"{field} must be a non-empty string")
    if len(value) > 255:
        return _invalid(field, f"{field} must be 255 characters or less")
    return None


def _is_cidr_key(key: str) -> bool:
    return key.lower().endswith("cidr") or key.lower().endswith("cidrblock")


def validate_cluster_variables(variables: Optional[Mapping[str, Any]]) -> List[CapiError]:
    """Type-check the well-known keys; unknown keys pass through untouched."""
    if variables is None:
        return []
    if not isinstance(variables, Mapping):
        return [_invalid(Field.VARIABLES.value, "variables must be an object")]

    errors: List[CapiError] = []
    for key, value in variables.items():
        err: Optional[CapiError] = None
        if key == "nodeCount":
            err = validate_node_count(value)
        elif key == "region":
            err = validate_region(value)
        elif key == "instanceType" or key == "controlPlaneInstanceType":
            err = validate_instance_type(value)
            if err is not None:
                err.details["field"] = key
        elif key in ("sshKeyName", "keyName"):
            err = validate_key_name(value, field=key)
        elif key == "provider":
            if not isinstance(value, str) or not value:
                err = _invalid("provider", "provider must be a non-empty string")
        elif _is_cidr_key(key):
            err = validate_cidr(value, field=key)
        if err is not None:
            errors.append(err)
    return errors


# ---------------------------------------------------------------------
# Dispatch and combination
# ---------------------------------------------------------------------
_FIELD_VALIDATORS: Dict[Field, Callable[[Any], Optional[CapiError]]] = {
    Field.CLUSTER_NAME: validate_cluster_name,
    Field.TEMPLATE_NAME: validate_template_name,
    Field.NODE_POOL_NAME: validate_node_pool_name,
    Field.NAMESPACE: validate_namespace,
    Field.KUBERNETES_VERSION: validate_kubernetes_version,
    Field.REPLICAS: validate_replica_count,
    Field.VARIABLES: lambda v: combine_errors(validate_cluster_variables(v)),
}


def validate(field: Field, value: Any) -> Optional[CapiError]:
    return _FIELD_VALIDATORS[Field(field)](value)


def validate_all(checks: Iterable[tuple]) -> Optional[CapiError]:
    """Run ``(field, value)`` checks and combine every violation into one error."""
    return combine_errors([err for err in (validate(f, v) for f, v in checks) if err is not None])


def validate_cluster_request(
    cluster_name: Any,
    template_name: Any,
    kubernetes_version: Any,
    variables: Optional[Mapping[str, Any]] = None,
) -> Optional[CapiError]:
    errors: List[CapiError] = []
    for err in (
        validate_cluster_name(cluster_name),
        validate_template_name(template_name),
        validate_kubernetes_version(kubernetes_version),
    ):
        if err is not None:
            errors.append(err)
    errors.extend(validate_cluster_variables(variables))
    return combine_errors(errors)


# ---------------------------------------------------------------------
# Best-effort name correction
# ---------------------------------------------------------------------
def sanitize_cluster_name(name: str, default: str = "cluster") -> str:
    """
    Derive a valid cluster name from an arbitrary string. Only used when the
    caller explicitly asks for auto-correction.
    """
    lowered = (name or "").lower()

    out: List[str] = []
    for ch in lowered:
        if ("a" <= ch <= "z") or ("0" <= ch <= "9") or ch == "-":
            out.append(ch)
        elif out and out[-1] != "-":
            out.append("-")

    result = "".join(out).strip("-")
    if result and result[0].isdigit():
        result = f"{default}-{result}"
    if len(result) > MAX_NAME_LENGTH:
        result = result[:MAX_NAME_LENGTH].rstrip("-")
    return result or default
