# tests/validation/test_validator.py
from __future__ import annotations

import pytest

from capimcp.errors import ErrorCode
from capimcp.validation.validator import (
    Field,
    sanitize_cluster_name,
    validate,
    validate_all,
    validate_cidr,
    validate_cluster_name,
    validate_cluster_request,
    validate_cluster_variables,
    validate_instance_type,
    validate_kubernetes_version,
    validate_replica_count,
)


@pytest.mark.parametrize("name", ["my-cluster-1", "a", "x" * 63, "0abc"])
def test_valid_cluster_names(name):
    assert validate_cluster_name(name) is None


@pytest.mark.parametrize(
    "name,fragment",
    [
        ("", "cannot be empty"),
        ("x" * 64, "63 characters or less"),
        ("My-Cluster!", "lowercase alphanumeric"),
        ("-edge", "start and end"),
        ("edge-", "start and end"),
        ("my-cluster\n", "lowercase alphanumeric"),
        ("my-cluster\r\n", "lowercase alphanumeric"),
        (42, "must be a string"),
    ],
)
def test_invalid_cluster_names(name, fragment):
    err = validate_cluster_name(name)
    assert err is not None
    assert err.code == ErrorCode.INVALID_INPUT
    assert err.details["field"] == "cluster_name"
    assert fragment in err.message


@pytest.mark.parametrize("version", ["v1.28.0", "v1.30.5", "v1.29.0-rc.1", "v1.29.0-alpha.1"])
def test_valid_versions(version):
    assert validate_kubernetes_version(version) is None


@pytest.mark.parametrize("version", ["1.28.0", "v1.28", "v1.28.0.1", "latest", "", "v1.28.0+", "v1.28.0\n"])
def test_invalid_versions(version):
    err = validate_kubernetes_version(version)
    assert err is not None
    assert err.details["field"] == "kubernetes_version"


@pytest.mark.parametrize("itype,ok", [("m5.large", True), ("c6i.4xlarge", True), ("m5.large\n", False), ("large", False)])
def test_instance_type_grammar(itype, ok):
    assert (validate_instance_type(itype) is None) is ok


@pytest.mark.parametrize("value,ok", [(0, True), (100, True), (3.0, True), (-1, False), (101, False), (True, False), ("3", False)])
def test_replica_bounds(value, ok):
    assert (validate_replica_count(value) is None) is ok


@pytest.mark.parametrize(
    "cidr,ok",
    [
        ("10.0.0.0/16", True),
        ("10.0.0.0/8", True),
        ("10.0.0.0/29", False),
        ("10.0.0.1/16", False),
        ("fd00::/64", True),
        ("fd00::/8", False),
        ("not-a-network", False),
    ],
)
def test_cidr(cidr, ok):
    assert (validate_cidr(cidr, field="podCidr") is None) is ok


def test_variables_check_well_known_keys_only():
    errors = validate_cluster_variables(
        {
            "nodeCount": 0,
            "region": "  ",
            "instanceType": "large",
            "vpcCidrBlock": "10.0.0.0/30",
            "sshKeyName": "",
            "customThing": {"anything": True},
        }
    )
    fields = sorted(e.details["field"] for e in errors)
    assert fields == ["instanceType", "nodeCount", "region", "sshKeyName", "vpcCidrBlock"]

    assert validate_cluster_variables(None) == []
    assert validate_cluster_variables(["nope"])[0].details["field"] == "variables"


def test_request_combines_every_violation():
    err = validate_cluster_request("My-Cluster!", "aws-quick-start", "1.28", {"nodeCount": 500})
    assert err.code == ErrorCode.INVALID_INPUT
    assert err.message.startswith("3 validation errors:")
    assert err.details["fields"] == ["cluster_name", "kubernetes_version", "nodeCount"]

    assert validate_cluster_request("my-cluster-1", "aws-quick-start", "v1.28.0") is None


def test_dispatch_by_field():
    assert validate(Field.NODE_POOL_NAME, "md-0") is None
    assert validate("namespace", "Bad NS") is not None

    err = validate_all([(Field.CLUSTER_NAME, "ok"), (Field.REPLICAS, -2), (Field.TEMPLATE_NAME, "")])
    assert "2 validation errors" in err.message


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("My-Cluster!", "my-cluster"),
        ("Prod Cluster  01", "prod-cluster-01"),
        ("123abc", "cluster-123abc"),
        ("!!!", "cluster"),
        ("A" * 80, "a" * 63),
    ],
)
def test_sanitize_cluster_name(raw, expected):
    out = sanitize_cluster_name(raw)
    assert out == expected
    assert validate_cluster_name(out) is None
