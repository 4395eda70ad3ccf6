# tests/providers/test_registry.py
from __future__ import annotations

import pytest

from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.models import PROVIDER_LABEL
from capimcp.providers.aws import AWSProvider
from capimcp.providers.registry import ProviderRegistry, resolve_provider_name


@pytest.mark.parametrize(
    "variables,template,expected",
    [
        ({"provider": "gcp"}, "aws-quick-start", "gcp"),
        ({}, "AWS-Quick-Start", "aws"),
        ({}, "azure-aks", "azure"),
        ({}, "google-standard", "gcp"),
        (None, "plain-template", "aws"),
        ({"provider": ""}, "gcp-basic", "gcp"),
    ],
)
def test_resolve_provider_name(variables, template, expected):
    assert resolve_provider_name(variables, template) == expected


def test_register_get_require():
    reg = ProviderRegistry()
    assert len(reg) == 0
    assert reg.get("aws") is None

    first, second = AWSProvider("us-east-1"), AWSProvider("eu-west-1")
    reg.register(first)
    reg.register(second)

    assert "aws" in reg
    assert len(reg) == 1
    assert reg.require("aws") is second
    assert reg.names() == ["aws"]

    with pytest.raises(CapiError) as ei:
        reg.require("azure")
    assert ei.value.code == ErrorCode.NOT_FOUND
    assert ei.value.details["provider"] == "azure"


def test_lookup_for_cluster_labels():
    reg = ProviderRegistry()
    aws = AWSProvider()
    reg.register(aws)

    assert reg.for_cluster_labels({}, PROVIDER_LABEL) is aws
    assert reg.for_cluster_labels({PROVIDER_LABEL: "gcp"}, PROVIDER_LABEL) is None
