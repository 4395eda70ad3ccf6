# tests/tools/test_handlers.py
from __future__ import annotations

import threading

import pytest

from capimcp.api.models import ListClustersOutput
from capimcp.config.models import MCPSettings, ServerConfig
from capimcp.context import AppContext, build_context
from capimcp.errors import CapiError, ErrorCode
from capimcp.tools.handlers import TOOL_DESCRIPTIONS, ToolHandlers

from conftest import make_cluster, make_pool


def _handlers(service, registry, api_key=None, stop=None, tool_timeout=None):
    cfg = ServerConfig(api_key=api_key, mcp=MCPSettings(tool_timeout=tool_timeout))
    ctx = AppContext(config=cfg, registry=registry, bus=service.bus, service=service, client=service.client)
    return ToolHandlers(ctx, stop=stop)


def test_every_tool_has_a_handler(service, registry):
    h = _handlers(service, registry)
    for name in TOOL_DESCRIPTIONS:
        assert callable(getattr(h, name))


def test_success_envelope(service, registry, fake_cp):
    fake_cp.clusters["dev-1"] = make_cluster("dev-1")
    out = _handlers(service, registry).list_clusters()
    assert out["ok"] is True
    assert out["clusters"][0]["name"] == "dev-1"


def test_error_envelope_is_sanitized(service, registry, fake_cp):
    fake_cp.fail["get_cluster"] = CapiError(
        ErrorCode.KUBERNETES_API,
        "apiserver said token=abcdefghijklmnop",
        details={"operation": "get cluster", "kubeconfig": "secret stuff"},
        cause=RuntimeError("traceback-ish"),
    )

    out = _handlers(service, registry).get_cluster("dev-1")

    assert out["ok"] is False
    err = out["error"]
    assert err["code"] == "KUBERNETES_API_ERROR"
    assert err["message"] == "failed to get cluster"
    assert "kubeconfig" not in err.get("details", {})
    assert "traceback-ish" not in str(out)


def test_validation_error_lists_all_fields(service, registry):
    out = _handlers(service, registry).create_cluster("My-Cluster!", "aws-quick-start", "1.28")
    assert out["ok"] is False
    assert out["error"]["code"] == "INVALID_INPUT"
    assert out["error"]["details"]["fields"] == ["cluster_name", "kubernetes_version"]


def test_unexpected_exception_becomes_internal(service, registry, fake_cp):
    fake_cp.fail["get_node_pool"] = KeyError("spec")
    out = _handlers(service, registry).scale_cluster("dev-1", "md-0", 2)
    assert out["ok"] is False
    assert out["error"]["code"] == "INTERNAL_ERROR"
    assert out["error"]["message"] == "An internal error occurred"


def test_token_required_when_configured(service, registry, fake_cp):
    fake_cp.pools[("dev-1", "md-0")] = make_pool()
    h = _handlers(service, registry, api_key="s3cret-key")

    denied = h.scale_cluster("dev-1", "md-0", 5)
    assert denied["ok"] is False
    assert denied["error"]["code"] == "UNAUTHORIZED"
    assert fake_cp.calls == []

    wrong = h.scale_cluster("dev-1", "md-0", 5, _client_token="nope")
    assert wrong["ok"] is False

    ok = h.scale_cluster("dev-1", "md-0", 5, _client_token="s3cret-key")
    assert ok["ok"] is True
    assert ok["status"] == "scaling"


def test_stop_event_cancels_before_mutation(service, registry, fake_cp):
    fake_cp.clusters["dev-1"] = make_cluster("dev-1")
    stop = threading.Event()
    stop.set()

    out = _handlers(service, registry, stop=stop).delete_cluster("dev-1")

    assert out["ok"] is False
    assert out["error"]["code"] == "TIMEOUT"
    assert fake_cp.called("delete_cluster") == []


def test_metadata_tools_work_without_control_plane():
    ctx = build_context(ServerConfig(), connect=False)
    h = ToolHandlers(ctx)

    assert h.list_clusters() == {"ok": True, "clusters": []}
    assert h.list_providers()["providers"][0]["name"] == "aws"
    assert h.get_provider_instance_types("aws", "us-west-2")["ok"] is True
    assert h.get_cluster("dev-1")["error"]["code"] == "SERVICE_UNAVAILABLE"

    checked = h.validate_cluster_request("Dev_1", "aws-quick-start", "v1.29.0")
    assert checked["ok"] is True
    assert checked["valid"] is False
    assert checked["suggested_name"] == "dev-1"


@pytest.mark.parametrize("region", [None, ""])
def test_instance_types_default_region(region):
    ctx = build_context(ServerConfig(), connect=False)
    out = ToolHandlers(ctx).get_provider_instance_types("aws", region)
    assert out["ok"] is True
    assert out["region"] == "us-west-2"


def _capture_deadline(monkeypatch, service):
    seen = []

    def list_clusters(deadline=None):
        seen.append(deadline)
        return ListClustersOutput()

    monkeypatch.setattr(service, "list_clusters", list_clusters)
    return seen


def test_request_deadline_follows_tool_timeout(monkeypatch, service, registry):
    seen = _capture_deadline(monkeypatch, service)

    assert _handlers(service, registry, tool_timeout=5).list_clusters()["ok"] is True

    remaining = seen[0].remaining()
    assert remaining is not None
    assert 0 < remaining <= 5


def test_request_deadline_unbounded_without_tool_timeout(monkeypatch, service, registry):
    seen = _capture_deadline(monkeypatch, service)
    stop = threading.Event()

    _handlers(service, registry, stop=stop).list_clusters()

    assert seen[0].remaining() is None
    stop.set()
    assert seen[0].cancelled


def test_health_check_tool(service, registry, fake_cp):
    h = _handlers(service, registry, api_key="s3cret-key")

    assert h.health_check()["error"]["code"] == "UNAUTHORIZED"

    out = h.health_check(_client_token="s3cret-key")
    assert out["ok"] is True
    assert out["ready"] is True
    assert {c["name"] for c in out["checks"]} == {"providers", "control_plane"}
