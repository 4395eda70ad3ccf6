# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/config/models.py

from typing import Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class OperationTimeouts(_Frozen):
    """Per-operation polling constants, fixed at startup (seconds)."""

    poll_interval: float = Field(10.0, gt=0)
    create_wait: float = Field(120.0, gt=0)        # until the cluster reports any phase
    delete_wait: float = Field(600.0, gt=0)        # until the cluster is gone
    ready_wait: float = Field(1800.0, gt=0)        # wait_for_cluster_ready ceiling
    request: float = Field(30.0, gt=0)             # single control-plane call
    nodes: float = Field(120.0, gt=0)              # kubeconfig fetch + workload node listing


class ProviderSettings(_Frozen):
    enabled: bool = True
    region: Optional[str] = None                   # default region for status reporting


class MCPSettings(_Frozen):
    name: str = "capimcp"
    transport: Literal["stdio", "http", "sse", "streamable-http"] = "stdio"
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)
    tool_timeout: Optional[float] = Field(None, gt=0)  # whole tool call; unbounded when unset


class LoggingSettings(_Frozen):
    level: str = "INFO"
    dir: Optional[str] = None                      # defaults to ~/.capimcp/logs
    to_file: bool = True
    audit_file: Optional[str] = None               # JSON lines event trail


class ServerConfig(_Frozen):
    environment: Literal["dev", "staging", "prod"] = "dev"
    kubeconfig: Optional[str] = None               # management cluster; in-cluster when unset
    context: Optional[str] = None                  # kube-context in the kubeconfig
    namespace: str = "default"
    api_key: Optional[SecretStr] = None            # tools are open when unset
    default_provider: str = "aws"
    timeouts: OperationTimeouts = OperationTimeouts()
    providers: Dict[str, ProviderSettings] = Field(
        default_factory=lambda: {"aws": ProviderSettings()}
    )
    mcp: MCPSettings = MCPSettings()
    logging: LoggingSettings = LoggingSettings()

    def api_key_value(self) -> Optional[str]:
        return self.api_key.get_secret_value() if self.api_key else None
