# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from capimcp.errors import CapiError, ErrorCode
from .models import ServerConfig

log = logging.getLogger("capimcp")

CONFIG_ENV = "CAPIMCP_CONFIG"
SECRETS_ENV = "CAPIMCP_SECRETS_FILE"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Optional[Path], environ: Mapping[str, str] = os.environ) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. CAPIMCP_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the server config
    """
    env = environ.get(SECRETS_ENV)
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("%s=%s does not exist, skipping", SECRETS_ENV, env)
        return None

    if config_path is not None:
        p = config_path.parent / "secrets.yaml"
        if p.is_file():
            return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as exc:
        # the parser message quotes the offending line; keep it out of the error
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1})" if mark is not None else ""
        raise CapiError(
            ErrorCode.INVALID_INPUT,
            f"{path.name} is not valid YAML{where}",
            details={"resource": str(path)},
            cause=exc,
        ) from exc
    if not isinstance(data, dict):
        raise CapiError(ErrorCode.INVALID_INPUT, f"{path.name} must contain a mapping at the top level")
    return data


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Environment variables win over both YAML files."""
    out: Dict[str, Any] = {}

    def put(path: str, env_key: str) -> None:
        value = environ.get(env_key)
        if value in (None, ""):
            return
        node = out
        keys = path.split(".")
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value

    put("kubeconfig", "KUBECONFIG")
    put("namespace", "KUBE_NAMESPACE")
    put("api_key", "API_KEY")
    put("logging.level", "LOG_LEVEL")
    put("mcp.transport", "MCP_TRANSPORT")
    put("mcp.host", "MCP_HOST")
    put("mcp.port", "MCP_PORT")
    put("mcp.tool_timeout", "MCP_TOOL_TIMEOUT")

    region = environ.get("CAPIMCP_DEFAULT_REGION")
    if region:
        out["providers"] = {"aws": {"region": region}}
    return out


def load_config(path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """
    Load and validate the capimcp server config.

    Sources, later ones winning:
      1. YAML file (``path`` or ``$CAPIMCP_CONFIG``), ``${ENV_VAR}`` expanded
      2. secrets.yaml, deep-merged (see ``_find_secrets_file``)
      3. environment overrides: KUBECONFIG, KUBE_NAMESPACE, API_KEY,
         CAPIMCP_DEFAULT_REGION, LOG_LEVEL, MCP_TRANSPORT, MCP_HOST, MCP_PORT,
         MCP_TOOL_TIMEOUT

    With no file at all the defaults plus environment are used. The result
    is frozen; it is never reloaded.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get(CONFIG_ENV):
        path = environ[CONFIG_ENV]

    config_path = Path(path) if path is not None else None
    data: Dict[str, Any] = {}
    if config_path is not None:
        if not config_path.is_file():
            raise CapiError(ErrorCode.NOT_FOUND, f"config file not found: {config_path}")
        data = _load_yaml(config_path)

    secrets_path = _find_secrets_file(config_path, environ)
    if secrets_path:
        log.debug("Merging %s into the config", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    _deep_merge(data, _env_overrides(environ))

    try:
        return ServerConfig.model_validate(data)
    except ValidationError as exc:
        fields = [".".join(str(p) for p in e["loc"]) for e in exc.errors()]
        raise CapiError(
            ErrorCode.INVALID_INPUT,
            f"invalid configuration: {', '.join(fields)}",
            details={"fields": fields},
            cause=exc,
        ) from exc
