# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from capimcp.config.models import ServerConfig
from capimcp.errors import CapiError
from capimcp.k8s.client import ControlPlaneClient, load_control_plane_client
from capimcp.observers.dispatcher import EventBus
from capimcp.observers.jsonfile import JsonFileObserver
from capimcp.observers.logger import LoggerObserver
from capimcp.providers.aws import AWSProvider
from capimcp.providers.registry import ProviderRegistry
from capimcp.service.cluster_service import ClusterService

log = logging.getLogger("capimcp")


@dataclass
class AppContext:
    """Everything one server process shares across tool calls."""

    config: ServerConfig
    registry: ProviderRegistry
    bus: EventBus
    service: ClusterService
    client: Optional[ControlPlaneClient] = None


def build_registry(cfg: ServerConfig) -> ProviderRegistry:
    registry = ProviderRegistry(default=cfg.default_provider)
    aws = cfg.providers.get("aws")
    if aws is None or aws.enabled:
        registry.register(AWSProvider(region=aws.region if aws else None))
    for name, settings in cfg.providers.items():
        if name != "aws" and settings.enabled:
            log.warning("No built-in provider named %s; ignoring its settings", name)
    return registry


def build_bus(cfg: ServerConfig, *, run_id: Optional[str] = None) -> EventBus:
    observers = [LoggerObserver(logging.getLogger("capimcp"))]
    if cfg.logging.audit_file:
        observers.append(JsonFileObserver(Path(cfg.logging.audit_file).expanduser()))
    return EventBus(observers=observers, env=cfg.environment, context=cfg.context, run_id=run_id)


def build_context(
    cfg: ServerConfig,
    *,
    client: Optional[ControlPlaneClient] = None,
    connect: bool = True,
    run_id: Optional[str] = None,
) -> AppContext:
    """
    Wire providers, observers, the control-plane client and the service.

    A management cluster that cannot be reached is not fatal: the service
    starts without a client and backend operations report SERVICE_UNAVAILABLE.
    """
    registry = build_registry(cfg)
    bus = build_bus(cfg, run_id=run_id)

    if client is None and connect:
        try:
            client = load_control_plane_client(
                kubeconfig=cfg.kubeconfig,
                context=cfg.context,
                namespace=cfg.namespace,
                request_timeout=cfg.timeouts.request,
            )
        except CapiError as exc:
            log.warning("Control plane unavailable, continuing without it: %s", exc.message)
            client = None

    service = ClusterService(
        client,
        registry,
        timeouts=cfg.timeouts,
        bus=bus,
        namespace=cfg.namespace,
    )
    return AppContext(config=cfg, registry=registry, bus=bus, service=service, client=client)
