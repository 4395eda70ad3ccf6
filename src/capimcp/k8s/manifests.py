# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/k8s/manifests.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from capimcp.errors import CapiError, ErrorCode
from capimcp.k8s.models import CAPI_API_VERSION, CLUSTER_NAME_LABEL, PROVIDER_LABEL

log = logging.getLogger("capimcp")

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
CLUSTER_TEMPLATE = "cluster.yaml.j2"


class ManifestRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> Dict[str, Any]:
        try:
            tmpl = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise CapiError(ErrorCode.INTERNAL, f"missing manifest template: {template_name}") from e

        text = tmpl.render(**context)
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CapiError(ErrorCode.INTERNAL, "rendered manifest is not valid YAML", cause=e) from e


def build_cluster_manifest(
    cluster_name: str,
    template_name: str,
    kubernetes_version: str,
    namespace: str,
    variables: Optional[Mapping[str, Any]] = None,
    provider: Optional[str] = None,
    renderer: Optional[ManifestRenderer] = None,
) -> Dict[str, Any]:
    """
    Declarative Cluster record bound to a ClusterClass topology. Each
    variable becomes a ``{name, value}`` entry with its JSON value intact.
    """
    renderer = renderer or ManifestRenderer()
    body = renderer.render(
        CLUSTER_TEMPLATE,
        {
            "api_version": CAPI_API_VERSION,
            "cluster_name": cluster_name,
            "namespace": namespace,
            "template_name": template_name,
            "kubernetes_version": kubernetes_version,
            "variables": dict(variables or {}),
            "provider": provider or "",
            "cluster_name_label": CLUSTER_NAME_LABEL,
            "provider_label": PROVIDER_LABEL,
        },
    )
    log.debug("rendered Cluster manifest for %s (class=%s)", cluster_name, template_name)
    return body
