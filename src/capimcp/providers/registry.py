# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/providers/registry.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from capimcp.errors import CapiError, ErrorCode
from capimcp.providers.base import Provider

log = logging.getLogger("capimcp")

DEFAULT_PROVIDER = "aws"

# template-name substrings -> provider name, checked in order
_TEMPLATE_HINTS = (
    ("aws", "aws"),
    ("azure", "azure"),
    ("gcp", "gcp"),
    ("google", "gcp"),
)


def resolve_provider_name(
    variables: Optional[Mapping[str, Any]],
    template_name: str,
    default: str = DEFAULT_PROVIDER,
) -> str:
    """
    Pick the provider for a creation request:
      1. explicit string ``provider`` variable
      2. substring of the template name
      3. the default
    """
    explicit = (variables or {}).get("provider")
    if isinstance(explicit, str) and explicit:
        return explicit

    lowered = (template_name or "").lower()
    for hint, name in _TEMPLATE_HINTS:
        if hint in lowered:
            return name
    return default


class ProviderRegistry:
    """
    Name -> Provider table populated once at startup.

    Registering a name twice replaces the earlier provider.
    """

    def __init__(self, default: str = DEFAULT_PROVIDER):
        self._providers: Dict[str, Provider] = {}
        self.default = default

    def register(self, provider: Provider) -> None:
        if provider.name in self._providers:
            log.debug("Replacing registered provider %s", provider.name)
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[Provider]:
        return self._providers.get(name)

    def require(self, name: str) -> Provider:
        provider = self.get(name)
        if provider is None:
            raise CapiError(
                ErrorCode.NOT_FOUND,
                f"provider '{name}' is not registered",
                details={"provider": name, "resource": "provider"},
            )
        return provider

    def names(self) -> List[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def for_cluster_labels(self, labels: Mapping[str, str], label_key: str) -> Optional[Provider]:
        return self.get(labels.get(label_key) or self.default)
