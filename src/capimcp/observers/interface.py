# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/observers/interface.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Sink for lifecycle events published on an ``EventBus``.

    ``notify`` runs synchronously on the thread serving the tool call, so it
    should be quick. Exceptions it raises are logged by the bus and dropped;
    they never fail the cluster operation that produced the event.
    """

    def notify(self, event: BaseEvent) -> None: ...
