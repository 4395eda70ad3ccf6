# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Type
from .events import BaseEvent, new_ctx
from .interface import Observer

log = logging.getLogger("capimcp")


class EventBus:
    def __init__(
        self,
        observers: Optional[List[Observer]] = None,
        *,
        env: str = "dev",
        context: Optional[str] = None,
        run_id: Optional[str] = None,
    ):
        self._observers: List[Observer] = []
        for ob in observers or []:
            self.subscribe(ob)
        self.env = env
        self.context = context
        self.run_id = run_id or new_ctx(env, context)["run_id"]

    def subscribe(self, observer: Observer) -> None:
        if not isinstance(observer, Observer):
            raise TypeError(f"{type(observer).__name__} has no notify(event) method")
        self._observers.append(observer)

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception:
                # observers must not break lifecycle operations
                log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)

    def publish(self, event_type: Type[BaseEvent], **fields: Any) -> None:
        """Stamp *event_type* with this bus's run context and emit it."""
        ctx: Dict[str, Any] = new_ctx(self.env, self.context, run_id=self.run_id)
        self.emit(event_type(**ctx, **fields))
