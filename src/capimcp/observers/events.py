# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one server process or CLI run
    env: str          # dev/staging/prod
    context: Optional[str]  # kube-context of the management cluster

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Operation lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class OperationStarted(BaseEvent):
    operation: str
    cluster_name: str

@dataclass(frozen=True)
class OperationSucceeded(BaseEvent):
    operation: str
    cluster_name: str
    duration_ms: int
    status: str = "ok"

@dataclass(frozen=True)
class OperationFailed(BaseEvent):
    operation: str
    cluster_name: str
    duration_ms: int
    error_code: str
    error: str


# ---------------------------------------------------------------------
# Poll-wait loop
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PollTick(BaseEvent):
    operation: str
    cluster_name: str
    attempt: int
    observed: str

@dataclass(frozen=True)
class PollTimedOut(BaseEvent):
    operation: str
    cluster_name: str
    timeout_s: float


# ---------------------------------------------------------------------
# Best-effort read enrichment
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class EnrichmentSkipped(BaseEvent):
    operation: str
    cluster_name: str
    field: str
    error: str
