# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/service/polling.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

from capimcp.observers.dispatcher import EventBus
from capimcp.observers.events import PollTick, PollTimedOut
from capimcp.utils.deadline import Deadline

log = logging.getLogger("capimcp")

T = TypeVar("T")

# check(deadline) -> (done, value, observed-state label)
Check = Callable[[Deadline], Tuple[bool, Optional[T], str]]


@dataclass
class PollResult(Generic[T]):
    done: bool
    value: Optional[T]
    attempts: int
    timed_out: bool = False
    cancelled: bool = False


def poll_until(
    check: Check,
    *,
    interval: float,
    timeout: float,
    deadline: Optional[Deadline] = None,
    bus: Optional[EventBus] = None,
    operation: str = "",
    cluster_name: str = "",
) -> PollResult:
    """
    Fixed-interval wait loop.

    Each iteration sleeps one interval (waking early on cancellation), then
    calls ``check`` with the loop's deadline. The loop ends when ``check``
    reports done, when ``timeout`` elapses or when the caller's deadline is
    cancelled or exceeded. Exceptions raised by ``check`` propagate; checks
    that want to ride out transient errors catch them themselves.

    On timeout the last non-None value seen is returned so callers can
    report best-known state.
    """
    parent = deadline or Deadline.never()
    wait = parent.child(timeout)
    attempt = 0
    last: Optional[Any] = None

    while wait.sleep(interval):
        attempt += 1
        done, value, observed = check(wait)
        if value is not None:
            last = value
        log.debug("%s %s: poll #%d observed %s", operation, cluster_name, attempt, observed)
        if bus is not None:
            bus.publish(
                PollTick,
                operation=operation,
                cluster_name=cluster_name,
                attempt=attempt,
                observed=observed,
            )
        if done:
            return PollResult(done=True, value=value, attempts=attempt)

    cancelled = parent.cancelled
    log.warning(
        "%s %s: stopped waiting after %d polls (%s)",
        operation,
        cluster_name,
        attempt,
        "cancelled" if cancelled else f"timeout {timeout}s",
    )
    if bus is not None:
        bus.publish(PollTimedOut, operation=operation, cluster_name=cluster_name, timeout_s=timeout)
    return PollResult(done=False, value=last, attempts=attempt, timed_out=True, cancelled=cancelled)
