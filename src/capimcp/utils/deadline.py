# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/utils/deadline.py
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from capimcp.errors import CapiError, ErrorCode


class Deadline:
    """
    Cooperative cancellation for one request.

    Combines an absolute expiry (monotonic clock) with a stop event that an
    outer layer (signal handler, transport disconnect) can set. Child
    deadlines share the stop event and never outlive their parent.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        *,
        stop: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        _expires_at: Optional[float] = None,
    ):
        self._clock = clock
        self._stop = stop if stop is not None else threading.Event()
        if _expires_at is not None:
            self._expires_at: Optional[float] = _expires_at
        elif timeout is not None:
            self._expires_at = clock() + max(0.0, float(timeout))
        else:
            self._expires_at = None

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining()!r}, cancelled={self.cancelled})"

    # -----------------------------------------------------------------
    # State
    # -----------------------------------------------------------------
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def expired(self) -> bool:
        r = self.remaining()
        return r is not None and r <= 0.0

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def cancel(self) -> None:
        self._stop.set()

    # -----------------------------------------------------------------
    # Derivation
    # -----------------------------------------------------------------
    def child(self, timeout: Optional[float]) -> "Deadline":
        """A deadline that expires after *timeout* or when this one does, whichever is first."""
        candidates = [t for t in (self._expires_at,) if t is not None]
        if timeout is not None:
            candidates.append(self._clock() + max(0.0, float(timeout)))
        expires_at = min(candidates) if candidates else None
        if expires_at is None:
            return Deadline(None, stop=self._stop, clock=self._clock)
        return Deadline(stop=self._stop, clock=self._clock, _expires_at=expires_at)

    def request_timeout(self, ceiling: Optional[float] = None) -> Optional[float]:
        """Timeout to hand to a single backend call."""
        r = self.remaining()
        if r is None:
            return ceiling
        if ceiling is None:
            return r
        return min(r, ceiling)

    # -----------------------------------------------------------------
    # Blocking helpers
    # -----------------------------------------------------------------
    def check(self, operation: str = "operation") -> None:
        if self.cancelled:
            raise CapiError(
                ErrorCode.TIMEOUT,
                f"{operation} was cancelled",
                details={"operation": operation, "reason": "cancelled"},
            )
        if self.expired:
            raise CapiError(
                ErrorCode.TIMEOUT,
                f"{operation} exceeded its deadline",
                details={"operation": operation, "reason": "deadline_exceeded"},
            )

    def sleep(self, interval: float) -> bool:
        """
        Wait up to *interval* seconds, waking early on cancellation or expiry.
        Returns True if the deadline is still live afterwards.
        """
        r = self.remaining()
        wait_for = interval if r is None else min(interval, r)
        if wait_for > 0:
            self._stop.wait(wait_for)
        return not self.done
