# tests/utils/test_deadline.py
from __future__ import annotations

import pytest

from capimcp.errors import CapiError, ErrorCode
from capimcp.utils.deadline import Deadline


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def test_never_has_no_remaining():
    d = Deadline.never()
    assert d.remaining() is None
    assert d.done is False
    assert d.request_timeout(30) == 30


def test_expiry_follows_clock():
    clock = FakeClock()
    d = Deadline(10, clock=clock)
    assert d.remaining() == 10
    clock.now += 4
    assert d.request_timeout(30) == 6
    assert d.request_timeout(2) == 2
    clock.now += 7
    assert d.expired is True
    assert d.remaining() == 0.0


def test_child_never_outlives_parent_and_shares_stop():
    clock = FakeClock()
    parent = Deadline(5, clock=clock)
    child = parent.child(60)
    assert child.remaining() == 5

    short = parent.child(1)
    assert short.remaining() == 1

    parent.cancel()
    assert child.cancelled is True
    assert short.done is True


def test_check_reports_reason():
    clock = FakeClock()
    d = Deadline(1, clock=clock)
    d.check("get cluster")

    clock.now += 2
    with pytest.raises(CapiError) as ei:
        d.check("get cluster")
    assert ei.value.code == ErrorCode.TIMEOUT
    assert ei.value.details["reason"] == "deadline_exceeded"

    live = Deadline()
    live.cancel()
    with pytest.raises(CapiError) as ei:
        live.check("get cluster")
    assert ei.value.details["reason"] == "cancelled"


def test_sleep_wakes_on_cancel():
    d = Deadline()
    d.cancel()
    assert d.sleep(10) is False
