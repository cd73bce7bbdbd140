"""Tests for clock sources and deadlines."""

from __future__ import annotations

import concurrent.futures

import pytest

from tryexec.clock import Deadline, SystemClock, VirtualClock


def test_virtual_clock_only_moves_when_told(clock):
    assert clock.now() == 0.0
    clock.sleep(1.5)
    clock.advance(0.5)
    assert clock.now() == 2.0


def test_virtual_clock_cannot_go_backwards(clock):
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_deadline_expires_on_budget(clock):
    deadline = Deadline(clock, 1.0)

    clock.advance(0.4)
    assert not deadline.expired
    assert deadline.remaining() == pytest.approx(0.6)
    clock.advance(0.6)
    assert deadline.expired
    assert deadline.remaining() == 0.0
    assert deadline.elapsed() == pytest.approx(1.0)


def test_poll_returns_when_condition_holds(clock):
    deadline = Deadline(clock, 10.0)

    assert deadline.poll(lambda: clock.now() >= 2.0, 0.5)
    assert clock.now() == pytest.approx(2.0)


def test_poll_gives_up_at_the_deadline(clock):
    deadline = Deadline(clock, 1.0)

    assert not deadline.poll(lambda: False, 0.3)
    assert clock.now() == pytest.approx(1.0)


def test_wait_for_completed_future(clock):
    future = concurrent.futures.Future()
    future.set_result(42)

    assert Deadline(clock, 1.0).wait_for(future, 0.1)
    assert clock.now() == 0.0


def test_wait_for_pending_future_times_out(clock):
    future = concurrent.futures.Future()

    assert not Deadline(clock, 1.0).wait_for(future, 0.25)
    assert clock.now() == pytest.approx(1.0)


def test_system_clock_waits_for_future():
    clock = SystemClock()
    future = concurrent.futures.Future()
    future.set_result(None)

    assert clock.wait(future, 1.0)
    assert Deadline(clock, 5.0).remaining() > 0
