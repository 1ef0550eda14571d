"""
test_scheduler.py - Unit tests for the AccrualScheduler

Tests:
- run_once success and failure accounting
- Background loop ticks repeatedly and stops cleanly
- Tick errors are logged and do not stop the loop
"""

import logging
import threading
import pytest
from datetime import datetime, timezone

from defi_ledger import AccrualScheduler, TickResult


def ok_tick():
    return TickResult(datetime(2025, 1, 1, tzinfo=timezone.utc), 0, 0)


class TestRunOnce:

    def test_success(self):
        scheduler = AccrualScheduler(ok_tick, interval_seconds=1)
        assert scheduler.run_once() == ok_tick()
        assert scheduler.ticks_run == 1
        assert scheduler.ticks_failed == 0

    def test_failure_is_logged(self, caplog):
        def broken():
            raise RuntimeError("boom")

        scheduler = AccrualScheduler(broken, interval_seconds=1)
        with caplog.at_level(logging.ERROR, logger="defi_ledger.scheduler"):
            assert scheduler.run_once() is None
        assert scheduler.ticks_failed == 1
        assert "Error in accrual tick" in caplog.text

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            AccrualScheduler(ok_tick, interval_seconds=0)


class TestBackgroundLoop:

    def test_ticks_until_stopped(self):
        done = threading.Event()
        calls = []

        def tick():
            calls.append(1)
            if len(calls) >= 3:
                done.set()
            return ok_tick()

        scheduler = AccrualScheduler(tick, interval_seconds=0.01)
        scheduler.start()
        assert scheduler.running
        assert done.wait(5)
        scheduler.stop(timeout=5)
        assert not scheduler.running
        assert scheduler.ticks_run >= 3

    def test_errors_do_not_stop_loop(self):
        done = threading.Event()
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            done.set()
            return ok_tick()

        with AccrualScheduler(flaky, interval_seconds=0.01) as scheduler:
            assert done.wait(5)
        assert scheduler.ticks_failed == 1
        assert scheduler.ticks_run >= 1

    def test_drives_service_tick(self, service, alice, clock):
        deposit = service.create_deposit(alice.id, "pool-eth", "1")
        clock.advance(seconds=60)
        scheduler = AccrualScheduler(service.tick, interval_seconds=1)
        result = scheduler.run_once()
        assert result.deposits_updated == 1
        assert deposit.interest_earned > 0

    def test_timed_out_stop_keeps_single_loop(self):
        entered = threading.Event()
        release = threading.Event()
        threads = set()

        def slow_tick():
            threads.add(threading.current_thread().ident)
            entered.set()
            release.wait(5)
            return ok_tick()

        scheduler = AccrualScheduler(slow_tick, interval_seconds=0.01)
        scheduler.start()
        assert entered.wait(5)

        scheduler.stop(timeout=0.01)
        assert scheduler.running
        scheduler.start()

        release.set()
        scheduler.stop(timeout=5)
        assert not scheduler.running
        assert len(threads) == 1
