"""Tests for the flush scheduler."""

import threading
import time

from cloudwatch_buddy.scheduler import FlushScheduler


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _make_scheduler(interval=60.0, cycle=None):
    """Create a FlushScheduler that records the reason of every cycle."""
    reasons: list[str] = []

    def run_cycle(reason):
        reasons.append(reason)
        if cycle is not None:
            cycle(reason)

    return FlushScheduler(interval, run_cycle), reasons


# ------------------------------------------------------------------
# Tests
# ------------------------------------------------------------------

class TestTimerTrigger:
    def test_timer_fires_cycle(self):
        scheduler, reasons = _make_scheduler(interval=0.2)
        scheduler.start()
        try:
            time.sleep(0.5)
            assert reasons and reasons[0] == "timer"
        finally:
            scheduler.stop()

    def test_timer_rearms_after_cycle(self):
        scheduler, reasons = _make_scheduler(interval=0.2)
        scheduler.start()
        try:
            time.sleep(0.9)
            assert reasons.count("timer") >= 2
        finally:
            scheduler.stop()

    def test_no_cycle_before_interval(self):
        scheduler, reasons = _make_scheduler(interval=60.0)
        scheduler.start()
        try:
            time.sleep(0.2)
            assert reasons == []
            assert scheduler.armed
        finally:
            scheduler.stop()

    def test_stop_cancels_timer(self):
        scheduler, reasons = _make_scheduler(interval=0.2)
        scheduler.start()
        scheduler.stop()
        time.sleep(0.4)

        assert reasons == []
        assert not scheduler.armed


class TestExplicitTrigger:
    def test_trigger_runs_synchronously(self):
        scheduler, reasons = _make_scheduler()
        scheduler.start()
        try:
            assert scheduler.trigger("size") is True
            assert reasons == ["size"]
        finally:
            scheduler.stop()

    def test_trigger_rearms_timer(self):
        scheduler, reasons = _make_scheduler()
        scheduler.start()
        try:
            scheduler.trigger("size")
            assert scheduler.armed
        finally:
            scheduler.stop()

    def test_trigger_after_stop_does_not_rearm(self):
        scheduler, reasons = _make_scheduler()
        scheduler.start()
        scheduler.stop()

        scheduler.trigger("shutdown")

        assert reasons == ["shutdown"]
        assert not scheduler.armed

    def test_failing_cycle_still_rearms(self):
        def boom(reason):
            raise RuntimeError("delivery blew up")

        scheduler, reasons = _make_scheduler(cycle=boom)
        scheduler.start()
        try:
            assert scheduler.trigger("size") is True
            assert scheduler.armed
            assert not scheduler.running
        finally:
            scheduler.stop()


class TestMutualExclusion:
    def test_concurrent_triggers_coalesce(self):
        entered = threading.Event()
        release = threading.Event()
        active = []
        overlaps = []

        def slow_cycle(reason):
            if active:
                overlaps.append(reason)
            active.append(reason)
            entered.set()
            release.wait(timeout=5)
            active.pop()

        scheduler, reasons = _make_scheduler(cycle=slow_cycle)
        worker = threading.Thread(target=scheduler.trigger, args=("timer",))
        worker.start()
        assert entered.wait(timeout=5)

        # Both arrive mid-cycle and collapse into one follow-up cycle
        assert scheduler.trigger("size") is False
        assert scheduler.trigger("size") is False

        release.set()
        worker.join(timeout=5)
        scheduler.stop()

        assert overlaps == []
        assert reasons == ["timer", "size"]

    def test_wait_idle(self):
        release = threading.Event()
        scheduler, reasons = _make_scheduler(cycle=lambda reason: release.wait(timeout=5))
        worker = threading.Thread(target=scheduler.trigger, args=("manual",))
        worker.start()
        time.sleep(0.1)

        assert scheduler.wait_idle(timeout=0.1) is False
        release.set()
        assert scheduler.wait_idle(timeout=5) is True

        worker.join(timeout=5)
        scheduler.stop()
