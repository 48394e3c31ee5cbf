"""
Unit tests for the in-flight tracker and server lifecycle.
"""

import threading
import time

import pytest

from msgruntime.core.lifecycle import InFlightTracker, Lifecycle, ServerState


class TestInFlightTracker:

    def test_track_adds_and_removes(self):
        tracker = InFlightTracker()

        with tracker.track("w1") as worker_id:
            assert worker_id == "w1"
            assert tracker.count == 1
            assert tracker.snapshot() == frozenset({"w1"})

        assert tracker.is_idle

    def test_default_id_is_thread_name(self):
        tracker = InFlightTracker()

        with tracker.track() as worker_id:
            assert worker_id == threading.current_thread().name

    def test_removed_on_exception(self):
        tracker = InFlightTracker()

        with pytest.raises(ValueError):
            with tracker.track("w1"):
                raise ValueError("boom")

        assert tracker.count == 0

    def test_duplicate_id_rejected(self):
        tracker = InFlightTracker()

        with tracker.track("w1"):
            with pytest.raises(RuntimeError):
                with tracker.track("w1"):
                    pass
            # The failed registration must not release the original entry
            assert tracker.snapshot() == frozenset({"w1"})

    def test_wait_idle_returns_immediately_when_empty(self):
        assert InFlightTracker().wait_idle(timeout=0.01) is True

    def test_wait_idle_times_out_while_busy(self):
        tracker = InFlightTracker()

        with tracker.track("w1"):
            assert tracker.wait_idle(timeout=0.05) is False

    def test_wait_idle_wakes_when_last_worker_leaves(self):
        tracker = InFlightTracker()
        release = threading.Event()
        entered = threading.Barrier(3)

        def work(name):
            with tracker.track(name):
                entered.wait()
                release.wait()

        threads = [threading.Thread(target=work, args=(f"w{i}",)) for i in range(2)]
        for t in threads:
            t.start()
        entered.wait()

        assert tracker.count == 2

        done = threading.Event()

        def waiter():
            tracker.wait_idle()
            done.set()

        threading.Thread(target=waiter, daemon=True).start()

        time.sleep(0.1)
        assert not done.is_set()

        release.set()
        for t in threads:
            t.join()

        assert done.wait(timeout=2.0)
        assert tracker.is_idle


class TestLifecycle:

    def test_initial_state(self):
        assert Lifecycle().state is ServerState.CREATED

    def test_transitions(self):
        lifecycle = Lifecycle()

        lifecycle.mark_running()
        assert lifecycle.state is ServerState.RUNNING

        assert lifecycle.begin_draining() is True
        assert lifecycle.is_draining

        lifecycle.mark_stopped()
        assert lifecycle.state is ServerState.STOPPED
        assert lifecycle.wait_stopped(timeout=0) is True

    def test_draining_happens_once(self):
        lifecycle = Lifecycle()
        lifecycle.mark_running()

        assert lifecycle.begin_draining() is True
        assert lifecycle.begin_draining() is False
        assert lifecycle.state is ServerState.DRAINING

    def test_cannot_drain_before_running(self):
        lifecycle = Lifecycle()

        assert lifecycle.begin_draining() is False
        assert lifecycle.state is ServerState.CREATED

    def test_cannot_start_twice(self):
        lifecycle = Lifecycle()
        lifecycle.mark_running()

        with pytest.raises(RuntimeError):
            lifecycle.mark_running()

    def test_wait_stopped_times_out(self):
        assert Lifecycle().wait_stopped(timeout=0.01) is False
