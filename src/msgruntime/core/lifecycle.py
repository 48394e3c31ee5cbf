"""
=============================================================================
SERVER LIFECYCLE & IN-FLIGHT TRACKING
=============================================================================

Two small pieces of shared state, both owned by one MessageServer instance
(there are no module-level globals, so several servers can coexist in one
process, e.g. in tests):

    Lifecycle        CREATED → RUNNING → DRAINING → STOPPED
    InFlightTracker  the set of workers currently handling a /messages request

=============================================================================
THE DRAIN HANDSHAKE
=============================================================================

    worker thread                        drain coordinator
    ─────────────                        ─────────────────
    with tracker.track():  ── add ──►    tracker.wait_idle()
        read body                            │  (blocks on a Condition,
        call handler                         │   no polling)
        write response                       │
    (exit, even on error) ── remove ──►      │
                           last one out ──►  notify_all()
                                             ▼
                                         close listener

A request is in flight from the moment its body starts being read until
its response has been written (or the write has failed). Membership is
released in a ``finally`` block, so no exit path can leak an entry.

There is no timeout: a handler that never returns keeps the
server draining forever. Operators who need a bound must impose it from
outside (e.g. a supervisor's kill timeout).

=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional


logger = logging.getLogger(__name__)


class ServerState(Enum):
    CREATED = "created"      # Constructed, listener not bound yet
    RUNNING = "running"      # Accepting connections
    DRAINING = "draining"    # Shutdown requested, waiting for in-flight work
    STOPPED = "stopped"      # Listener closed


class InFlightTracker:
    """
    Concurrent set of worker identifiers with a blocking "wait until empty".

    Usage:

        tracker = InFlightTracker()

        with tracker.track():        # in the worker
            ...

        tracker.wait_idle()          # in the shutdown path
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._workers: set[str] = set()

    @contextmanager
    def track(self, worker_id: Optional[str] = None) -> Iterator[str]:
        """
        Register ``worker_id`` (default: current thread name) for the
        duration of the block.

        Raises:
            RuntimeError: The identifier is already in flight.
        """
        worker_id = worker_id or threading.current_thread().name
        self._add(worker_id)
        try:
            yield worker_id
        finally:
            self._remove(worker_id)

    def _add(self, worker_id: str) -> None:
        with self._cond:
            if worker_id in self._workers:
                raise RuntimeError(f"Worker {worker_id} is already in flight")
            self._workers.add(worker_id)

    def _remove(self, worker_id: str) -> None:
        with self._cond:
            self._workers.discard(worker_id)
            if not self._workers:
                self._cond.notify_all()

    @property
    def count(self) -> int:
        with self._cond:
            return len(self._workers)

    @property
    def is_idle(self) -> bool:
        return self.count == 0

    def snapshot(self) -> frozenset:
        """Identifiers currently in flight."""
        with self._cond:
            return frozenset(self._workers)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until nothing is in flight.

        Args:
            timeout: Seconds to wait; None (the default, used by shutdown)
                     waits indefinitely.

        Returns:
            True once idle, False if ``timeout`` expired first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._workers, timeout=timeout)


class Lifecycle:
    """
    Thread-safe ServerState holder.

    Transitions only move forward. ``begin_draining()`` succeeds exactly
    once; every later call returns False so repeated signals are harmless.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = ServerState.CREATED
        self._stopped = threading.Event()

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    @property
    def is_draining(self) -> bool:
        return self.state is ServerState.DRAINING

    def mark_running(self) -> None:
        with self._lock:
            if self._state is not ServerState.CREATED:
                raise RuntimeError(f"Cannot start server in state {self._state.value}")
            self._state = ServerState.RUNNING

    def begin_draining(self) -> bool:
        """
        RUNNING → DRAINING.

        Returns:
            True if this call performed the transition.
        """
        with self._lock:
            if self._state is not ServerState.RUNNING:
                return False
            self._state = ServerState.DRAINING
        logger.info("Server state: draining")
        return True

    def mark_stopped(self) -> None:
        with self._lock:
            self._state = ServerState.STOPPED
        self._stopped.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)
