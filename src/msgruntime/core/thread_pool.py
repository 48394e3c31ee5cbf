"""
=============================================================================
THREAD POOL
=============================================================================

A bounded pool of worker threads pulling connection tasks from a queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──submit()──►  [ task queue (bounded) ]                │
    │                                  │      │      │                     │
    │                                  ▼      ▼      ▼                     │
    │                             worker-0 worker-1 ... worker-N           │
    │                             (min_workers at start, grows on demand   │
    │                              up to max_workers)                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BOUNDED, NOT UNBOUNDED
=============================================================================

Every connection runs on its own worker, so the number of requests handled
in parallel is capped at ``max_workers``. Connections beyond that wait in
the queue; when the queue itself is full, submit() returns False and the
server answers 503 straight from the accept thread.

Worker thread names ("msg-worker-<n>") double as the worker identifiers in
the in-flight tracker: a worker serves one request at a time, so a name is
never in flight twice.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: ``func(*args, **kwargs)``."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread: take a task, run it, repeat.

    A ``None`` task is the poison pill that ends the loop. Task exceptions
    are logged and counted; only a BaseException such as SystemExit ends
    the thread.
    """

    def __init__(
        self,
        task_queue: "queue.Queue[Optional[Task]]",
        worker_id: int,
        idle_timeout: float = 1.0,
        name_prefix: str = "msg-worker",
        on_task_done: Optional[Callable[[], None]] = None,
    ):
        super().__init__(name=f"{name_prefix}-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.on_task_done = on_task_done

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()
                if task is not None and self.on_task_done:
                    self.on_task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(f"{self.name} completed task in {time.time() - start_time:.3f}s")
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"{self.name} task failed after {time.time() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded worker pool.

    Args:
        min_workers: Workers started up front.
        max_workers: Hard cap on concurrently running tasks.
        queue_size: Max tasks waiting for a worker; 0 means unbounded.
        idle_timeout: How often idle workers re-check the shutdown flag.
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 128,
        idle_timeout: float = 1.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        self._outstanding = 0

    def start(self):
        """Start ``min_workers`` workers. Calling twice is a no-op."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers}-{self.max_workers} workers")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()

        self._started = True

    def _add_worker_locked(self) -> Worker:
        """Spawn one worker. Caller holds ``_lock``."""
        if len(self._workers) >= self.max_workers:
            raise RuntimeError("Maximum workers reached")

        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            on_task_done=self._task_finished,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (),
               kwargs: Optional[dict] = None) -> bool:
        """
        Queue ``func(*args, **kwargs)`` without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        with self._lock:
            self._outstanding += 1

        try:
            self._task_queue.put(Task(func=func, args=args, kwargs=kwargs or {}), block=False)
        except queue.Full:
            self._task_finished()
            return False

        self._maybe_scale_up()
        return True

    def _task_finished(self):
        with self._lock:
            self._outstanding -= 1

    def _maybe_scale_up(self):
        """
        Add a worker while tasks (queued or running) outnumber workers.

        Each worker runs one task at a time, so more outstanding tasks than
        workers means at least one task is waiting with nobody to take it.
        """
        with self._lock:
            # A worker killed by a BaseException no longer takes tasks
            self._workers = [w for w in self._workers if w.is_alive()]

            if self._outstanding > len(self._workers) and len(self._workers) < self.max_workers:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker_locked()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None,
                 cancel_pending: bool = False) -> list[Task]:
        """
        Stop the pool.

        Args:
            wait: Wait until every queued task has been picked up by a
                  worker before stopping. Tasks already running are not
                  interrupted either way.
            timeout: Upper bound on that wait; None waits indefinitely.
            cancel_pending: Take queued tasks off the queue instead of
                  waiting for them. They are returned, never run.

        Returns:
            The cancelled tasks (empty unless ``cancel_pending``).
        """
        if not self._started:
            return []

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        cancelled = self._cancel_pending() if cancel_pending else []

        if wait and not cancel_pending:
            deadline = time.time() + timeout if timeout is not None else None
            while not self._task_queue.empty():
                if deadline is not None and time.time() > deadline:
                    logger.warning("Thread pool shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)

        # One poison pill per worker; a full queue means workers are gone
        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break

        for worker in workers:
            worker.shutdown()

        # Busy workers finish their current task on their own (daemon threads)
        for worker in workers:
            if worker.state != WorkerState.BUSY:
                worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")
        return cancelled

    def _cancel_pending(self) -> list[Task]:
        cancelled = []
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            self._task_queue.task_done()
            if task is not None:
                self._task_finished()
                cancelled.append(task)

        if cancelled:
            logger.info(f"Cancelled {len(cancelled)} queued task(s)")
        return cancelled

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def pending(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self.pending,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
