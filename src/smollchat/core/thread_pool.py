"""
=============================================================================
CONNECTION WORKER POOL
=============================================================================

A fixed-ceiling group of worker threads pulling tasks from a bounded
queue. Every accepted connection becomes one task.

=============================================================================
WHY A POOL FOR A CHAT SERVER?
=============================================================================

A long-poll request holds its thread for up to long_poll_timeout seconds.
With one OS thread per connection, a few hundred idle browser tabs would
mean a few hundred sleeping threads, with no upper bound at all.

    pool = ThreadPool(min_workers=4, max_workers=128, queue_size=256)
    pool.start()

    for conn in accepted_connections():
        if not pool.submit(process, args=(conn,), block=False):
            send_503_and_close(conn)     ← backpressure instead of a new thread

=============================================================================
THREAD POOL ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Connection worker pool                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(task) ──► ┌───────────────────────┐                        │
    │                    │ Task Queue (bounded)  │                        │
    │                    │ [T1] [T2] [T3] ...    │                        │
    │                    └──────────┬────────────┘                        │
    │                               │                                      │
    │              ┌────────────────┼────────────────┐                    │
    │              ▼                ▼                ▼                    │
    │         ┌────────┐       ┌────────┐       ┌────────┐               │
    │         │Worker 0│       │Worker 1│  ...  │Worker N│               │
    │         └────────┘       └────────┘       └────────┘               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SCALING AND SHUTDOWN
=============================================================================

min_workers threads start immediately. While queued plus running tasks
outnumber the workers, submit() adds workers, up to max_workers.

Shutdown puts one None (the "poison pill") per worker on the queue; a
worker that takes None exits its loop.

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
    """Worker thread states, for monitoring."""

    IDLE = "idle"        # Waiting for a task
    BUSY = "busy"        # Executing a task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call: "call func(*args, **kwargs) later".

    Attributes:
        func: The function to execute.
        args: Positional arguments.
        kwargs: Keyword arguments.
        submitted_at: When the task was queued (for queue-wait logging).
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    One pool thread. Takes a connection task, runs it, repeats.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Worker loop                                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for a task (bounded by idle_timeout)                       │
    │   2. None? → exit                                                    │
    │   3. Run task.func; log any exception, never die from one            │
    │   4. task_done(), back to 1                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            task_queue: Queue to pull tasks from.
            worker_id: Identifier used in the thread name and logs.
            idle_timeout: Seconds to wait for a task before re-checking
                          the shutdown flag.
        """
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} waiting for connections")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue  # Re-check the shutdown flag

            try:
                if task is None:
                    break  # Poison pill
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} exited after {self.tasks_completed} task(s)")

    def _execute_task(self, task: Task):
        """Run one task. A failing task is logged and counted, never fatal."""
        self.state = WorkerState.BUSY
        started = time.monotonic()
        waited = time.time() - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"{self.name}: task raised after {time.monotonic() - started:.3f}s: {e}"
            )
        else:
            self.tasks_completed += 1
            logger.debug(
                f"{self.name}: task done in {time.monotonic() - started:.3f}s "
                f"after {waited:.3f}s in the queue"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool that runs one task per accepted connection.

    Usage:

        pool = ThreadPool(min_workers=4, max_workers=128)
        pool.start()

        accepted = pool.submit(handle_connection, args=(conn,), block=False)

        print(pool.stats)  # {"workers": {"busy": 3, ...}, ...}

        pool.shutdown(wait=True, timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            min_workers: Threads created at start() and always running.
            max_workers: Ceiling for threads added under load.
            queue_size: Most tasks allowed to wait for a worker.
            idle_timeout: Seconds idle workers wait before re-checking
                          for shutdown.
        """
        if min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if max_workers < min_workers:
            raise ValueError("max_workers must be >= min_workers")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.RLock()  # Protects _workers; reentrant for scale-up

        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Start the pool with min_workers threads. Idempotent."""
        if self._started:
            return

        for _ in range(self.min_workers):
            self._add_worker()

        logger.info(
            f"Worker pool up: {self.min_workers} of at most {self.max_workers} "
            f"threads, queue holds {self.queue_size}"
        )

        self._started = True
        self._shutdown = False

    def _add_worker(self) -> Worker:
        """Create and start one more worker."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError(f"Already at max_workers ({self.max_workers})")

            worker = Worker(
                task_queue=self._task_queue,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()

            return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue a task for the next free worker.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    submit() outcomes                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   queue has space ──► enqueue ──► maybe add worker ──► True     │
        │   queue full, block=True  ──► wait (queue_timeout)              │
        │   queue full, block=False ──► False (caller answers 503)        │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """
        Add workers until every unfinished task has one, up to max_workers.

        unfinished_tasks counts both queued and running tasks, and a worker
        runs one task at a time. While it exceeds the pool size, some task
        has no worker, even if a worker has dequeued a task and not yet
        marked itself BUSY.
        """
        with self._lock:
            size = len(self._workers)
            while (len(self._workers) < self.max_workers
                   and self._task_queue.unfinished_tasks > len(self._workers)):
                self._add_worker()

            if len(self._workers) > size:
                logger.debug(
                    f"{self._task_queue.unfinished_tasks} task(s) in flight, "
                    f"grew pool from {size} to {len(self._workers)}"
                )

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued and running tasks finish first.
            timeout: Longest time to wait for them; None waits indefinitely.
                     Long-polls are released before this is called, so
                     the wait is normally short.
        """
        if not self._started:
            return

        self._shutdown = True
        logger.info(f"Stopping worker pool ({self._task_queue.unfinished_tasks} task(s) in flight)")

        if wait and timeout is None:
            self._task_queue.join()
        elif wait:
            deadline = time.monotonic() + timeout
            while self._task_queue.unfinished_tasks:
                if time.monotonic() >= deadline:
                    logger.warning(
                        f"Gave up waiting after {timeout}s, "
                        f"{self._task_queue.unfinished_tasks} task(s) unfinished"
                    )
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass  # The worker's own flag stops it within idle_timeout

        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info("Worker pool stopped")

    # =========================================================================
    # MONITORING
    # =========================================================================

    def _count(self, state: WorkerState) -> int:
        return sum(1 for w in self._workers if w.state is state)

    @property
    def active_workers(self) -> int:
        """Workers whose thread hasn't exited."""
        return len(self._workers) - self._count(WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        """Workers inside a task (a waiting long-poll counts)."""
        return self._count(WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return self._count(WorkerState.IDLE)

    @property
    def queued_tasks(self) -> int:
        """Accepted connections still waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Snapshot of worker states and task counters."""
        workers = list(self._workers)
        return {
            "workers": {
                "total": len(workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self.queued_tasks,
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
