"""Bounded asynchronous task dispatcher.

Webhook deliveries are acknowledged as soon as their work is handed to
the dispatcher. Work is buffered in a bounded queue and executed by a
pool of asyncio worker tasks that grows from ``min_workers`` up to
``max_workers`` while tasks accumulate. When both the queue and the pool
are saturated, the submitting coroutine runs the task itself
(caller-runs), so no delivery is dropped; the request that submitted it
just takes longer.
"""

import asyncio
import itertools
import time
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import DispatcherStats, DispatchTask, TaskState

logger = structlog.get_logger(__name__)


class DispatcherConfig(BaseModel):
    """Configuration for the dispatcher."""

    model_config = ConfigDict(frozen=True)

    min_workers: int = Field(default=5, ge=1, description="Workers kept alive")
    max_workers: int = Field(default=10, ge=1, description="Upper bound on workers")
    queue_capacity: int = Field(default=100, ge=1, description="Queued task limit")
    keep_alive_seconds: float = Field(
        default=60.0, gt=0, description="Idle time before a surplus worker exits"
    )
    name: str = Field(default="webhook", description="Worker name prefix")

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "DispatcherConfig":
        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")
        return self


class Dispatcher:
    """Runs dispatch tasks on a bounded pool of asyncio workers.

    Task failures are logged and counted, never propagated: one pull
    request failing must not affect others or stop the dispatcher.
    """

    def __init__(self, config: DispatcherConfig | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            config: Pool and queue limits. Defaults to 5..10 workers and
                a queue of 100.
        """
        self.config = config or DispatcherConfig()
        self._queue: asyncio.Queue[DispatchTask] = asyncio.Queue(
            maxsize=self.config.queue_capacity
        )
        self._workers: set[asyncio.Task[None]] = set()
        self._worker_ids = itertools.count(1)
        self._idle = 0
        self._running = False

        # Tasks accepted for pool execution that have not finished yet.
        self._outstanding = 0
        self._drained = asyncio.Event()
        self._drained.set()

        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._caller_runs = 0

        self._logger = logger.bind(component="dispatcher", name=self.config.name)

    @property
    def running(self) -> bool:
        """Whether the dispatcher accepts submissions."""
        return self._running

    async def start(self) -> None:
        """Start the minimum number of workers."""
        if self._running:
            return
        self._running = True
        for _ in range(self.config.min_workers):
            self._spawn_worker()
        self._logger.info(
            "dispatcher_started",
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_capacity=self.config.queue_capacity,
        )

    async def submit(self, task: DispatchTask) -> None:
        """Submit a task for background execution.

        Returns as soon as the task is queued or handed to a new worker.
        Under saturation the task runs to completion before this returns.

        Args:
            task: Task to execute. Must not have been submitted before.

        Raises:
            RuntimeError: If the dispatcher is not running.
            ValueError: If the task was already submitted.
        """
        if not self._running:
            raise RuntimeError("Dispatcher is not running")
        if task.state is not TaskState.PENDING:
            raise ValueError(f"Task {task.id} was already submitted (state={task.state.value})")

        task.state = TaskState.QUEUED
        self._submitted += 1

        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull:
            if len(self._workers) < self.config.max_workers:
                self._track()
                self._spawn_worker(first_task=task)
                return

            self._caller_runs += 1
            self._logger.warning(
                "dispatcher_saturated_caller_runs",
                task_id=task.id,
                task_name=task.name,
                workers=len(self._workers),
                queued=self._queue.qsize(),
            )
            await self._run(task)
            return

        self._track()
        if self._queue.qsize() > self._idle and len(self._workers) < self.config.max_workers:
            self._spawn_worker()

    async def shutdown(self, timeout: float | None = 30.0) -> None:
        """Stop accepting tasks, drain outstanding work, and stop workers.

        Args:
            timeout: Seconds to wait for outstanding tasks; ``None`` waits
                indefinitely. Work still pending afterwards is cancelled.
        """
        if not self._running and not self._workers:
            return
        self._running = False

        try:
            await asyncio.wait_for(self._drained.wait(), timeout)
        except TimeoutError:
            self._logger.warning(
                "dispatcher_shutdown_timeout",
                outstanding=self._outstanding,
                queued=self._queue.qsize(),
            )

        workers = list(self._workers)
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()

        while True:
            try:
                task = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            task.state = TaskState.FAILED
            task.error = "cancelled"
            task.finished_at = datetime.now(UTC)
            self._failed += 1
            self._untrack()
            self._logger.warning(
                "dispatch_task_cancelled",
                task_id=task.id,
                task_name=task.name,
            )

        self._logger.info("dispatcher_stopped", **self.stats().model_dump(exclude={"running"}))

    def stats(self) -> DispatcherStats:
        """Return a snapshot of pool and task counters."""
        return DispatcherStats(
            running=self._running,
            workers=len(self._workers),
            idle_workers=self._idle,
            queued=self._queue.qsize(),
            submitted=self._submitted,
            completed=self._completed,
            failed=self._failed,
            caller_runs=self._caller_runs,
        )

    def _track(self) -> None:
        self._outstanding += 1
        self._drained.clear()

    def _untrack(self) -> None:
        self._outstanding -= 1
        if self._outstanding == 0:
            self._drained.set()

    def _spawn_worker(self, first_task: DispatchTask | None = None) -> None:
        worker_name = f"{self.config.name}-{next(self._worker_ids)}"
        worker = asyncio.create_task(self._worker(worker_name, first_task), name=worker_name)
        self._workers.add(worker)
        worker.add_done_callback(self._workers.discard)
        self._logger.debug("dispatcher_worker_started", worker=worker_name, workers=len(self._workers))

    async def _worker(self, worker_name: str, first_task: DispatchTask | None) -> None:
        if first_task is not None:
            try:
                await self._run(first_task)
            finally:
                self._untrack()

        while True:
            surplus = len(self._workers) > self.config.min_workers
            self._idle += 1
            try:
                if surplus:
                    task = await asyncio.wait_for(
                        self._queue.get(), self.config.keep_alive_seconds
                    )
                else:
                    task = await self._queue.get()
            except TimeoutError:
                if len(self._workers) > self.config.min_workers:
                    # Leave the pool before yielding so siblings see the new size.
                    current = asyncio.current_task()
                    if current is not None:
                        self._workers.discard(current)
                    self._logger.debug("dispatcher_worker_retired", worker=worker_name)
                    return
                continue
            finally:
                self._idle -= 1

            try:
                await self._run(task)
            finally:
                self._untrack()

    async def _run(self, task: DispatchTask) -> None:
        log = self._logger.bind(task_id=task.id, task_name=task.name)
        task.state = TaskState.RUNNING
        task.started_at = datetime.now(UTC)
        start = time.perf_counter()
        log.debug("dispatch_task_started")

        try:
            await task.handler(task.payload)
        except asyncio.CancelledError:
            task.state = TaskState.FAILED
            task.error = "cancelled"
            self._failed += 1
            log.warning("dispatch_task_cancelled")
            raise
        except Exception as e:
            task.state = TaskState.FAILED
            task.error = str(e)
            self._failed += 1
            log.exception("dispatch_task_failed", error=str(e))
        else:
            task.state = TaskState.COMPLETED
            self._completed += 1
            log.info(
                "dispatch_task_completed",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
        finally:
            task.finished_at = datetime.now(UTC)
