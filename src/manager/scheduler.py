"""FIFO task scheduler with a concurrency cap, pause, resume and cancel."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, Optional, Union

from common.config import settings
from common.observer import CompositeObserver, PipelineObserver
from common.schemas import QueueOutcome, QueueState, SchedulerStatus, Task

logger = logging.getLogger(__name__)

ProcessFn = Callable[[Task], Awaitable[Any]]


class TaskScheduler:
    """
    Admits queued tasks into at most ``concurrency_limit`` concurrent jobs.

    All state lives on the instance and is only touched from the event loop,
    so counters need no locking. Pause only withholds admissions and is
    re-checked on a poll timer; cancel clears the queue and lets active jobs
    finish before reporting a cancelled completion.
    """

    def __init__(
        self,
        processor: Union[ProcessFn, Any],
        observer: Optional[PipelineObserver] = None,
        default_concurrency: Optional[int] = None,
        pause_poll_interval: Optional[float] = None,
        safety_poll_interval: Optional[float] = None,
    ):
        # Accept a FileJobStateMachine (its ``run``) or a plain coroutine function
        self._process: ProcessFn = getattr(processor, "run", processor)
        observer = observer or PipelineObserver()
        self.observer = (
            observer
            if isinstance(observer, CompositeObserver)
            else CompositeObserver([observer])
        )
        self.default_concurrency = default_concurrency or settings.max_concurrent_tasks
        self.pause_poll_interval = (
            pause_poll_interval
            if pause_poll_interval is not None
            else settings.scheduler_pause_poll_interval
        )
        self.safety_poll_interval = (
            safety_poll_interval
            if safety_poll_interval is not None
            else settings.scheduler_safety_poll_interval
        )

        self._pending: Deque[Task] = deque()
        self._active: Dict[int, asyncio.Task] = {}
        self._next_job_id = 0
        self._paused = False
        self._cancelled = False
        self._running = False
        self._concurrency_limit = self.default_concurrency
        self._poll_handle: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._idle = asyncio.Event()
        self._idle.set()

    async def __aenter__(self) -> "TaskScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def start(self) -> None:
        """Bind the scheduler to the running event loop."""
        self._loop = asyncio.get_running_loop()
        logger.info(
            f"Task scheduler started (default concurrency: {self.default_concurrency})"
        )

    async def stop(self) -> None:
        """Drop pending tasks, stop polling and wait for in-flight jobs."""
        self._running = False
        self._pending.clear()
        self._cancel_poll()

        if self._active:
            logger.info(f"Waiting for {len(self._active)} active jobs to finish...")
            await asyncio.gather(*list(self._active.values()), return_exceptions=True)

        self._paused = False
        self._cancelled = False
        self._idle.set()
        logger.info("Task scheduler stopped")

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def concurrency_limit(self) -> int:
        return self._concurrency_limit

    def submit(self, tasks: Iterable[Task]) -> None:
        """
        Append tasks to the queue and start draining.

        The concurrency limit of a run comes from the first task's
        ``max_concurrent_tasks`` when the run starts.
        """
        tasks = list(tasks)
        if not tasks:
            return
        if self._loop is None:
            self.start()

        self._pending.extend(tasks)
        logger.info(f"Queued {len(tasks)} tasks ({len(self._pending)} pending)")

        if self._cancelled:
            # Picked up by a fresh run once the cancelled run has wound down
            return
        if not self._running:
            self._start_run()
        else:
            self._drain()

    def pause(self) -> None:
        """Stop admitting new jobs; active jobs keep running."""
        self._paused = True
        logger.info("⏸️ Task queue paused")

    def resume(self) -> None:
        """Resume admissions."""
        self._paused = False
        logger.info("▶️ Task queue resumed")
        if self._running:
            self._drain()

    def cancel(self) -> None:
        """Clear the queue; the run completes as cancelled once active jobs finish."""
        dropped = len(self._pending)
        self._pending.clear()
        if not self._running:
            return

        self._cancelled = True
        self._paused = False
        logger.warning(
            f"⚠️ Task queue cancelled: dropped {dropped} pending tasks, "
            f"waiting for {self.active_count} active jobs"
        )
        self._drain()

    def status(self) -> SchedulerStatus:
        if self._cancelled:
            return SchedulerStatus.CANCELLED
        if self._paused:
            return SchedulerStatus.PAUSED
        if self._running:
            return SchedulerStatus.RUNNING
        return SchedulerStatus.IDLE

    def snapshot(self) -> QueueState:
        return QueueState(
            pending=list(self._pending),
            active_count=self.active_count,
            paused=self._paused,
            cancelled=self._cancelled,
            running=self._running,
            concurrency_limit=self._concurrency_limit,
        )

    async def wait_until_idle(self) -> None:
        """Wait until the current run (including a cancelled one) has completed."""
        await self._idle.wait()

    def _start_run(self) -> None:
        first = self._pending[0]
        self._concurrency_limit = (
            first.config.max_concurrent_tasks or self.default_concurrency
        )
        self._running = True
        # A pause requested while idle does not carry over into a new run
        self._paused = False
        self._idle.clear()
        logger.info(f"Starting task run (concurrency limit: {self._concurrency_limit})")
        self._drain()

    def _finish(self, outcome: QueueOutcome) -> None:
        self._cancel_poll()
        self._running = False
        self._cancelled = False
        self._paused = False
        logger.info(f"Task run finished: {outcome.value}")
        self.observer.on_queue_complete(outcome)

        if self._pending:
            self._start_run()
        else:
            self._idle.set()

    def _cancel_poll(self) -> None:
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

    def _schedule_poll(self, delay: float) -> None:
        self._cancel_poll()
        self._poll_handle = self._loop.call_later(delay, self._drain)

    def _drain(self) -> None:
        self._cancel_poll()
        if not self._running:
            return

        if self._cancelled:
            if not self._active:
                self._finish(QueueOutcome.CANCELLED)
            return

        if self._paused:
            self._schedule_poll(self.pause_poll_interval)
            return

        if not self._pending and not self._active:
            self._finish(QueueOutcome.COMPLETED)
            return

        available_slots = self._concurrency_limit - len(self._active)
        while available_slots > 0 and self._pending:
            self._admit(self._pending.popleft())
            available_slots -= 1

        if self._active:
            self._schedule_poll(self.safety_poll_interval)

    def _admit(self, task: Task) -> None:
        job_id = self._next_job_id
        self._next_job_id += 1
        self._active[job_id] = self._loop.create_task(self._run_job(job_id, task))
        logger.debug(
            f"Admitted {task.file.path} ({len(self._active)}/{self._concurrency_limit} active)"
        )

    async def _run_job(self, job_id: int, task: Task) -> None:
        try:
            await self._process(task)
        except Exception as e:
            logger.exception(f"❌ Processing {task.file.path} failed: {e}")
            self.observer.on_message("error", f"Processing {task.file.path} failed: {e}")
        finally:
            self._active.pop(job_id, None)
            self._drain()
