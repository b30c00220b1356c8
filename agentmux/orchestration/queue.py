"""In-process task queue feeding a worker pool that calls the dispatcher.

Jobs are pulled from a single FIFO. With one worker, execution follows
enqueue order. With several workers, jobs *start* in enqueue order but may
*finish* in any order, including jobs for the same agent.
"""
from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from agentmux.core.errors import NotFoundError, QueueShutdown, ValidationError
from agentmux.core.logging import get_logger, summarize_task
from agentmux.core.models import Job, JobState, Task, parse_task
from agentmux.orchestration.dispatcher import AgentDispatcher

logger = get_logger(__name__)

JobListener = Callable[[Job], Union[None, Awaitable[None]]]

# Raised by the dispatcher for problems that another attempt cannot fix.
NON_RETRYABLE = (ValidationError, NotFoundError)


class TaskQueue:
    """Decouple task submission from execution, with bounded retries."""

    def __init__(
        self,
        *,
        dispatcher: AgentDispatcher,
        max_workers: int = 4,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.5,
        retention_seconds: float = 3600.0,
        janitor_interval_seconds: float = 60.0,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._dispatcher = dispatcher
        self._max_workers = max_workers
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._retention_seconds = retention_seconds
        self._janitor_interval_seconds = janitor_interval_seconds

        self._jobs: Dict[str, Job] = {}
        self._done_events: Dict[str, asyncio.Event] = {}
        self._pending: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._retry_timers: Set[asyncio.Task] = set()
        self._janitor: Optional[asyncio.Task] = None
        self._listeners: List[JobListener] = []
        self._stopping = False

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stopping

    def subscribe(self, listener: JobListener) -> None:
        """Call ``listener`` whenever a job reaches a terminal state."""
        self._listeners.append(listener)

    async def enqueue(self, agent_name: str, task: Union[Task, Mapping[str, Any]]) -> str:
        """Accept a task for ``agent_name``. Agent existence is checked at execution time."""
        if self._stopping:
            raise QueueShutdown("Task queue is shutting down", agent_name=agent_name)
        task = parse_task(task)
        job = Job(id=str(uuid.uuid4()), agent_name=agent_name, task=task)
        self._jobs[job.id] = job
        self._done_events[job.id] = asyncio.Event()
        self._pending.put_nowait(job.id)
        logger.info("job_enqueued", job_id=job.id, agent_name=agent_name, task=summarize_task(task))
        return job.id

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def list(self, state: Optional[JobState] = None) -> List[Job]:
        return [job for job in self._jobs.values() if state is None or job.state is state]

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job is terminal and return it."""
        event = self._done_events.get(job_id)
        if event is None:
            raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return self._jobs[job_id]

    async def start(self) -> None:
        if self._workers:
            return
        self._stopping = False
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"agentmux-worker-{index}")
            for index in range(self._max_workers)
        ]
        self._janitor = asyncio.create_task(self._janitor_loop(), name="agentmux-janitor")
        logger.info("task_queue_started", workers=self._max_workers, max_retries=self._max_retries)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Stop dequeuing, let in-flight jobs finish within the grace period, then force stop."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("task_queue_stopping", grace_seconds=grace_seconds)

        for timer in list(self._retry_timers):
            timer.cancel()
        if self._janitor is not None:
            self._janitor.cancel()

        # Wake idle workers so they observe the stop flag.
        for _ in self._workers:
            self._pending.put_nowait(None)

        if self._workers:
            _, still_running = await asyncio.wait(self._workers, timeout=grace_seconds)
            for worker in still_running:
                worker.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
        await asyncio.gather(
            *self._retry_timers,
            *([self._janitor] if self._janitor else []),
            return_exceptions=True,
        )

        for job in self.list(JobState.ACTIVE):
            job.error = "Job interrupted by task queue shutdown"
            job.transition(JobState.FAILED)
            logger.warning("job_failed_on_shutdown", job_id=job.id, agent_name=job.agent_name)
            await self._notify(job)

        self._workers = []
        self._retry_timers.clear()
        self._janitor = None
        logger.info("task_queue_stopped")

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Discard terminal jobs older than the retention window."""
        now = time.time() if now is None else now
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_terminal
            and job.finished_at is not None
            and now - job.finished_at >= self._retention_seconds
        ]
        for job_id in expired:
            self._jobs.pop(job_id, None)
            self._done_events.pop(job_id, None)
        if expired:
            logger.info("jobs_purged", count=len(expired))
        return len(expired)

    async def _worker(self, index: int) -> None:
        while not self._stopping:
            job_id = await self._pending.get()
            if job_id is None or self._stopping:
                break
            job = self._jobs.get(job_id)
            if job is None or job.state is not JobState.QUEUED:
                continue
            await self._execute(job, worker=index)

    async def _execute(self, job: Job, *, worker: int) -> None:
        job.transition(JobState.ACTIVE)
        job.attempts += 1
        log = logger.bind(job_id=job.id, agent_name=job.agent_name, attempt=job.attempts, worker=worker)
        log.info("job_started")

        try:
            result = await self._dispatcher.run_agent(job.agent_name, job.task)
        except NON_RETRYABLE as exc:
            log.warning("job_rejected", error=str(exc), error_kind=exc.kind)
            await self._fail(job, exc)
            return
        except Exception as exc:  # noqa: BLE001
            if job.attempts < self._max_retries:
                delay = self._retry_backoff_seconds * (2 ** (job.attempts - 1))
                job.error = _describe(exc)
                log.warning("job_retry_scheduled", error=job.error, delay_seconds=delay)
                self._schedule_retry(job, delay)
            else:
                log.error("job_failed", error=_describe(exc))
                await self._fail(job, exc)
            return

        job.result = result
        job.error = None
        job.transition(JobState.COMPLETED)
        log.info("job_completed")
        await self._notify(job)

    def _schedule_retry(self, job: Job, delay: float) -> None:
        timer = asyncio.create_task(self._requeue_after(job, delay))
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)

    async def _requeue_after(self, job: Job, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._stopping or job.state is not JobState.ACTIVE:
            return
        job.transition(JobState.QUEUED)
        self._pending.put_nowait(job.id)

    async def _fail(self, job: Job, exc: BaseException) -> None:
        job.error = _describe(exc)
        job.transition(JobState.FAILED)
        await self._notify(job)

    async def _notify(self, job: Job) -> None:
        event = self._done_events.get(job.id)
        if event is not None:
            event.set()
        for listener in list(self._listeners):
            try:
                outcome = listener(job)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:  # noqa: BLE001
                logger.error("job_listener_failed", job_id=job.id, error=str(exc))

    async def _janitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self._janitor_interval_seconds)
            self.purge_expired()


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__
