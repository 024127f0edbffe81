"""
Background jobs.

A job is a cancellable unit of work submitted to the JobScheduler. The
returned JobHandle reports state, carries the job's ProgressMonitor and
resolves to the job's return value.

State machine:
QUEUED → RUNNING → COMPLETED
            ↓
       FAILED | CANCELLED
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .progress import ProgressMonitor

logger = logging.getLogger("checkout_jobs")

JobFunction = Callable[[ProgressMonitor], Awaitable[Any]]
DoneListener = Callable[["JobHandle"], None]


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal_states(cls) -> Set["JobState"]:
        return {cls.COMPLETED, cls.FAILED, cls.CANCELLED}


@dataclass
class Job:
    """Bookkeeping for one submitted job."""
    name: str
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: JobState = JobState.QUEUED
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "name": self.name,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


class JobHandle:
    """Future-like handle for a submitted job."""

    def __init__(self, job: Job, monitor: ProgressMonitor):
        self.job = job
        self.monitor = monitor
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[DoneListener] = []

    @property
    def job_id(self) -> str:
        return self.job.job_id

    @property
    def state(self) -> JobState:
        return self.job.state

    def done(self) -> bool:
        return self.job.state in JobState.terminal_states()

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        if self.done():
            return
        logger.info(f"Cancel requested for job {self.job.name} ({self.job_id})")
        self.monitor.cancel()

    def abort(self) -> None:
        """Cancel the underlying task outright."""
        self.monitor.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def result(self) -> Any:
        """Wait for the job and return its value, re-raising its failure."""
        return await asyncio.shield(self._task)

    def add_done_listener(self, listener: DoneListener) -> None:
        if self.done():
            listener(self)
        else:
            self._listeners.append(listener)

    def _fire_listeners(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Job listener failed for {self.job.name}: {e}")
        self._listeners.clear()


class JobScheduler:
    """
    Runs jobs as asyncio tasks, at most max_concurrent at a time.
    Must be used from inside a running event loop.
    """

    def __init__(self, max_concurrent: int = 2):
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._handles: Dict[str, JobHandle] = {}

    def submit(self, name: str, fn: JobFunction, monitor: Optional[ProgressMonitor] = None) -> JobHandle:
        job = Job(name=name)
        handle = JobHandle(job, monitor or ProgressMonitor())
        self._handles[job.job_id] = handle
        handle._task = asyncio.create_task(self._run(handle, fn), name=f"job-{job.job_id}")
        logger.info(f"Job {name} ({job.job_id}) queued")
        return handle

    async def _run(self, handle: JobHandle, fn: JobFunction) -> Any:
        job = handle.job
        try:
            async with self._semaphore:
                job.state = JobState.RUNNING
                job.started_at = datetime.utcnow()
                result = await fn(handle.monitor)
            job.state = JobState.COMPLETED
            return result
        except asyncio.CancelledError:
            job.state = JobState.CANCELLED
            logger.info(f"Job {job.name} ({job.job_id}) cancelled")
            raise
        except Exception as e:
            job.state = JobState.FAILED
            job.error_message = str(e)
            logger.error(f"Job {job.name} ({job.job_id}) failed: {e}")
            raise
        finally:
            job.completed_at = datetime.utcnow()
            handle._fire_listeners()

    def get(self, job_id: str) -> Optional[JobHandle]:
        return self._handles.get(job_id)

    def list_jobs(self, state: Optional[JobState] = None) -> List[Job]:
        jobs = [h.job for h in self._handles.values()]
        if state:
            jobs = [j for j in jobs if j.state == state]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    async def shutdown(self) -> None:
        """Cancel every unfinished job and wait for them to settle."""
        tasks = []
        for handle in self._handles.values():
            if not handle.done():
                handle.abort()
            if handle._task is not None:
                tasks.append(handle._task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Job scheduler stopped")
