"""
Streaming Relay — Two-step streaming debate over Server-Sent Events.

WHAT THIS DOES:
The browser's EventSource can only GET, but a debate request has a body.
So streaming is split in two requests:
1. POST /debate/stream/init  → validate, store a StreamingJob, return its id
2. GET  /debate/stream/{id}  → open the job and relay the debate as events

JOB LIFECYCLE:
    init_job() ──▶ INITIALIZED ──open_job()──▶ ACTIVE ──events() starts──▶ STREAMING ──▶ deleted
                       │                          │                  (terminal event or disconnect)
                       └──────────────────────────┴── not streaming within idle timeout ──▶ evicted by sweep()

Only one consumer per job: once opened (or deleted), the id is gone for
everyone else. A job opened by a client that leaves before the response
body starts never reaches STREAMING and is swept like an unopened one.

EVICTION:
Every job carries a deadline (expires_at), set at init and pushed back at
open. Each deadline goes onto a min-heap as (expires_at, job_id). sweep()
pops everything due and deletes the jobs that are not streaming and whose
current deadline has passed; the lifespan runs it periodically. The clock is
injectable so tests don't wait 30 minutes.

WIRE FORMAT:
Each event is one SSE message: `data: <json>\\n\\n`
"""

import asyncio
import heapq
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Optional

from app.config import get_settings
from app.services.debate.models import DebateEvent, DebateParams, ErrorEvent
from app.services.debate.orchestrator import DebateOrchestrator, LivenessProbe
from app.services.errors import StreamNotFoundError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    INITIALIZED = "initialized"
    ACTIVE = "active"
    STREAMING = "streaming"


@dataclass
class StreamingJob:
    job_id: str
    params: DebateParams
    created_at: float
    expires_at: float
    status: JobStatus = JobStatus.INITIALIZED


def format_sse(payload: dict) -> str:
    """One Server-Sent Events message carrying a JSON payload."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def guarded_payloads(events: AsyncIterator[DebateEvent], label: str) -> AsyncIterator[dict]:
    """
    Wire payloads of an event iterator.

    A failure while producing events ends the stream with one error payload.
    """
    try:
        async for event in events:
            yield event.to_payload()
    except Exception as e:
        logger.exception(f"Stream {label} failed")
        yield ErrorEvent(message=f"辩论请求失败: {e}").to_payload()


# =============================================================================
# EVICTION QUEUE
# =============================================================================

@dataclass(order=True)
class _Expiry:
    expires_at: float
    job_id: str = field(compare=False)


class EvictionQueue:
    """Min-heap of (expires_at, job_id)."""

    def __init__(self):
        self._heap: list[_Expiry] = []

    def __len__(self) -> int:
        return len(self._heap)

    def schedule(self, job_id: str, expires_at: float) -> None:
        heapq.heappush(self._heap, _Expiry(expires_at, job_id))

    def pop_due(self, now: float) -> list[str]:
        """Remove and return every job id whose expiry is <= now."""
        due = []
        while self._heap and self._heap[0].expires_at <= now:
            due.append(heapq.heappop(self._heap).job_id)
        return due


# =============================================================================
# JOB STORE
# =============================================================================

class JobStore(ABC):
    """Abstract table of streaming jobs."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[StreamingJob]:
        pass

    @abstractmethod
    def create(self, job: StreamingJob) -> None:
        pass

    @abstractmethod
    def extend(self, job_id: str, expires_at: float) -> None:
        """Push a job's deadline back."""
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        pass

    @abstractmethod
    def list_expired(self, now: float) -> list[str]:
        """Ids of jobs not yet streaming whose deadline has passed."""
        pass


class InMemoryJobStore(JobStore):
    def __init__(self):
        self._jobs: dict[str, StreamingJob] = {}
        self._expiries = EvictionQueue()

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, job_id: str) -> Optional[StreamingJob]:
        return self._jobs.get(job_id)

    def create(self, job: StreamingJob) -> None:
        self._jobs[job.job_id] = job
        self._expiries.schedule(job.job_id, job.expires_at)

    def extend(self, job_id: str, expires_at: float) -> None:
        job = self._jobs.get(job_id)
        if job is not None:
            job.expires_at = expires_at
            self._expiries.schedule(job_id, expires_at)

    def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def list_expired(self, now: float) -> list[str]:
        expired = []
        for job_id in self._expiries.pop_due(now):
            job = self._jobs.get(job_id)
            # Earlier heap entries of an extended job are stale
            if job is not None and job.status is not JobStatus.STREAMING and job.expires_at <= now:
                expired.append(job_id)
        return expired


# =============================================================================
# RELAY
# =============================================================================

class StreamingRelay:
    """
    Connects an init request to the event stream that later consumes it.

    Args:
        orchestrator: Runs the debate turn
        jobs: Where pending and active jobs live
        idle_timeout: Seconds a job may wait, after init and again after open, for streaming to start
        clock: Monotonic time source
    """

    def __init__(
        self,
        orchestrator: DebateOrchestrator,
        jobs: Optional[JobStore] = None,
        idle_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.orchestrator = orchestrator
        self.jobs = jobs or InMemoryJobStore()
        self.idle_timeout = (
            get_settings().stream_idle_timeout_seconds if idle_timeout is None else idle_timeout
        )
        self._clock = clock

    def init_job(self, params: DebateParams) -> str:
        """
        Validate the request and park it as a job.

        Raises:
            AgentSelectionError: nothing is stored
        """
        self.orchestrator.validate(params.agent_names)
        job_id = str(uuid.uuid4())
        now = self._clock()
        self.jobs.create(StreamingJob(
            job_id=job_id,
            params=params,
            created_at=now,
            expires_at=now + self.idle_timeout,
        ))
        logger.info(f"Initialized stream {job_id} for {len(params.agent_names)} agents")
        return job_id

    def open_job(self, job_id: str) -> StreamingJob:
        """
        Claim a job for streaming.

        Raises:
            StreamNotFoundError: unknown, evicted, finished or already opened
        """
        job = self.jobs.get(job_id)
        if job is None or job.status is not JobStatus.INITIALIZED:
            raise StreamNotFoundError(job_id)
        job.status = JobStatus.ACTIVE
        self.jobs.extend(job_id, self._clock() + self.idle_timeout)
        logger.info(f"Opened stream {job_id}")
        return job

    async def events(
        self,
        job: StreamingJob,
        is_alive: Optional[LivenessProbe] = None,
    ) -> AsyncIterator[dict]:
        """
        Drive the debate for an opened job, yielding wire payloads.

        A fatal failure becomes a final error payload. The job record is
        deleted however the stream ends.
        """
        job.status = JobStatus.STREAMING
        steps = self.orchestrator.steps(job.params, is_alive=is_alive)
        try:
            async for payload in guarded_payloads(steps, job.job_id):
                yield payload
        finally:
            self.jobs.delete(job.job_id)
            logger.info(f"Closed stream {job.job_id}")

    def sweep(self) -> list[str]:
        """Delete jobs that never started streaming within their idle window."""
        expired = self.jobs.list_expired(self._clock())
        for job_id in expired:
            self.jobs.delete(job_id)
        if expired:
            logger.info(f"Evicted {len(expired)} idle streams")
        return expired

    async def run_sweeper(self, interval: Optional[float] = None) -> None:
        """Sweep forever; cancel the task to stop."""
        interval = interval or get_settings().stream_sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.sweep()
