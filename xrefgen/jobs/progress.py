"""In-memory progress tracking for generation jobs, fanned out to SSE subscribers."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

MAX_TRACKED_MESSAGES = 200

JobStatus = Literal["running", "complete", "error"]


@dataclass(frozen=True)
class ProgressMessage:
  """A single progress update emitted while a job runs."""

  timestamp: float
  elapsed: str
  phase: str
  message: str
  detail: str | None = None
  result: dict[str, Any] | None = None

  def to_dict(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"timestamp": self.timestamp, "elapsed": self.elapsed, "phase": self.phase, "message": self.message}
    if self.detail is not None:
      payload["detail"] = self.detail
    if self.result is not None:
      payload["result"] = self.result
    return payload


@dataclass
class GenerationJob:
  """State of one generation job; the output bytes are kept out of `result`."""

  job_id: str
  name: str
  started_at: float
  status: JobStatus = "running"
  messages: list[ProgressMessage] = field(default_factory=list)
  result: dict[str, Any] | None = None
  output_bytes: bytes | None = None
  output_filename: str | None = None
  finished_at: float | None = None


class GenerationJobStore:
  """Track running jobs, keep their messages and notify subscribers.

  Finished jobs are dropped `ttl_seconds` after completion; expiry is checked
  lazily whenever the store is touched.
  """

  def __init__(self, *, ttl_seconds: float = 300, clock: Callable[[], float] = time.time) -> None:
    self._ttl_seconds = ttl_seconds
    self._clock = clock
    self._jobs: dict[str, GenerationJob] = {}
    self._subscribers: dict[str, set[asyncio.Queue[ProgressMessage]]] = {}

  def create_job(self, job_id: str, name: str) -> GenerationJob:
    self.purge_expired()
    job = GenerationJob(job_id=job_id, name=name, started_at=self._clock())
    self._jobs[job_id] = job
    self._subscribers[job_id] = set()
    return job

  def get_job(self, job_id: str) -> GenerationJob | None:
    self.purge_expired()
    return self._jobs.get(job_id)

  def _elapsed(self, job: GenerationJob) -> str:
    return f"{self._clock() - job.started_at:.1f}s"

  def _publish(self, job: GenerationJob, message: ProgressMessage) -> None:
    job.messages.append(message)
    if len(job.messages) > MAX_TRACKED_MESSAGES:
      job.messages = job.messages[-MAX_TRACKED_MESSAGES:]
    for queue in self._subscribers.get(job.job_id, ()):
      queue.put_nowait(message)

  def add_progress(self, job_id: str, phase: str, message: str, detail: str | None = None) -> None:
    """Record a progress message; unknown or expired jobs are ignored."""
    job = self._jobs.get(job_id)
    if job is None:
      return
    self._publish(job, ProgressMessage(timestamp=self._clock(), elapsed=self._elapsed(job), phase=phase, message=message, detail=detail))

  def complete_job(self, job_id: str, success: bool, result: dict[str, Any] | None = None, *, output_bytes: bytes | None = None, output_filename: str | None = None) -> None:
    """Mark the job finished and send the final message with its result."""
    job = self._jobs.get(job_id)
    if job is None:
      return

    job.status = "complete" if success else "error"
    job.output_bytes = output_bytes
    job.output_filename = output_filename
    job.finished_at = self._clock()
    job.result = {"success": success, **(result or {}), "has_output": output_bytes is not None}

    elapsed = self._elapsed(job)
    self._publish(
      job,
      ProgressMessage(
        timestamp=job.finished_at,
        elapsed=elapsed,
        phase="complete" if success else "error",
        message="Generation complete!" if success else "Generation failed",
        detail=f"Total time: {elapsed}",
        result=job.result,
      ),
    )

  def subscribe(self, job_id: str) -> asyncio.Queue[ProgressMessage] | None:
    """Return a queue receiving every message published after this call."""
    subscribers = self._subscribers.get(job_id)
    if subscribers is None:
      return None
    queue: asyncio.Queue[ProgressMessage] = asyncio.Queue()
    subscribers.add(queue)
    return queue

  def unsubscribe(self, job_id: str, queue: asyncio.Queue[ProgressMessage]) -> None:
    subscribers = self._subscribers.get(job_id)
    if subscribers is not None:
      subscribers.discard(queue)

  def purge_expired(self) -> int:
    """Drop finished jobs older than the TTL and return how many were removed."""
    now = self._clock()
    expired = [job_id for job_id, job in self._jobs.items() if job.finished_at is not None and now - job.finished_at >= self._ttl_seconds]
    for job_id in expired:
      self._jobs.pop(job_id, None)
      self._subscribers.pop(job_id, None)
    return len(expired)
