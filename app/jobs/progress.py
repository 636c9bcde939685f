"""In-memory job registry that broadcasts progress events to subscribers."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
import string
import threading
import time
from collections.abc import Callable

from app.jobs.models import Job, JobResult, ProgressEvent, ProgressPhase

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Subscriber = Callable[[ProgressEvent], None]
Unsubscribe = Callable[[], None]

DEFAULT_RETENTION_SECONDS = 300
_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9


class ProgressStore:
  """Process-local registry of generation jobs and their live observers.

  One instance is created per process and shared through app.state.
  Completed jobs are dropped `retention_seconds` after completion, either
  by a loop timer or lazily on the next access.
  """

  def __init__(self, *, clock: Clock = time.time, retention_seconds: float = DEFAULT_RETENTION_SECONDS) -> None:
    self._clock = clock
    self._retention_seconds = retention_seconds
    self._jobs: dict[str, Job] = {}
    self._subscribers: dict[str, list[Subscriber]] = {}
    self._timers: dict[str, asyncio.TimerHandle] = {}
    self._lock = threading.RLock()

  def generate_job_id(self) -> str:
    """Return `job-<millis>-<9 base36 chars>`."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"job-{int(self._clock() * 1000)}-{suffix}"

  def create(self, job_id: str, name: str) -> Job:
    """Register a job, replacing any previous job under the same id."""
    with self._lock:
      self._cancel_timer(job_id)
      job = Job(job_id=job_id, name=name, start_time=self._clock())
      self._jobs[job_id] = job
      self._subscribers[job_id] = []
      return job

  def get(self, job_id: str) -> Job | None:
    with self._lock:
      return self._live(job_id)

  def publish(self, job_id: str, phase: ProgressPhase, message: str, detail: str | None = None, step: str | None = None) -> ProgressEvent | None:
    """Append an event and notify subscribers; unknown jobs are ignored."""
    with self._lock:
      job = self._live(job_id)
      if job is None:
        return None
      if job.status != "running":
        # The completion event is the last entry of a finished job.
        return None
      event = self._event(job, phase, message, step=step, detail=detail)
      self._append_and_dispatch(job, event)
      return event

  def complete(self, job_id: str, success: bool, result: JobResult | None = None, detail: str | None = None, payload: bytes | None = None) -> ProgressEvent | None:
    """Set the terminal status, emit the final event and schedule eviction."""
    with self._lock:
      job = self._live(job_id)
      if job is None:
        return None

      summary = dataclasses.replace(result or JobResult(success=success), success=success, has_dwg_buffer=payload is not None)
      job.status = "complete" if success else "error"
      job.result = summary
      job.payload = payload
      job.completed_at = self._clock()

      elapsed = self._elapsed(job)
      event = self._event(
        job,
        "complete" if success else "error",
        "Generation complete!" if success else "Generation failed",
        detail=detail or f"Total time: {elapsed}",
        result=summary,
      )
      self._append_and_dispatch(job, event)
      self._schedule_eviction(job)
      return event

  def subscribe(self, job_id: str, callback: Subscriber) -> Unsubscribe:
    """Register `callback` for future events; inert for unknown jobs."""
    with self._lock:
      subscribers = self._subscribers.get(job_id) if self._live(job_id) is not None else None
      if subscribers is not None:
        subscribers.append(callback)

    def unsubscribe() -> None:
      with self._lock:
        current = self._subscribers.get(job_id)
        if current is None:
          return
        for index, registered in enumerate(current):
          if registered is callback:
            del current[index]
            return

    return unsubscribe

  def purge_expired(self) -> int:
    """Drop every completed job past its retention window."""
    with self._lock:
      expired = [job_id for job_id, job in self._jobs.items() if self._is_expired(job)]
      for job_id in expired:
        self._remove(job_id)
      return len(expired)

  def close(self) -> None:
    """Cancel pending eviction timers."""
    with self._lock:
      for handle in self._timers.values():
        handle.cancel()
      self._timers.clear()

  def _live(self, job_id: str) -> Job | None:
    job = self._jobs.get(job_id)
    if job is not None and self._is_expired(job):
      self._remove(job_id)
      return None
    return job

  def _is_expired(self, job: Job) -> bool:
    return job.completed_at is not None and self._clock() - job.completed_at >= self._retention_seconds

  def _elapsed(self, job: Job) -> str:
    return f"{self._clock() - job.start_time:.1f}s"

  def _event(self, job: Job, phase: ProgressPhase, message: str, *, step: str | None = None, detail: str | None = None, result: JobResult | None = None) -> ProgressEvent:
    return ProgressEvent(timestamp=int(self._clock() * 1000), elapsed=self._elapsed(job), phase=phase, message=message, step=step, detail=detail, result=result)

  def _append_and_dispatch(self, job: Job, event: ProgressEvent) -> None:
    job.events.append(event)
    logger.info("[%s] %s: %s%s", event.elapsed, event.step or event.phase, event.message, f" - {event.detail}" if event.detail else "")

    # Callbacks registered during delivery wait for the next event.
    for callback in list(self._subscribers.get(job.job_id, ())):
      try:
        callback(event)
      except Exception:
        logger.exception("Progress subscriber failed for job %s", job.job_id)

  def _schedule_eviction(self, job: Job) -> None:
    try:
      loop = asyncio.get_running_loop()
    except RuntimeError:
      # No loop: lazy eviction on access still applies.
      return
    self._cancel_timer(job.job_id)
    self._timers[job.job_id] = loop.call_later(self._retention_seconds, self._evict, job.job_id, job)

  def _evict(self, job_id: str, job: Job) -> None:
    with self._lock:
      self._timers.pop(job_id, None)
      # A later create() under the same id must survive the old timer.
      if self._jobs.get(job_id) is job:
        self._remove(job_id)

  def _cancel_timer(self, job_id: str) -> None:
    handle = self._timers.pop(job_id, None)
    if handle is not None:
      handle.cancel()

  def _remove(self, job_id: str) -> None:
    self._jobs.pop(job_id, None)
    self._subscribers.pop(job_id, None)
    self._cancel_timer(job_id)
    logger.debug("Evicted job %s", job_id)
