"""Domain models for in-process tile generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["running", "complete", "error"]
ProgressPhase = Literal["images", "script", "aps", "drive", "complete", "error", "llm"]


@dataclass(frozen=True)
class JobResult:
  """JSON-safe outcome of a job; raw payload bytes live on Job.payload."""

  success: bool
  dwg_url: str | None = None
  dwg_file_id: str | None = None
  drive_link: str | None = None
  viewer_urn: str | None = None
  errors: list[str] | None = None
  has_dwg_buffer: bool = False
  cost_eur: float | None = None
  llm_model: str | None = None
  tokens_in: int | None = None
  tokens_out: int | None = None

  def as_dict(self) -> dict[str, Any]:
    """Serialize with camelCase keys, omitting unset optionals."""
    payload = {
      "success": self.success,
      "dwgUrl": self.dwg_url,
      "dwgFileId": self.dwg_file_id,
      "driveLink": self.drive_link,
      "viewerUrn": self.viewer_urn,
      "errors": list(self.errors) if self.errors is not None else None,
      "hasDwgBuffer": self.has_dwg_buffer,
      "costEur": self.cost_eur,
      "llmModel": self.llm_model,
      "tokensIn": self.tokens_in,
      "tokensOut": self.tokens_out,
    }
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class ProgressEvent:
  """One append-only entry in a job's history."""

  timestamp: int
  elapsed: str
  phase: ProgressPhase
  message: str
  step: str | None = None
  detail: str | None = None
  result: JobResult | None = None

  def as_dict(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"timestamp": self.timestamp, "elapsed": self.elapsed, "phase": self.phase, "message": self.message}
    if self.step is not None:
      payload["step"] = self.step
    if self.detail is not None:
      payload["detail"] = self.detail
    if self.result is not None:
      payload["result"] = self.result.as_dict()
    return payload

  @property
  def is_terminal(self) -> bool:
    return self.result is not None and self.phase in {"complete", "error"}


@dataclass
class Job:
  """Mutable job state owned by the ProgressStore."""

  job_id: str
  name: str
  start_time: float
  status: JobStatus = "running"
  events: list[ProgressEvent] = field(default_factory=list)
  result: JobResult | None = None
  payload: bytes | None = field(default=None, repr=False)
  completed_at: float | None = None

  def as_dict(self) -> dict[str, Any]:
    """Snapshot for HTTP responses; the raw payload is never included."""
    return {
      "jobId": self.job_id,
      "name": self.name,
      "status": self.status,
      "startTime": int(self.start_time * 1000),
      "events": [event.as_dict() for event in self.events],
      "result": self.result.as_dict() if self.result is not None else None,
    }
