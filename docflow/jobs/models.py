"""Domain models for asynchronous document analysis jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from docflow.pipeline.contracts import DocumentRef


class JobStatus(StrEnum):
  """Lifecycle states of a document analysis job, in pipeline order."""

  QUEUED = "QUEUED"
  STARTED = "STARTED"
  VALIDATING = "VALIDATING"
  EXTRACTING = "EXTRACTING"
  ANALYZING = "ANALYZING"
  COMPARING = "COMPARING"
  GENERATING_INSIGHTS = "GENERATING_INSIGHTS"
  STORING = "STORING"
  COMPLETED = "COMPLETED"
  FAILED = "FAILED"


STATUS_ORDER: tuple[JobStatus, ...] = (
  JobStatus.QUEUED,
  JobStatus.STARTED,
  JobStatus.VALIDATING,
  JobStatus.EXTRACTING,
  JobStatus.ANALYZING,
  JobStatus.COMPARING,
  JobStatus.GENERATING_INSIGHTS,
  JobStatus.STORING,
  JobStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


@dataclass(frozen=True)
class StageProgress:
  """Progress checkpoints written around one stage."""

  start: int
  done: int


# Percentages stay below 100 until the job completes.
STAGE_PROGRESS: dict[JobStatus, StageProgress] = {
  JobStatus.VALIDATING: StageProgress(start=5, done=15),
  JobStatus.EXTRACTING: StageProgress(start=20, done=45),
  JobStatus.ANALYZING: StageProgress(start=50, done=65),
  JobStatus.COMPARING: StageProgress(start=70, done=75),
  JobStatus.GENERATING_INSIGHTS: StageProgress(start=80, done=90),
  JobStatus.STORING: StageProgress(start=92, done=99),
}


def status_rank(status: JobStatus) -> int:
  """Return the position of a non-failed status in the pipeline order."""
  return STATUS_ORDER.index(status)


@dataclass
class JobRecord:
  """Represents a background document analysis job."""

  job_id: str
  input_documents: list[DocumentRef]
  is_multiple_documents: bool
  status: JobStatus
  created_at: str
  updated_at: str
  progress_percent: int = 0
  stage_outputs: dict[str, Any] = field(default_factory=dict)
  checkpoints: list[dict[str, Any]] = field(default_factory=list)
  error: dict[str, Any] | None = None
  logs: list[str] = field(default_factory=list)
  result_location: str | None = None
  completed_at: str | None = None
  ttl: int | None = None
  idempotency_key: str | None = None

  @property
  def is_terminal(self) -> bool:
    """Return True once the job reached COMPLETED or FAILED."""
    return self.status in TERMINAL_STATUSES
