from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import DocumentRef


class CamelModel(BaseModel):
  """Base model exchanged with the client using camelCase keys."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobCreateRequest(CamelModel):
  """Request payload for submitting documents for analysis."""

  documents: list[DocumentRef] = Field(default_factory=list)
  idempotency_key: StrictStr | None = Field(default=None, min_length=1, max_length=128)


class JobCreateResponse(CamelModel):
  """Response payload for job creation."""

  job_id: StrictStr


class JobError(CamelModel):
  """Diagnostic payload of a failed job."""

  stage: StrictStr
  kind: StrictStr
  message: StrictStr


class JobCheckpoint(CamelModel):
  stage: StrictStr
  percent: int
  timestamp: StrictStr


class JobStatusResponse(CamelModel):
  """Status payload for a document analysis job."""

  job_id: StrictStr
  status: JobStatus
  progress_percent: int = Field(ge=0, le=100)
  is_multiple_documents: bool
  input_documents: list[DocumentRef]
  stage_outputs: dict[str, Any] = Field(default_factory=dict)
  checkpoints: list[JobCheckpoint] = Field(default_factory=list)
  error: JobError | None = None
  result: dict[str, Any] | None = None
  result_location: StrictStr | None = None
  logs: list[str] = Field(default_factory=list)
  created_at: StrictStr
  updated_at: StrictStr
  completed_at: StrictStr | None = None


class TaskPayload(BaseModel):
  job_id: StrictStr
