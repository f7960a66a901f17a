"""Storage interfaces for document analysis jobs."""

from __future__ import annotations

from typing import Any, Protocol

from docflow.jobs.models import JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress_percent: int | None = None,
    stage_outputs: dict[str, Any] | None = None,
    checkpoints: list[dict[str, Any]] | None = None,
    error: dict[str, Any] | None = None,
    logs: list[str] | None = None,
    result_location: str | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> JobRecord | None:
    """Apply partial updates to a job."""

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    """Return a small batch of queued jobs, oldest first."""

  async def find_by_idempotency_key(self, idempotency_key: str) -> JobRecord | None:
    """Return a job created with a given idempotency key, if present."""

  async def claim_job(self, job_id: str, *, updated_at: str | None = None) -> JobRecord | None:
    """Atomically move a QUEUED job to STARTED; None when it is missing or already claimed."""
