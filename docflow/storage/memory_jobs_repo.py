"""In-process jobs repository used for local development and tests."""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from typing import Any

from docflow.jobs.models import JobRecord, JobStatus
from docflow.utils.ids import utc_timestamp


class InMemoryJobsRepository:
  """Keep job records in a dict guarded by a lock; reads return detached copies."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._lock = threading.Lock()

  async def create_job(self, record: JobRecord) -> None:
    with self._lock:
      if record.job_id in self._jobs:
        raise ValueError(f"Job {record.job_id} already exists.")
      self._jobs[record.job_id] = copy.deepcopy(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    with self._lock:
      record = self._jobs.get(job_id)
      return copy.deepcopy(record) if record is not None else None

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
    changes: dict[str, Any] = {
      "status": status,
      "progress_percent": progress_percent,
      "stage_outputs": stage_outputs,
      "checkpoints": checkpoints,
      "error": error,
      "logs": logs,
      "result_location": result_location,
      "completed_at": completed_at,
    }
    applied = {key: copy.deepcopy(value) for key, value in changes.items() if value is not None}
    with self._lock:
      current = self._jobs.get(job_id)
      if current is None:
        return None
      updated = replace(current, **applied, updated_at=updated_at or utc_timestamp())
      self._jobs[job_id] = updated
      return copy.deepcopy(updated)

  async def claim_job(self, job_id: str, *, updated_at: str | None = None) -> JobRecord | None:
    with self._lock:
      current = self._jobs.get(job_id)
      if current is None or current.status != JobStatus.QUEUED:
        return None
      claimed = replace(current, status=JobStatus.STARTED, updated_at=updated_at or utc_timestamp())
      self._jobs[job_id] = claimed
      return copy.deepcopy(claimed)

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    with self._lock:
      queued = [record for record in self._jobs.values() if record.status == JobStatus.QUEUED]
      queued.sort(key=lambda record: (record.created_at, record.job_id))
      return [copy.deepcopy(record) for record in queued[:limit]]

  async def find_by_idempotency_key(self, idempotency_key: str) -> JobRecord | None:
    with self._lock:
      for record in self._jobs.values():
        if record.idempotency_key == idempotency_key:
          return copy.deepcopy(record)
    return None
