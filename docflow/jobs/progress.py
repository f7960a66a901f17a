"""Status checkpoints written to job records while the pipeline runs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from docflow.jobs.models import JobRecord, JobStatus, status_rank
from docflow.storage.jobs_repo import JobsRepository
from docflow.utils.ids import utc_timestamp

MAX_TRACKED_LOGS = 100

logger = logging.getLogger(__name__)


def _clamp_percent(percent: int) -> int:
  # 100 is reserved for COMPLETED.
  return max(0, min(int(percent), 99))


def _append_logs(logs: Iterable[str], *messages: str | None) -> list[str]:
  """Append log lines while preserving the rolling window."""

  combined = list(logs)
  combined.extend(message for message in messages if message)
  return combined[-MAX_TRACKED_LOGS:]


def _upsert_checkpoint(checkpoints: list[dict[str, Any]], *, stage: JobStatus, percent: int, timestamp: str) -> list[dict[str, Any]]:
  """Replace the checkpoint for a stage, or append it when the stage is new."""

  entry = {"stage": str(stage), "percent": percent, "timestamp": timestamp}
  updated = [dict(item) for item in checkpoints]
  for index, item in enumerate(updated):
    if item.get("stage") == str(stage):
      updated[index] = entry
      return updated
  updated.append(entry)
  return updated


class JobStatusNotifier:
  """Write status, progress and stage outputs for one jobs repository.

  Writes are idempotent per stage: repeating a notification replaces that stage's checkpoint,
  status never moves backward, and progress never decreases. Terminal records are never touched.
  """

  def __init__(self, *, jobs_repo: JobsRepository, clock: Callable[[], str] = utc_timestamp) -> None:
    self._jobs_repo = jobs_repo
    self._clock = clock

  async def _load(self, job_id: str) -> JobRecord | None:
    record = await self._jobs_repo.get_job(job_id)
    if record is None:
      logger.warning("Status write skipped; job %s not found.", job_id)
    return record

  def _advance(self, record: JobRecord, stage: JobStatus) -> JobStatus:
    if status_rank(stage) >= status_rank(record.status):
      return stage
    return record.status

  async def notify(self, job_id: str, stage: JobStatus, percent: int, *, message: str | None = None) -> JobRecord | None:
    """Record that a stage started or progressed."""

    if stage in (JobStatus.COMPLETED, JobStatus.FAILED):
      raise ValueError("Terminal statuses are written with complete() or fail().")

    record = await self._load(job_id)
    if record is None or record.is_terminal:
      return record

    timestamp = self._clock()
    clamped = _clamp_percent(percent)
    return await self._jobs_repo.update_job(
      job_id,
      status=self._advance(record, stage),
      progress_percent=max(record.progress_percent, clamped),
      checkpoints=_upsert_checkpoint(record.checkpoints, stage=stage, percent=clamped, timestamp=timestamp),
      logs=_append_logs(record.logs, message),
      updated_at=timestamp,
    )

  async def complete_stage(self, job_id: str, stage: JobStatus, percent: int, output: dict[str, Any], *, message: str | None = None) -> JobRecord | None:
    """Record a stage's output together with its completion checkpoint."""

    record = await self._load(job_id)
    if record is None or record.is_terminal:
      return record

    stage_outputs = dict(record.stage_outputs)
    if str(stage) in stage_outputs:
      # Outputs are write-once; the checkpoint still refreshes.
      logger.warning("Output for stage %s of job %s already recorded; keeping the original.", stage, job_id)
    else:
      stage_outputs[str(stage)] = output

    timestamp = self._clock()
    clamped = _clamp_percent(percent)
    return await self._jobs_repo.update_job(
      job_id,
      status=self._advance(record, stage),
      progress_percent=max(record.progress_percent, clamped),
      stage_outputs=stage_outputs,
      checkpoints=_upsert_checkpoint(record.checkpoints, stage=stage, percent=clamped, timestamp=timestamp),
      logs=_append_logs(record.logs, message),
      updated_at=timestamp,
    )

  async def complete(self, job_id: str, *, result_location: str | None = None, message: str | None = None) -> JobRecord | None:
    """Mark the job COMPLETED at 100%."""

    record = await self._load(job_id)
    if record is None or record.is_terminal:
      return record

    timestamp = self._clock()
    return await self._jobs_repo.update_job(
      job_id,
      status=JobStatus.COMPLETED,
      progress_percent=100,
      checkpoints=_upsert_checkpoint(record.checkpoints, stage=JobStatus.COMPLETED, percent=100, timestamp=timestamp),
      logs=_append_logs(record.logs, message),
      result_location=result_location,
      completed_at=timestamp,
      updated_at=timestamp,
    )

  async def fail(self, job_id: str, *, stage: JobStatus, kind: str, message: str) -> JobRecord | None:
    """Mark the job FAILED and freeze its stage outputs."""

    record = await self._load(job_id)
    if record is None or record.is_terminal:
      return record

    timestamp = self._clock()
    return await self._jobs_repo.update_job(
      job_id,
      status=JobStatus.FAILED,
      error={"stage": str(stage), "kind": str(kind), "message": message},
      checkpoints=_upsert_checkpoint(record.checkpoints, stage=JobStatus.FAILED, percent=record.progress_percent, timestamp=timestamp),
      logs=_append_logs(record.logs, f"{stage} failed: {kind}: {message}"),
      completed_at=timestamp,
      updated_at=timestamp,
    )
