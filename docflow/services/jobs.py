"""Job submission and status queries."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from functools import lru_cache

from fastapi import BackgroundTasks, HTTPException, status

from docflow.api.models import JobCheckpoint, JobCreateRequest, JobCreateResponse, JobError, JobStatusResponse
from docflow.config import Settings
from docflow.jobs.models import JobRecord, JobStatus
from docflow.jobs.worker import JobProcessor
from docflow.pipeline.orchestrator import PipelineOrchestrator
from docflow.services.dispatch import HttpJobDispatcher
from docflow.storage.factory import _get_blob_store, _get_jobs_repo
from docflow.utils.ids import generate_job_id, utc_timestamp

logger = logging.getLogger("docflow.services.jobs")

_JOB_NOT_FOUND_MSG = "Job not found."

# Strong references keep fire-and-forget tasks alive until they finish.
_BACKGROUND_TASKS: set[asyncio.Task] = set()


@lru_cache(maxsize=4)
def _get_orchestrator(settings: Settings) -> PipelineOrchestrator:
  """Return the process-wide orchestrator so the stage concurrency limit is shared."""
  return PipelineOrchestrator(jobs_repo=_get_jobs_repo(settings), blobs=_get_blob_store(settings), settings=settings)


def _compute_job_ttl(settings: Settings) -> int | None:
  if settings.jobs_ttl_seconds is None:
    return None
  return int(time.time()) + settings.jobs_ttl_seconds


def _job_status_from_record(record: JobRecord) -> JobStatusResponse:
  """Convert a persisted job record into an API response payload."""

  result = None
  if record.status == JobStatus.COMPLETED:
    result = record.stage_outputs.get(str(JobStatus.GENERATING_INSIGHTS))

  return JobStatusResponse(
    job_id=record.job_id,
    status=record.status,
    progress_percent=record.progress_percent,
    is_multiple_documents=record.is_multiple_documents,
    input_documents=record.input_documents,
    stage_outputs=record.stage_outputs,
    checkpoints=[JobCheckpoint.model_validate(item) for item in record.checkpoints],
    error=JobError.model_validate(record.error) if record.error else None,
    result=result,
    result_location=record.result_location,
    logs=record.logs,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
  )


async def submit_job(request: JobCreateRequest, settings: Settings, background_tasks: BackgroundTasks) -> JobCreateResponse:
  """Create a QUEUED job and start orchestration without waiting for it."""

  if not request.documents:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one document is required.")
  if len(request.documents) > settings.max_documents_per_job:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"At most {settings.max_documents_per_job} documents can be analyzed per job.")

  repo = _get_jobs_repo(settings)
  if request.idempotency_key:
    existing = await repo.find_by_idempotency_key(request.idempotency_key)
    if existing:
      logger.info("Reusing job %s for idempotency key.", existing.job_id)
      return JobCreateResponse(job_id=existing.job_id)

  timestamp = utc_timestamp()
  record = JobRecord(
    job_id=generate_job_id(),
    input_documents=list(request.documents),
    is_multiple_documents=len(request.documents) > 1,
    status=JobStatus.QUEUED,
    created_at=timestamp,
    updated_at=timestamp,
    logs=["Job queued"],
    ttl=_compute_job_ttl(settings),
    idempotency_key=request.idempotency_key,
  )
  await repo.create_job(record)
  logger.info("Queued job %s with %d document(s).", record.job_id, len(record.input_documents))
  _kickoff_job_processing(background_tasks, record.job_id, settings)
  return JobCreateResponse(job_id=record.job_id)


async def get_job_status(job_id: str, settings: Settings) -> JobStatusResponse:
  """Return the current snapshot of a job."""

  record = await _get_jobs_repo(settings).get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  return _job_status_from_record(record)


async def _process_job_async(job_id: str, settings: Settings) -> JobRecord | None:
  """Run a queued job in-process so status updates stream to storage."""

  repo = _get_jobs_repo(settings)
  record = await repo.get_job(job_id)
  if record is None:
    logger.warning("Job %s not found for processing.", job_id)
    return None

  processor = JobProcessor(jobs_repo=repo, orchestrator=_get_orchestrator(settings), settings=settings)
  return await processor.process_job(record)


async def _dispatch_job_over_http(job_id: str, settings: Settings) -> None:
  """Hand a job to the task endpoint and fail the job when the hand-off does not go through."""

  try:
    await HttpJobDispatcher(settings).dispatch(job_id)
  except Exception as exc:  # noqa: BLE001
    logger.error("Dispatch failed for job %s: %s", job_id, exc, exc_info=True)
    await _get_orchestrator(settings).fail(job_id, JobStatus.STARTED, exc)


def _log_job_task_failure(task: asyncio.Task) -> None:
  """Log unexpected failures from background job tasks."""

  if task.cancelled():
    logger.warning("Job processing task was cancelled.")
    return
  exc = task.exception()
  if exc is not None:
    logger.error("Job processing task failed: %s", exc, exc_info=exc)


def _kickoff_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Schedule background processing so clients see status updates."""

  # External workers drive queued jobs when auto-processing is off.
  if not settings.jobs_auto_process:
    return

  if settings.job_dispatch == "http":
    work = functools.partial(_dispatch_job_over_http, settings=settings)
  else:
    work = functools.partial(_process_job_async, settings=settings)

  try:
    loop = asyncio.get_running_loop()
  except RuntimeError:
    background_tasks.add_task(work, job_id)
    return

  task = loop.create_task(work(job_id))
  _BACKGROUND_TASKS.add(task)
  task.add_done_callback(_BACKGROUND_TASKS.discard)
  task.add_done_callback(_log_job_task_failure)
