"""State machine driving a document analysis job from STARTED to a terminal status."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from docflow.config import Settings
from docflow.jobs.models import STAGE_PROGRESS, JobRecord, JobStatus
from docflow.jobs.progress import JobStatusNotifier
from docflow.pipeline.contracts import ContractModel, JobInput, StorageOutput
from docflow.pipeline.error_handler import PipelineErrorHandler, classify_failure
from docflow.pipeline.errors import StageError
from docflow.pipeline.extractors import ExtractorRegistry, build_extractor_registry
from docflow.pipeline.results import Failure, StageResult
from docflow.pipeline.stages import AnalyzeStage, CompareStage, ExtractStage, InsightsStage, StageHandler, StoreStage, ValidateStage
from docflow.storage.blob_store import BlobStore
from docflow.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

# Fixed transitions; ANALYZING is the only state whose successor depends on the job.
_LINEAR_TRANSITIONS: dict[JobStatus, JobStatus] = {
  JobStatus.STARTED: JobStatus.VALIDATING,
  JobStatus.VALIDATING: JobStatus.EXTRACTING,
  JobStatus.EXTRACTING: JobStatus.ANALYZING,
  JobStatus.COMPARING: JobStatus.GENERATING_INSIGHTS,
  JobStatus.GENERATING_INSIGHTS: JobStatus.STORING,
  JobStatus.STORING: JobStatus.COMPLETED,
}


def next_stage(stage: JobStatus, job_input: JobInput) -> JobStatus:
  """Return the state that follows a successfully completed stage."""

  if stage is JobStatus.ANALYZING:
    return JobStatus.COMPARING if job_input.is_multiple_documents else JobStatus.GENERATING_INSIGHTS
  try:
    return _LINEAR_TRANSITIONS[stage]
  except KeyError as exc:
    raise ValueError(f"No transition defined from {stage}.") from exc


class PipelineOrchestrator:
  """Runs jobs through the stage graph, one stage at a time.

  The orchestrator is the only writer of job records: status goes through the notifier before
  and after each stage, and failures go through the error handler exactly once. Jobs are
  independent; a shared semaphore bounds simultaneous stage-handler invocations across jobs.
  """

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    blobs: BlobStore,
    settings: Settings,
    registry: ExtractorRegistry | None = None,
    handlers: Mapping[JobStatus, StageHandler] | None = None,
  ) -> None:
    self._notifier = JobStatusNotifier(jobs_repo=jobs_repo)
    self._error_handler = PipelineErrorHandler(notifier=self._notifier)
    self._limiter = asyncio.Semaphore(settings.stage_concurrency_limit)
    self._extract = ExtractStage(registry=registry or build_extractor_registry(settings), blobs=blobs)
    default_handlers: dict[JobStatus, StageHandler] = {
      JobStatus.VALIDATING: ValidateStage(blobs=blobs, max_file_bytes=settings.max_file_bytes),
      JobStatus.EXTRACTING: self._extract,
      JobStatus.ANALYZING: AnalyzeStage(),
      JobStatus.COMPARING: CompareStage(),
      JobStatus.GENERATING_INSIGHTS: InsightsStage(),
      JobStatus.STORING: StoreStage(blobs=blobs, results_prefix=settings.results_prefix),
    }
    default_handlers.update(handlers or {})
    self._handlers = default_handlers

  @property
  def notifier(self) -> JobStatusNotifier:
    return self._notifier

  async def run(self, job: JobRecord) -> JobRecord | None:
    """Drive a job to COMPLETED or FAILED and return the final record."""

    if job.is_terminal:
      logger.info("Job %s already %s; nothing to run.", job.job_id, job.status)
      return job

    job_input = JobInput(job_id=job.job_id, documents=tuple(job.input_documents), is_multiple_documents=job.is_multiple_documents)
    record = await self._notifier.notify(job.job_id, JobStatus.STARTED, 0, message="Job started")
    if record is None or record.is_terminal:
      return record

    outputs: dict[JobStatus, ContractModel] = {}
    stage = JobStatus.VALIDATING
    while stage is not JobStatus.COMPLETED:
      result = await self._run_stage(stage, job_input, outputs)
      if isinstance(result, Failure):
        return await self._error_handler.handle(job.job_id, stage, result)

      outputs[stage] = result.payload
      record = await self._notifier.complete_stage(job.job_id, stage, STAGE_PROGRESS[stage].done, result.payload.to_payload(), message=f"{stage} completed")
      if record is None or record.is_terminal:
        logger.warning("Job %s stopped after %s; record missing or terminal.", job.job_id, stage)
        return record
      logger.info("Job %s finished %s", job.job_id, stage)
      stage = next_stage(stage, job_input)

    storage = outputs[JobStatus.STORING]
    result_location = storage.result_location if isinstance(storage, StorageOutput) else None
    logger.info("Job %s completed; results at %s", job.job_id, result_location)
    return await self._notifier.complete(job.job_id, result_location=result_location, message="Job completed")

  async def fail(self, job_id: str, stage: JobStatus, cause: BaseException | Failure) -> JobRecord | None:
    """Route a failure raised outside a stage handler to the error handler."""
    return await self._error_handler.handle(job_id, stage, cause)

  async def _run_stage(self, stage: JobStatus, job_input: JobInput, outputs: Mapping[JobStatus, ContractModel]) -> StageResult:
    handler = self._handlers[stage]

    if stage is JobStatus.EXTRACTING:
      # Choice node: every document needs an extractor before any extraction starts.
      try:
        self._extract.select(job_input.documents)
      except StageError as exc:
        return classify_failure(stage, exc)

    await self._notify_start(job_input.job_id, stage)
    logger.info("Job %s starting %s", job_input.job_id, stage)
    try:
      async with self._limiter:
        return await handler.handle(job_input, outputs)
    except Exception as exc:  # noqa: BLE001
      logger.error("Stage %s raised for job %s", stage, job_input.job_id, exc_info=True)
      return classify_failure(stage, exc)

  async def _notify_start(self, job_id: str, stage: JobStatus) -> None:
    # Best-effort progress; the post-stage write is the durable checkpoint.
    try:
      await self._notifier.notify(job_id, stage, STAGE_PROGRESS[stage].start, message=f"{stage} started")
    except Exception:  # noqa: BLE001
      logger.warning("Pre-stage status write failed for job %s at %s", job_id, stage, exc_info=True)
