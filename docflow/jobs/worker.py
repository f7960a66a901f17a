"""Background processor for queued document analysis jobs."""

from __future__ import annotations

import logging

from docflow.config import Settings
from docflow.jobs.models import JobRecord, JobStatus
from docflow.pipeline.orchestrator import PipelineOrchestrator
from docflow.storage.jobs_repo import JobsRepository


class JobProcessor:
  """Coordinates execution of queued jobs."""

  def __init__(self, *, jobs_repo: JobsRepository, orchestrator: PipelineOrchestrator, settings: Settings) -> None:
    self._jobs_repo = jobs_repo
    self._orchestrator = orchestrator
    self._settings = settings
    self._logger = logging.getLogger(__name__)

  async def process_job(self, job: JobRecord) -> JobRecord | None:
    """Run a queued job through the pipeline; other statuses are left alone."""

    current = await self._jobs_repo.get_job(job.job_id)
    if current is None:
      self._logger.warning("Job %s disappeared before processing.", job.job_id)
      return None
    if current.status != JobStatus.QUEUED:
      self._logger.info("Skipping job %s with status %s.", current.job_id, current.status)
      return current

    # Only the pickup that wins the QUEUED -> STARTED claim runs the pipeline.
    claimed = await self._jobs_repo.claim_job(current.job_id)
    if claimed is None:
      self._logger.info("Job %s was claimed by another worker.", current.job_id)
      return await self._jobs_repo.get_job(current.job_id)

    self._logger.info("Processing job %s with %d document(s).", claimed.job_id, len(claimed.input_documents))
    try:
      return await self._orchestrator.run(claimed)
    except Exception as exc:  # noqa: BLE001
      # Status writes failed mid-run; record the failure at the last known stage.
      self._logger.error("Job %s aborted: %s", current.job_id, exc, exc_info=True)
      latest = await self._jobs_repo.get_job(current.job_id)
      stage = latest.status if latest is not None and not latest.is_terminal else JobStatus.STARTED
      return await self._orchestrator.fail(current.job_id, stage, exc)

  async def process_queue(self, limit: int = 5) -> list[JobRecord]:
    """Process a small batch of queued jobs, oldest first."""

    processed: list[JobRecord] = []
    for job in await self._jobs_repo.find_queued(limit=limit):
      record = await self.process_job(job)
      if record is not None:
        processed.append(record)
    return processed
