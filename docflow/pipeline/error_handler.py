"""Classify stage failures and write the terminal FAILED status."""

from __future__ import annotations

import logging

from docflow.jobs.models import JobRecord, JobStatus
from docflow.jobs.progress import JobStatusNotifier
from docflow.pipeline.errors import ErrorKind, StageError
from docflow.pipeline.results import Failure

logger = logging.getLogger(__name__)

# Default classification for exceptions that carry no kind of their own.
STAGE_ERROR_KINDS: dict[JobStatus, ErrorKind] = {
  JobStatus.STARTED: ErrorKind.VALIDATION_ERROR,
  JobStatus.VALIDATING: ErrorKind.VALIDATION_ERROR,
  JobStatus.EXTRACTING: ErrorKind.EXTRACTION_ERROR,
  JobStatus.ANALYZING: ErrorKind.ANALYSIS_ERROR,
  JobStatus.COMPARING: ErrorKind.COMPARISON_ERROR,
  JobStatus.GENERATING_INSIGHTS: ErrorKind.INSIGHT_ERROR,
  JobStatus.STORING: ErrorKind.STORAGE_ERROR,
}


def classify_failure(stage: JobStatus, cause: BaseException | Failure) -> Failure:
  """Map a stage failure onto the error taxonomy."""

  if isinstance(cause, Failure):
    return cause
  if isinstance(cause, StageError):
    return Failure(kind=cause.kind, message=cause.message, storage_key=cause.storage_key)
  kind = STAGE_ERROR_KINDS.get(stage, ErrorKind.STORAGE_ERROR)
  message = str(cause) or type(cause).__name__
  return Failure(kind=kind, message=f"{type(cause).__name__}: {message}")


class PipelineErrorHandler:
  """Turns a failed stage into exactly one terminal FAILED write."""

  def __init__(self, *, notifier: JobStatusNotifier) -> None:
    self._notifier = notifier

  async def handle(self, job_id: str, stage: JobStatus, cause: BaseException | Failure) -> JobRecord | None:
    failure = classify_failure(stage, cause)
    message = failure.message
    if failure.storage_key and failure.storage_key not in message:
      message = f"{message} (document: {failure.storage_key})"
    logger.error("Job %s failed at %s kind=%s message=%s", job_id, stage, failure.kind, message)
    return await self._notifier.fail(job_id, stage=stage, kind=failure.kind, message=message)
