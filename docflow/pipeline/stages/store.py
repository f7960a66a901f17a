"""Persist the full results document to blob storage."""

from __future__ import annotations

import json
from collections.abc import Callable

from botocore.exceptions import BotoCoreError, ClientError

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import AnalysisOutput, ComparisonOutput, JobInput, ResultPayload, StorageOutput
from docflow.pipeline.errors import StorageError
from docflow.pipeline.stages.base import StageHandler, StageOutputs
from docflow.storage.blob_store import BlobStore
from docflow.utils.ids import utc_timestamp


def results_key(prefix: str, job_id: str) -> str:
  return f"{prefix}/{job_id}/results.json" if prefix else f"{job_id}/results.json"


class StoreStage(StageHandler):
  stage = JobStatus.STORING
  error_type = StorageError

  def __init__(self, *, blobs: BlobStore, results_prefix: str, clock: Callable[[], str] = utc_timestamp) -> None:
    self._blobs = blobs
    self._results_prefix = results_prefix
    self._clock = clock

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> StorageOutput:
    insights = self.require(outputs, JobStatus.GENERATING_INSIGHTS, ResultPayload)
    analysis = self.require(outputs, JobStatus.ANALYZING, AnalysisOutput)
    comparison = outputs.get(JobStatus.COMPARING)

    stored_at = self._clock()
    document = {
      "jobId": job_input.job_id,
      "timestamp": stored_at,
      "insights": insights.to_payload(),
      "analysisResults": analysis.to_payload(),
      "comparisonResults": comparison.to_payload() if isinstance(comparison, ComparisonOutput) else None,
      "processingComplete": True,
    }
    body = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
    key = results_key(self._results_prefix, job_input.job_id)
    try:
      location = await self._blobs.write(key, body, content_type="application/json")
    except (OSError, BotoCoreError, ClientError) as exc:
      raise StorageError(f"Failed to store results at {key}: {exc}") from exc
    return StorageOutput(result_location=location, stored_at=stored_at)
