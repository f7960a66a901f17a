"""Per-document extraction through the extractor registry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import DocumentRef, ExtractionOutput, ExtractionStageOutput, JobInput
from docflow.pipeline.errors import ExtractionError, StageError
from docflow.pipeline.extractors.base import Extractor, ExtractorRegistry
from docflow.pipeline.stages.base import StageHandler, StageOutputs
from docflow.storage.blob_store import BlobNotFoundError, BlobStore

logger = logging.getLogger(__name__)


class ExtractStage(StageHandler):
  stage = JobStatus.EXTRACTING
  error_type = ExtractionError

  def __init__(self, *, registry: ExtractorRegistry, blobs: BlobStore) -> None:
    self._registry = registry
    self._blobs = blobs

  def select(self, documents: Sequence[DocumentRef]) -> list[tuple[DocumentRef, Extractor]]:
    """Pick one extractor per document; raises UnsupportedFileTypeError for unknown types."""
    return [(document, self._registry.resolve(document)) for document in documents]

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> ExtractionStageOutput:
    plan = self.select(job_input.documents)
    tasks = [asyncio.create_task(self._extract_one(document, extractor)) for document, extractor in plan]
    try:
      results = await asyncio.gather(*tasks)
    except BaseException:
      # Fail fast: the first failure cancels the remaining extractions.
      for task in tasks:
        task.cancel()
      await asyncio.gather(*tasks, return_exceptions=True)
      raise
    return ExtractionStageOutput(documents=list(results))

  async def _extract_one(self, document: DocumentRef, extractor: Extractor) -> ExtractionOutput:
    try:
      output = await extractor.extract(document, self._blobs)
    except StageError as exc:
      exc.storage_key = exc.storage_key or document.storage_key
      raise
    except BlobNotFoundError as exc:
      raise ExtractionError(str(exc), storage_key=document.storage_key) from exc
    except Exception as exc:  # noqa: BLE001
      raise ExtractionError(f"Failed to extract {document.declared_type} document: {exc}", storage_key=document.storage_key) from exc
    logger.debug("Extracted %d characters from %s via %s", len(output.text), document.storage_key, output.method)
    return output
