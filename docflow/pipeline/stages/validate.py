"""Validate that every input document exists and is within limits."""

from __future__ import annotations

import asyncio
import re

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import DocumentCheck, DocumentRef, JobInput, ValidationOutput
from docflow.pipeline.errors import DocumentValidationError
from docflow.pipeline.extractors.textract import OCR_TYPES
from docflow.pipeline.stages.base import StageHandler, StageOutputs
from docflow.storage.blob_store import BlobStore

_DECLARED_TYPE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9+.-]{0,31}$")


class ValidateStage(StageHandler):
  stage = JobStatus.VALIDATING
  error_type = DocumentValidationError

  def __init__(self, *, blobs: BlobStore, max_file_bytes: int) -> None:
    self._blobs = blobs
    self._max_file_bytes = max_file_bytes

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> ValidationOutput:
    if not job_input.documents:
      raise DocumentValidationError("Job has no input documents.")
    checks = await asyncio.gather(*(self._check(document) for document in job_input.documents))
    return ValidationOutput(documents=list(checks))

  async def _check(self, document: DocumentRef) -> DocumentCheck:
    # Support for the type is decided by the extraction branch.
    if not _DECLARED_TYPE_PATTERN.match(document.declared_type):
      raise DocumentValidationError(f"Malformed declared type '{document.declared_type}'.", storage_key=document.storage_key)

    metadata = await self._blobs.head(document.storage_key)
    if metadata is None:
      raise DocumentValidationError(f"File not found: {document.storage_key}", storage_key=document.storage_key)
    if metadata.size_bytes == 0:
      raise DocumentValidationError(f"File is empty: {document.storage_key}", storage_key=document.storage_key)
    if metadata.size_bytes > self._max_file_bytes:
      raise DocumentValidationError(f"File size exceeds maximum allowed ({metadata.size_bytes} > {self._max_file_bytes})", storage_key=document.storage_key)

    return DocumentCheck(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      size_bytes=metadata.size_bytes,
      content_type=metadata.content_type,
      textract_supported=document.declared_type in OCR_TYPES,
    )
