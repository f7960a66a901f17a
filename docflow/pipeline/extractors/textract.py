"""OCR-class extraction for PDFs and images.

Textract is used when configured: synchronous ``DetectDocumentText`` for small documents and an
asynchronous ``StartDocumentTextDetection`` job, polled until it finishes, for large ones. Without
Textract, PDFs fall back to pdfminer's text layer and images cannot be read.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any

from pdfminer.high_level import extract_text
from starlette.concurrency import run_in_threadpool

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput
from docflow.pipeline.errors import ExtractionError
from docflow.pipeline.extractors.base import text_or_placeholder
from docflow.storage.blob_store import BlobStore, S3BlobStore

IMAGE_TYPES = ("image", "png", "jpg", "jpeg", "tif", "tiff")
OCR_TYPES = ("pdf", *IMAGE_TYPES)

logger = logging.getLogger(__name__)


def _line_texts(blocks: list[dict[str, Any]]) -> list[str]:
  return [block.get("Text", "") for block in blocks if block.get("BlockType") == "LINE"]


class TextractExtractor:
  """Extract LINE blocks with Amazon Textract."""

  declared_types = OCR_TYPES

  def __init__(self, *, client: Any, sync_max_bytes: int, poll_seconds: float, max_polls: int) -> None:
    self._client = client
    self._sync_max_bytes = sync_max_bytes
    self._poll_seconds = poll_seconds
    self._max_polls = max_polls

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    metadata = await blobs.head(document.storage_key)
    if metadata is None:
      raise ExtractionError(f"Document not found: {document.storage_key}", storage_key=document.storage_key)

    if metadata.size_bytes < self._sync_max_bytes:
      data = await blobs.read(document.storage_key)
      response = await run_in_threadpool(self._client.detect_document_text, Document={"Bytes": data})
      lines = _line_texts(response.get("Blocks") or [])
      method = "textract-sync"
    else:
      if not isinstance(blobs, S3BlobStore):
        raise ExtractionError("Large documents require S3 blob storage for asynchronous Textract.", storage_key=document.storage_key)
      lines = await self._detect_async(blobs.bucket, document.storage_key)
      method = "textract-async"

    text = "\n".join(lines)
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=text_or_placeholder(text),
      structured_elements=[{"type": "LINE", "text": line} for line in lines] or None,
      method=method,
      details={"fileSize": metadata.size_bytes, "lineCount": len(lines)},
    )

  async def _detect_async(self, bucket: str, key: str) -> list[str]:
    started = await run_in_threadpool(self._client.start_document_text_detection, DocumentLocation={"S3Object": {"Bucket": bucket, "Name": key}})
    textract_job_id = started["JobId"]
    logger.info("Started Textract job %s for %s", textract_job_id, key)

    for _ in range(self._max_polls):
      await asyncio.sleep(self._poll_seconds)
      response = await run_in_threadpool(self._client.get_document_text_detection, JobId=textract_job_id)
      job_status = response.get("JobStatus")
      if job_status == "IN_PROGRESS":
        continue
      if job_status != "SUCCEEDED":
        raise ExtractionError(f"Textract job failed: {response.get('StatusMessage') or job_status}", storage_key=key)

      lines = _line_texts(response.get("Blocks") or [])
      next_token = response.get("NextToken")
      while next_token:
        page = await run_in_threadpool(self._client.get_document_text_detection, JobId=textract_job_id, NextToken=next_token)
        lines.extend(_line_texts(page.get("Blocks") or []))
        next_token = page.get("NextToken")
      return lines

    raise ExtractionError(f"Textract job {textract_job_id} did not finish after {self._max_polls} polls.", storage_key=key)


def _read_pdf_pages(data: bytes) -> list[str]:
  text = extract_text(io.BytesIO(data))
  pages = text.split("\x0c")
  # pdfminer terminates every page with a form feed.
  if pages and not pages[-1].strip():
    pages = pages[:-1]
  return pages


class PdfTextExtractor:
  """Read the embedded text layer of PDFs with pdfminer."""

  declared_types = OCR_TYPES

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    if document.declared_type in IMAGE_TYPES:
      raise ExtractionError("Image documents require the textract OCR provider.", storage_key=document.storage_key)

    data = await blobs.read(document.storage_key)
    pages = await run_in_threadpool(_read_pdf_pages, data)
    text = "\n".join(page.strip() for page in pages if page.strip())
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=text_or_placeholder(text),
      structured_elements=[{"page": index + 1, "text": page.strip()} for index, page in enumerate(pages)] or None,
      method="pdfminer",
      details={"fileSize": len(data), "pageCount": len(pages)},
    )
