"""CSV and plain-text extraction."""

from __future__ import annotations

import io
import json

import pandas as pd
from starlette.concurrency import run_in_threadpool

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput
from docflow.pipeline.extractors.base import text_or_placeholder
from docflow.pipeline.extractors.spreadsheet import frame_to_records
from docflow.storage.blob_store import BlobStore


def _read_csv(data: bytes) -> list[dict]:
  frame = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
  return frame_to_records(frame)


class CsvExtractor:
  declared_types = ("csv",)

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    data = await blobs.read(document.storage_key)
    rows = await run_in_threadpool(_read_csv, data)
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=json.dumps(rows, ensure_ascii=False),
      structured_elements=rows,
      method="csv-parser",
      details={"fileSize": len(data), "rowCount": len(rows)},
    )


class PlainTextExtractor:
  declared_types = ("txt",)

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    data = await blobs.read(document.storage_key)
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=text_or_placeholder(data.decode("utf-8", errors="replace")),
      method="text",
      details={"fileSize": len(data)},
    )
