"""DOCX text extraction."""

from __future__ import annotations

import io
from typing import Any

import docx
from starlette.concurrency import run_in_threadpool

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput
from docflow.pipeline.extractors.base import text_or_placeholder
from docflow.storage.blob_store import BlobStore


def _read_docx(data: bytes) -> tuple[str, list[dict[str, Any]]]:
  document = docx.Document(io.BytesIO(data))
  paragraphs = [paragraph.text for paragraph in document.paragraphs]
  tables: list[dict[str, Any]] = []
  for index, table in enumerate(document.tables):
    rows = [[cell.text.strip() for cell in row.cells] for row in table.rows]
    tables.append({"table": index, "rows": rows})
    paragraphs.extend(" | ".join(row) for row in rows)
  text = "\n".join(line for line in paragraphs if line.strip())
  return text, tables


class DocxExtractor:
  declared_types = ("docx",)

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    data = await blobs.read(document.storage_key)
    text, tables = await run_in_threadpool(_read_docx, data)
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=text_or_placeholder(text),
      structured_elements=tables or None,
      method="docx-parser",
      details={"fileSize": len(data), "tableCount": len(tables)},
    )
