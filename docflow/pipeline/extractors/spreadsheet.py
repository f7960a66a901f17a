"""Excel workbook extraction with general and bid parser modes."""

from __future__ import annotations

import io
import json
from typing import Any

import pandas as pd
from starlette.concurrency import run_in_threadpool

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput
from docflow.pipeline.errors import ExtractionError
from docflow.storage.blob_store import BlobStore

BID_SHEET_NAME = "Supplier Bid Upload"
GENERAL_PARSER = "general-parser"
BID_PARSER = "bid-parser"


def frame_to_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
  """Convert a frame to JSON-safe row records; missing cells become empty strings."""
  cleaned = frame.astype(object).where(frame.notna(), "")
  return json.loads(cleaned.to_json(orient="records", date_format="iso"))


def _resolve_parser(document: DocumentRef) -> str:
  requested = (document.options.get("parser") or "").strip().lower()
  if requested in {"bid", BID_PARSER}:
    return BID_PARSER
  return GENERAL_PARSER


def _read_workbook(data: bytes, parser: str) -> dict[str, list[dict[str, Any]]]:
  sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, engine="openpyxl")
  if parser == BID_PARSER:
    if BID_SHEET_NAME not in sheets:
      raise ExtractionError(f"Required sheet '{BID_SHEET_NAME}' not found")
    sheets = {BID_SHEET_NAME: sheets[BID_SHEET_NAME]}
  return {name: frame_to_records(frame) for name, frame in sheets.items()}


class SpreadsheetExtractor:
  declared_types = ("xlsx",)

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    parser = _resolve_parser(document)
    data = await blobs.read(document.storage_key)
    workbook = await run_in_threadpool(_read_workbook, data, parser)
    return ExtractionOutput(
      storage_key=document.storage_key,
      declared_type=document.declared_type,
      text=json.dumps(workbook, ensure_ascii=False),
      structured_elements=[{"sheet": name, "rows": rows} for name, rows in workbook.items()],
      method=f"excel-parser:{parser}",
      details={"fileSize": len(data), "sheets": list(workbook), "rowCount": sum(len(rows) for rows in workbook.values())},
    )
