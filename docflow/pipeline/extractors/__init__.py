"""Per-file-type extractors sharing one output shape."""

from __future__ import annotations

from typing import Any

import boto3

from docflow.config import Settings
from docflow.pipeline.extractors.base import Extractor, ExtractorRegistry
from docflow.pipeline.extractors.spreadsheet import SpreadsheetExtractor
from docflow.pipeline.extractors.tabular import CsvExtractor, PlainTextExtractor
from docflow.pipeline.extractors.textract import PdfTextExtractor, TextractExtractor
from docflow.pipeline.extractors.word import DocxExtractor


def build_extractor_registry(settings: Settings, *, textract_client: Any | None = None) -> ExtractorRegistry:
  """Build the registry for the configured OCR provider."""

  ocr: Extractor
  if settings.ocr_provider == "textract":
    client = textract_client or boto3.client("textract", region_name=settings.aws_region, endpoint_url=settings.aws_endpoint_url)
    ocr = TextractExtractor(client=client, sync_max_bytes=settings.textract_sync_max_bytes, poll_seconds=settings.textract_poll_seconds, max_polls=settings.textract_max_polls)
  else:
    ocr = PdfTextExtractor()

  return ExtractorRegistry([ocr, DocxExtractor(), SpreadsheetExtractor(), CsvExtractor(), PlainTextExtractor()])


__all__ = ["Extractor", "ExtractorRegistry", "build_extractor_registry"]
