from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from docflow.pipeline.contracts import DocumentRef
from docflow.pipeline.errors import ExtractionError
from docflow.pipeline.extractors.base import EMPTY_TEXT_PLACEHOLDER
from docflow.pipeline.extractors.textract import TextractExtractor
from docflow.storage.blob_store import S3BlobStore

pytestmark = pytest.mark.anyio


def _lines(*texts: str) -> list[dict[str, str]]:
  blocks = [{"BlockType": "PAGE"}]
  for text in texts:
    blocks.append({"BlockType": "LINE", "Text": text})
    blocks.append({"BlockType": "WORD", "Text": text.split()[0]})
  return blocks


def _extractor(client: MagicMock, *, sync_max_bytes: int = 1024) -> TextractExtractor:
  return TextractExtractor(client=client, sync_max_bytes=sync_max_bytes, poll_seconds=0, max_polls=5)


async def test_small_documents_use_synchronous_detection(blob_store, put_blob) -> None:
  key = put_blob("scans/invoice.png", b"png-bytes")
  client = MagicMock()
  client.detect_document_text.return_value = {"Blocks": _lines("Invoice 1001", "Amount due $300.00")}

  output = await _extractor(client).extract(DocumentRef(storage_key=key, declared_type="png"), blob_store)

  client.detect_document_text.assert_called_once_with(Document={"Bytes": b"png-bytes"})
  assert output.text == "Invoice 1001\nAmount due $300.00"
  assert output.method == "textract-sync"
  assert output.details == {"fileSize": 9, "lineCount": 2}


async def test_blank_detection_uses_placeholder(blob_store, put_blob) -> None:
  key = put_blob("scans/blank.png", b"png-bytes")
  client = MagicMock()
  client.detect_document_text.return_value = {"Blocks": [{"BlockType": "PAGE"}]}
  output = await _extractor(client).extract(DocumentRef(storage_key=key, declared_type="png"), blob_store)
  assert output.text == EMPTY_TEXT_PLACEHOLDER
  assert output.structured_elements is None


async def test_missing_document_fails_extraction(blob_store) -> None:
  with pytest.raises(ExtractionError):
    await _extractor(MagicMock()).extract(DocumentRef(storage_key="scans/none.png", declared_type="png"), blob_store)


async def test_large_documents_poll_and_paginate() -> None:
  s3_client = MagicMock()
  s3_client.head_object.return_value = {"ContentLength": 4096, "ContentType": "application/pdf"}
  blobs = S3BlobStore(bucket="uploads", region="us-east-1", client=s3_client)

  client = MagicMock()
  client.start_document_text_detection.return_value = {"JobId": "tx-1"}
  client.get_document_text_detection.side_effect = [
    {"JobStatus": "IN_PROGRESS"},
    {"JobStatus": "SUCCEEDED", "Blocks": _lines("Page one"), "NextToken": "t-2"},
    {"JobStatus": "SUCCEEDED", "Blocks": _lines("Page two")},
  ]

  output = await _extractor(client).extract(DocumentRef(storage_key="docs/big.pdf", declared_type="pdf"), blobs)

  client.start_document_text_detection.assert_called_once_with(DocumentLocation={"S3Object": {"Bucket": "uploads", "Name": "docs/big.pdf"}})
  assert client.get_document_text_detection.call_args_list[-1].kwargs == {"JobId": "tx-1", "NextToken": "t-2"}
  assert output.text == "Page one\nPage two"
  assert output.method == "textract-async"


async def test_failed_textract_job_raises() -> None:
  s3_client = MagicMock()
  s3_client.head_object.return_value = {"ContentLength": 4096}
  blobs = S3BlobStore(bucket="uploads", region="us-east-1", client=s3_client)
  client = MagicMock()
  client.start_document_text_detection.return_value = {"JobId": "tx-2"}
  client.get_document_text_detection.return_value = {"JobStatus": "FAILED", "StatusMessage": "Unsupported document"}

  with pytest.raises(ExtractionError, match="Unsupported document"):
    await _extractor(client).extract(DocumentRef(storage_key="docs/big.pdf", declared_type="pdf"), blobs)


async def test_textract_job_that_never_finishes_raises() -> None:
  s3_client = MagicMock()
  s3_client.head_object.return_value = {"ContentLength": 4096}
  blobs = S3BlobStore(bucket="uploads", region="us-east-1", client=s3_client)
  client = MagicMock()
  client.start_document_text_detection.return_value = {"JobId": "tx-3"}
  client.get_document_text_detection.return_value = {"JobStatus": "IN_PROGRESS"}

  with pytest.raises(ExtractionError, match="did not finish"):
    await _extractor(client).extract(DocumentRef(storage_key="docs/big.pdf", declared_type="pdf"), blobs)
  assert client.get_document_text_detection.call_count == 5


async def test_large_documents_need_s3(blob_store, put_blob) -> None:
  key = put_blob("docs/big.pdf", b"x" * 2048)
  with pytest.raises(ExtractionError, match="S3"):
    await _extractor(MagicMock()).extract(DocumentRef(storage_key=key, declared_type="pdf"), blob_store)
