from __future__ import annotations

import pytest

from docflow.pipeline.contracts import DocumentRef, JobInput, ValidationOutput
from docflow.pipeline.errors import ErrorKind
from docflow.pipeline.results import Failure, Success
from docflow.pipeline.stages import ValidateStage

pytestmark = pytest.mark.anyio


def _job(*documents: DocumentRef) -> JobInput:
  return JobInput(job_id="job-1", documents=documents, is_multiple_documents=len(documents) > 1)


async def test_valid_documents_produce_details(blob_store, put_blob) -> None:
  put_blob("docs/a.pdf", b"%PDF-1.4 content")
  put_blob("docs/b.csv", b"item,price\nrack,10\n")
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)

  result = await stage.handle(_job(DocumentRef(storage_key="docs/a.pdf", declared_type="pdf"), DocumentRef(storage_key="docs/b.csv", declared_type="csv")), {})

  assert isinstance(result, Success)
  payload = result.payload
  assert isinstance(payload, ValidationOutput)
  assert payload.is_valid is True
  assert payload.message == "File validation successful"
  assert [check.textract_supported for check in payload.documents] == [True, False]
  assert payload.documents[0].size_bytes == len(b"%PDF-1.4 content")
  assert payload.documents[0].content_type == "application/pdf"


async def test_missing_blob_fails_validation(blob_store) -> None:
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)
  result = await stage.handle(_job(DocumentRef(storage_key="docs/missing.pdf", declared_type="pdf")), {})
  assert result == Failure(kind=ErrorKind.VALIDATION_ERROR, message="File not found: docs/missing.pdf", storage_key="docs/missing.pdf")


async def test_empty_blob_fails_validation(blob_store, put_blob) -> None:
  put_blob("docs/empty.pdf", b"")
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)
  result = await stage.handle(_job(DocumentRef(storage_key="docs/empty.pdf", declared_type="pdf")), {})
  assert isinstance(result, Failure)
  assert result.kind == ErrorKind.VALIDATION_ERROR
  assert "empty" in result.message


async def test_oversized_blob_fails_validation(blob_store, put_blob) -> None:
  put_blob("docs/big.pdf", b"x" * 2048)
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)
  result = await stage.handle(_job(DocumentRef(storage_key="docs/big.pdf", declared_type="pdf")), {})
  assert isinstance(result, Failure)
  assert result.message == "File size exceeds maximum allowed (2048 > 1024)"


async def test_malformed_declared_type_fails_validation(blob_store, put_blob) -> None:
  put_blob("docs/a.pdf", b"data")
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)
  result = await stage.handle(_job(DocumentRef(storage_key="docs/a.pdf", declared_type="p d f")), {})
  assert isinstance(result, Failure)
  assert result.kind == ErrorKind.VALIDATION_ERROR


async def test_unsupported_types_are_left_to_extraction(blob_store, put_blob) -> None:
  put_blob("docs/tool.exe", b"MZ")
  stage = ValidateStage(blobs=blob_store, max_file_bytes=1024)
  result = await stage.handle(_job(DocumentRef(storage_key="docs/tool.exe", declared_type=".EXE")), {})
  assert isinstance(result, Success)
  assert result.payload.documents[0].declared_type == "exe"
