"""Shared fixtures: settings, storage backends and generated fixture documents."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from dataclasses import replace
from pathlib import Path

import docx
import pytest
from openpyxl import Workbook

from docflow.config import Settings, get_settings
from docflow.jobs.models import JobRecord, JobStatus
from docflow.pipeline.contracts import DocumentRef
from docflow.services.jobs import _get_orchestrator
from docflow.storage.blob_store import LocalBlobStore
from docflow.storage.factory import _get_blob_store, _get_jobs_repo
from docflow.storage.memory_jobs_repo import InMemoryJobsRepository


def _escape_pdf_text(value: str) -> str:
  return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(lines: list[str]) -> bytes:
  """Build a single-page PDF with one Helvetica text line per entry."""
  operations = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
  for line in lines:
    operations.append(f"({_escape_pdf_text(line)}) Tj T*")
  operations.append("ET")
  stream = "\n".join(operations).encode("latin-1")

  objects = [
    b"<< /Type /Catalog /Pages 2 0 R >>",
    b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
    b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
    b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
    b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
  ]

  body = bytearray(b"%PDF-1.4\n")
  offsets = []
  for number, content in enumerate(objects, start=1):
    offsets.append(len(body))
    body += f"{number} 0 obj\n".encode() + content + b"\nendobj\n"

  xref_offset = len(body)
  body += f"xref\n0 {len(objects) + 1}\n".encode()
  body += b"0000000000 65535 f \n"
  for offset in offsets:
    body += f"{offset:010d} 00000 n \n".encode()
  body += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode()
  return bytes(body)


def build_docx(paragraphs: list[str], table: list[list[str]] | None = None) -> bytes:
  document = docx.Document()
  for paragraph in paragraphs:
    document.add_paragraph(paragraph)
  if table:
    grid = document.add_table(rows=len(table), cols=len(table[0]))
    for row_index, row in enumerate(table):
      for col_index, value in enumerate(row):
        grid.cell(row_index, col_index).text = value
  buffer = io.BytesIO()
  document.save(buffer)
  return buffer.getvalue()


def build_xlsx(sheets: dict[str, list[list[object]]]) -> bytes:
  workbook = Workbook()
  workbook.remove(workbook.active)
  for name, rows in sheets.items():
    sheet = workbook.create_sheet(title=name)
    for row in rows:
      sheet.append(row)
  buffer = io.BytesIO()
  workbook.save(buffer)
  return buffer.getvalue()


PROPOSAL_A_LINES = [
  "Vendor Proposal from Acme Corp",
  "Acme Corp offers the Dell Server R740 with reliable support.",
  "Total price: $12,500.00",
  "Delivery expected by 03/15/2026.",
]
PROPOSAL_B_LINES = [
  "Vendor Proposal from Globex Inc",
  "Globex Inc offers the Dell Server R740 with excellent service.",
  "Total price: $15,000.00",
  "Delivery expected by 04/01/2026.",
]


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
def _clear_cached_backends() -> Iterator[None]:
  caches = (get_settings, _get_jobs_repo, _get_blob_store, _get_orchestrator)
  for cached in caches:
    cached.cache_clear()
  yield
  for cached in caches:
    cached.cache_clear()


@pytest.fixture
def blob_root(tmp_path: Path) -> Path:
  root = tmp_path / "blobs"
  root.mkdir()
  return root


@pytest.fixture
def settings(blob_root: Path) -> Settings:
  return replace(
    get_settings(),
    jobs_backend="memory",
    jobs_auto_process=True,
    job_dispatch="inline",
    blob_backend="local",
    blob_root=str(blob_root),
    ocr_provider="local",
    task_secret=None,
  )


@pytest.fixture
def blob_store(blob_root: Path) -> LocalBlobStore:
  return LocalBlobStore(blob_root)


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def put_blob(blob_root: Path) -> Callable[[str, bytes], str]:
  """Write a blob under the local root and return its storage key."""

  def _put(key: str, data: bytes) -> str:
    path = blob_root / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return key

  return _put


@pytest.fixture
def queued_job() -> Callable[..., JobRecord]:
  def _build(documents: list[DocumentRef], job_id: str = "job-1", created_at: str = "2026-01-01T00:00:00Z") -> JobRecord:
    return JobRecord(
      job_id=job_id,
      input_documents=list(documents),
      is_multiple_documents=len(documents) > 1,
      status=JobStatus.QUEUED,
      created_at=created_at,
      updated_at=created_at,
      logs=["Job queued"],
    )

  return _build


@pytest.fixture
def make_pdf() -> Callable[[list[str]], bytes]:
  return build_pdf


@pytest.fixture
def make_docx() -> Callable[..., bytes]:
  return build_docx


@pytest.fixture
def make_xlsx() -> Callable[[dict[str, list[list[object]]]], bytes]:
  return build_xlsx


@pytest.fixture
def proposal_pdfs() -> tuple[bytes, bytes]:
  return build_pdf(PROPOSAL_A_LINES), build_pdf(PROPOSAL_B_LINES)
