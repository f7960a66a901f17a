from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from docflow.jobs.models import STATUS_ORDER, JobRecord, JobStatus
from docflow.jobs.worker import JobProcessor
from docflow.pipeline.contracts import DocumentRef, JobInput
from docflow.pipeline.orchestrator import PipelineOrchestrator, next_stage
from docflow.pipeline.stages import StageHandler, StageOutputs, ValidateStage
from docflow.storage.memory_jobs_repo import InMemoryJobsRepository

pytestmark = pytest.mark.anyio


class RecordingJobsRepository(InMemoryJobsRepository):
  """Keeps every (status, progress) pair written to a job."""

  def __init__(self) -> None:
    super().__init__()
    self.history: list[tuple[JobStatus, int]] = []

  async def update_job(self, job_id: str, **kwargs: Any) -> JobRecord | None:
    record = await super().update_job(job_id, **kwargs)
    if record is not None:
      self.history.append((record.status, record.progress_percent))
    return record


class FlakyStartJobsRepository(RecordingJobsRepository):
  """Fails the first pre-stage write for VALIDATING."""

  def __init__(self) -> None:
    super().__init__()
    self.failed = False

  async def update_job(self, job_id: str, **kwargs: Any) -> JobRecord | None:
    if not self.failed and kwargs.get("status") == JobStatus.VALIDATING and kwargs.get("stage_outputs") is None:
      self.failed = True
      raise RuntimeError("throttled")
    return await super().update_job(job_id, **kwargs)


class YieldingJobsRepository(InMemoryJobsRepository):
  """Yields to the event loop on every read, like a threadpool-backed store."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    await asyncio.sleep(0)
    return await super().get_job(job_id)


class CountingValidateStage(ValidateStage):
  def __init__(self, **kwargs: Any) -> None:
    super().__init__(**kwargs)
    self.calls = 0

  async def run(self, job_input: JobInput, outputs: StageOutputs):
    self.calls += 1
    return await super().run(job_input, outputs)


class ExplodingStage(StageHandler):
  stage = JobStatus.ANALYZING

  async def run(self, job_input: JobInput, outputs: StageOutputs):
    raise KeyError("combined")


def _pdf(key: str) -> DocumentRef:
  return DocumentRef(storage_key=key, declared_type="pdf", file_name=key.rsplit("/", 1)[-1])


async def _run(settings, repo, blob_store, job: JobRecord, **kwargs) -> JobRecord:
  await repo.create_job(job)
  orchestrator = PipelineOrchestrator(jobs_repo=repo, blobs=blob_store, settings=settings, **kwargs)
  record = await orchestrator.run(job)
  assert record is not None
  return record


def _assert_forward_only(history: list[tuple[JobStatus, int]]) -> None:
  ranks = [STATUS_ORDER.index(status) for status, _ in history if status != JobStatus.FAILED]
  assert ranks == sorted(ranks)
  percents = [percent for _, percent in history]
  assert percents == sorted(percents)
  for status, percent in history:
    assert (percent == 100) == (status == JobStatus.COMPLETED)


def test_branching_after_analysis() -> None:
  single = JobInput(job_id="j", documents=(_pdf("a.pdf"),), is_multiple_documents=False)
  multi = JobInput(job_id="j", documents=(_pdf("a.pdf"), _pdf("b.pdf")), is_multiple_documents=True)
  assert next_stage(JobStatus.ANALYZING, single) == JobStatus.GENERATING_INSIGHTS
  assert next_stage(JobStatus.ANALYZING, multi) == JobStatus.COMPARING
  assert next_stage(JobStatus.STORING, single) == JobStatus.COMPLETED
  with pytest.raises(ValueError):
    next_stage(JobStatus.COMPLETED, single)


async def test_single_document_job_skips_comparison(settings, blob_store, blob_root, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = RecordingJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([_pdf("docs/acme.pdf")]))

  assert record.status == JobStatus.COMPLETED
  assert record.progress_percent == 100
  assert "COMPARING" not in record.stage_outputs
  assert list(record.stage_outputs) == ["VALIDATING", "EXTRACTING", "ANALYZING", "GENERATING_INSIGHTS", "STORING"]
  assert [item["stage"] for item in record.checkpoints] == ["STARTED", "VALIDATING", "EXTRACTING", "ANALYZING", "GENERATING_INSIGHTS", "STORING", "COMPLETED"]
  _assert_forward_only(repo.history)

  results_path = blob_root / settings.results_prefix / "job-1" / "results.json"
  assert record.result_location == results_path.resolve().as_uri()
  stored = json.loads(results_path.read_text(encoding="utf-8"))
  assert stored["insights"] == record.stage_outputs["GENERATING_INSIGHTS"]


async def test_two_proposals_are_compared_before_insights(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  put_blob("docs/globex.pdf", proposal_pdfs[1])
  repo = RecordingJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([_pdf("docs/acme.pdf"), _pdf("docs/globex.pdf")]))

  assert record.status == JobStatus.COMPLETED
  stages = [item["stage"] for item in record.checkpoints]
  assert stages.index("COMPARING") < stages.index("GENERATING_INSIGHTS")
  comparison = record.stage_outputs["COMPARING"]
  assert comparison["bestDocument"] == "docs/acme.pdf"

  result = record.stage_outputs["GENERATING_INSIGHTS"]
  assert result["summary"]
  assert len(result["keyPoints"]) >= 1
  assert [item["storageKey"] for item in result["sourceDocuments"]] == ["docs/acme.pdf", "docs/globex.pdf"]
  assert result["comparativeAnalysis"]["bestOption"] == comparison["recommendation"]
  _assert_forward_only(repo.history)


async def test_unsupported_type_fails_before_extraction(settings, blob_store, put_blob, queued_job) -> None:
  put_blob("docs/tool.exe", b"MZ\x90\x00")
  repo = RecordingJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([DocumentRef(storage_key="docs/tool.exe", declared_type="exe")]))

  assert record.status == JobStatus.FAILED
  assert record.error is not None
  assert record.error["kind"] == "UnsupportedFileType"
  assert record.error["stage"] == "EXTRACTING"
  assert "EXTRACTING" not in record.stage_outputs
  assert "VALIDATING" in record.stage_outputs
  assert record.progress_percent < 100
  _assert_forward_only(repo.history)


async def test_one_failed_extraction_fails_the_job(settings, blob_store, put_blob, make_docx, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  put_blob("docs/broken.docx", b"this is not a zip archive")
  repo = RecordingJobsRepository()
  documents = [_pdf("docs/acme.pdf"), DocumentRef(storage_key="docs/broken.docx", declared_type="docx")]

  record = await _run(settings, repo, blob_store, queued_job(documents))

  assert record.status == JobStatus.FAILED
  assert record.error is not None
  assert record.error["stage"] == "EXTRACTING"
  assert record.error["kind"] == "ExtractionError"
  assert "docs/broken.docx" in record.error["message"]
  assert "ANALYZING" not in record.stage_outputs
  assert "EXTRACTING" not in record.stage_outputs


async def test_unexpected_handler_errors_are_classified_by_stage(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = RecordingJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([_pdf("docs/acme.pdf")]), handlers={JobStatus.ANALYZING: ExplodingStage()})

  assert record.status == JobStatus.FAILED
  assert record.error == {"stage": "ANALYZING", "kind": "AnalysisError", "message": "KeyError: 'combined'"}
  # Outputs from completed stages stay visible.
  assert list(record.stage_outputs) == ["VALIDATING", "EXTRACTING"]


async def test_missing_document_fails_validation(settings, blob_store, queued_job) -> None:
  repo = RecordingJobsRepository()
  record = await _run(settings, repo, blob_store, queued_job([_pdf("docs/missing.pdf")]))
  assert record.status == JobStatus.FAILED
  assert record.error is not None
  assert record.error["stage"] == "VALIDATING"
  assert record.error["kind"] == "ValidationError"
  assert record.stage_outputs == {}


async def test_pre_stage_write_failure_does_not_fail_the_job(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = FlakyStartJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([_pdf("docs/acme.pdf")]))

  assert repo.failed is True
  assert record.status == JobStatus.COMPLETED


async def test_status_is_stable_after_completion(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = RecordingJobsRepository()
  orchestrator = PipelineOrchestrator(jobs_repo=repo, blobs=blob_store, settings=settings)
  job = queued_job([_pdf("docs/acme.pdf")])
  await repo.create_job(job)

  await orchestrator.run(job)
  first = await repo.get_job("job-1")
  await orchestrator.notifier.notify("job-1", JobStatus.STORING, 92)
  await orchestrator.fail("job-1", JobStatus.STORING, RuntimeError("late"))
  second = await repo.get_job("job-1")

  assert first is not None
  assert first == second
  assert first.status == JobStatus.COMPLETED


async def test_processor_runs_only_queued_jobs(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = InMemoryJobsRepository()
  orchestrator = PipelineOrchestrator(jobs_repo=repo, blobs=blob_store, settings=settings)
  processor = JobProcessor(jobs_repo=repo, orchestrator=orchestrator, settings=settings)
  await repo.create_job(queued_job([_pdf("docs/acme.pdf")], job_id="job-a", created_at="2026-01-01T00:00:01Z"))
  await repo.create_job(queued_job([_pdf("docs/acme.pdf")], job_id="job-b", created_at="2026-01-01T00:00:02Z"))

  processed = await processor.process_queue(limit=5)
  assert [record.job_id for record in processed] == ["job-a", "job-b"]
  assert all(record.status == JobStatus.COMPLETED for record in processed)

  # A second pickup of a finished job leaves it alone.
  done = await repo.get_job("job-a")
  assert done is not None
  assert await processor.process_job(done) == done
  assert await processor.process_queue() == []


async def test_overlapping_pickups_run_the_job_once(settings, blob_store, put_blob, proposal_pdfs, queued_job) -> None:
  put_blob("docs/acme.pdf", proposal_pdfs[0])
  repo = YieldingJobsRepository()
  validate = CountingValidateStage(blobs=blob_store, max_file_bytes=settings.max_file_bytes)
  orchestrator = PipelineOrchestrator(jobs_repo=repo, blobs=blob_store, settings=settings, handlers={JobStatus.VALIDATING: validate})
  processor = JobProcessor(jobs_repo=repo, orchestrator=orchestrator, settings=settings)
  job = queued_job([_pdf("docs/acme.pdf")])
  await repo.create_job(job)

  first, second = await asyncio.gather(processor.process_job(job), processor.process_job(job))

  assert validate.calls == 1
  final = await repo.get_job("job-1")
  assert final is not None
  assert final.status == JobStatus.COMPLETED
  assert [item["stage"] for item in final.checkpoints].count("STARTED") == 1
  assert first is not None
  assert second is not None
  assert JobStatus.COMPLETED in {first.status, second.status}


async def test_document_without_text_completes_like_a_scanned_pdf(settings, blob_store, put_blob, make_docx, queued_job) -> None:
  put_blob("docs/blank.docx", make_docx(["", "   "]))
  repo = RecordingJobsRepository()

  record = await _run(settings, repo, blob_store, queued_job([DocumentRef(storage_key="docs/blank.docx", declared_type="docx")]))

  assert record.status == JobStatus.COMPLETED
  assert record.error is None
  _assert_forward_only(repo.history)
