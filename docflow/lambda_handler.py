import asyncio
from typing import Any

from mangum import Mangum

from docflow.config import get_settings
from docflow.jobs.worker import JobProcessor
from docflow.main import app
from docflow.services.jobs import _get_orchestrator
from docflow.storage.factory import _get_jobs_repo

handler = Mangum(app)


def process_jobs_handler(_event: dict[str, Any] | None = None, _context: Any | None = None) -> dict[str, Any]:
  """Lambda entrypoint for queued job processing."""

  async def _process() -> dict[str, Any]:
    settings = get_settings()
    processor = JobProcessor(jobs_repo=_get_jobs_repo(settings), orchestrator=_get_orchestrator(settings), settings=settings)
    limit = 5
    if isinstance(_event, dict) and isinstance(_event.get("limit"), int) and _event["limit"] > 0:
      limit = _event["limit"]
    processed = await processor.process_queue(limit=limit)
    return {"processedJobIds": [job.job_id for job in processed]}

  return asyncio.run(_process())
