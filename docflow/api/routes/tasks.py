from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status

from docflow.api.deps import require_task_secret
from docflow.api.models import TaskPayload
from docflow.config import Settings, get_settings
from docflow.services.jobs import _process_job_async

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


@router.post("/process-job", status_code=status.HTTP_200_OK, dependencies=[Depends(require_task_secret)])
async def process_job_task(payload: TaskPayload, background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, str]:
  """Accept a dispatched job and process it after the response is sent."""
  logger.info("Received task for job %s", payload.job_id)
  background_tasks.add_task(_process_job_async, payload.job_id, settings)
  return {"status": "accepted"}
