import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from docflow.api.models import JobCreateRequest, JobCreateResponse, JobStatusResponse
from docflow.config import Settings, get_settings
from docflow.services import jobs as job_service

router = APIRouter()
logger = logging.getLogger("docflow.api.routes.jobs")


@router.post("", response_model=JobCreateResponse)
async def create_job(  # noqa: B008
  request: JobCreateRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> JobCreateResponse:
  """Submit documents for analysis and return the new job id."""
  return await job_service.submit_job(request, settings, background_tasks)


@router.get("/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status, progress and outputs of a job."""
  return await job_service.get_job_status(job_id, settings)
