import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docflow.config import get_settings
from docflow.core.logging import _initialize_logging
from docflow.storage.factory import _get_blob_store, _get_jobs_repo


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and storage backends before serving requests."""
  settings = get_settings()
  logger = logging.getLogger("docflow.core.lifespan")
  _initialize_logging(settings)
  # Build backends eagerly so misconfiguration fails at startup.
  _get_jobs_repo(settings)
  _get_blob_store(settings)
  logger.info("Startup complete env=%s jobs_backend=%s blob_backend=%s ocr_provider=%s", settings.environment, settings.jobs_backend, settings.blob_backend, settings.ocr_provider)
  yield
  logger.info("Shutdown complete.")
