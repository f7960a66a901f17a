"""Shared FastAPI dependencies."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from docflow.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)],
  authorization: str | None = Header(default=None),
  x_docflow_task_secret: str | None = Header(default=None),
) -> None:
  """Reject internal task calls that do not carry the shared task secret."""
  # Deny by default when no secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_docflow_task_secret or "").encode(), settings.task_secret.encode())
  bearer_valid = secrets.compare_digest((authorization or "").encode(), f"Bearer {settings.task_secret}".encode())
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
