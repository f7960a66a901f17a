from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from docflow.config import Settings

logger = logging.getLogger(__name__)

_PROCESS_JOB_PATH = "/internal/tasks/process-job"


class HttpJobDispatcher:
  """Hands queued jobs to the internal task endpoint over HTTP."""

  def __init__(self, settings: Settings, *, timeout_seconds: float = 10.0) -> None:
    self.settings = settings
    self._timeout_seconds = timeout_seconds

  def _should_use_asgi_transport(self, base_url: str) -> bool:
    """Decide if we should route requests in-process via ASGITransport."""
    parsed = urlparse(base_url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _build_client(self, base_url: str) -> httpx.AsyncClient:
    # Internal dispatch never goes through environment proxies.
    if self._should_use_asgi_transport(base_url):
      from docflow.main import app

      transport = httpx.ASGITransport(app=app)
      return httpx.AsyncClient(transport=transport, base_url=base_url, trust_env=False, timeout=self._timeout_seconds)
    return httpx.AsyncClient(trust_env=False, timeout=self._timeout_seconds)

  def _task_headers(self) -> dict[str, str]:
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")
    return {"authorization": f"Bearer {self.settings.task_secret}"}

  async def dispatch(self, job_id: str) -> None:
    """POST the job id to the task endpoint; raises on a non-2xx response."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, required for HTTP job dispatch.")

    base_url = self.settings.base_url.rstrip("/")
    url = f"{base_url}{_PROCESS_JOB_PATH}"
    async with self._build_client(base_url) as client:
      response = await client.post(url, json={"job_id": job_id}, headers=self._task_headers())
      response.raise_for_status()
    logger.info("Dispatched job %s to %s", job_id, url)
