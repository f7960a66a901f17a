"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from docflow.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_ONE_MEGABYTE = 1024 * 1024


@dataclass(frozen=True)
class Settings:
  """Typed settings for the document analysis service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_level: str
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  jobs_backend: str
  jobs_table: str
  jobs_queue_index: str | None
  jobs_idempotency_index: str | None
  jobs_ttl_seconds: int | None
  jobs_auto_process: bool
  blob_backend: str
  blob_root: str
  blob_bucket: str | None
  results_prefix: str
  aws_region: str
  aws_endpoint_url: str | None
  ocr_provider: str
  max_file_bytes: int
  textract_sync_max_bytes: int
  textract_poll_seconds: float
  textract_max_polls: int
  max_documents_per_job: int
  stage_concurrency_limit: int
  task_secret: str | None
  job_dispatch: str
  base_url: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("DOCFLOW_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("DOCFLOW_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: int) -> int:
  raw = os.getenv(name)
  try:
    value = int(raw) if raw not in (None, "") else default
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_optional_int(name: str) -> int | None:
  raw = os.getenv(name)
  if raw is None or raw.strip() == "":
    return None

  value = int(raw)

  if value <= 0:
    raise ValueError(f"{name} must be positive when provided.")

  return value


def _choice(name: str, default: str, allowed: set[str]) -> str:
  value = (os.getenv(name) or default).strip().lower()
  if value not in allowed:
    raise ValueError(f"{name} must be one of: {', '.join(sorted(allowed))}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DOCFLOW_ENV", "development").lower()
  debug = _parse_bool(os.getenv("DOCFLOW_DEBUG"))

  log_backup_count = int(os.getenv("DOCFLOW_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("DOCFLOW_LOG_BACKUP_COUNT must be zero or a positive integer.")

  jobs_backend = _choice("DOCFLOW_JOBS_BACKEND", "memory", {"memory", "dynamodb"})
  blob_backend = _choice("DOCFLOW_BLOB_BACKEND", "local", {"local", "s3"})
  blob_bucket = _optional_str(os.getenv("DOCFLOW_BLOB_BUCKET"))
  if blob_backend == "s3" and not blob_bucket:
    raise ValueError("DOCFLOW_BLOB_BUCKET must be set when DOCFLOW_BLOB_BACKEND is 's3'.")

  job_dispatch = _choice("DOCFLOW_JOB_DISPATCH", "inline", {"inline", "http"})
  base_url = _optional_str(os.getenv("DOCFLOW_BASE_URL"))
  if job_dispatch == "http" and not base_url:
    raise ValueError("DOCFLOW_BASE_URL must be set when DOCFLOW_JOB_DISPATCH is 'http'.")
  task_secret = _optional_str(os.getenv("DOCFLOW_TASK_SECRET"))
  if job_dispatch == "http" and not task_secret:
    raise ValueError("DOCFLOW_TASK_SECRET must be set when DOCFLOW_JOB_DISPATCH is 'http'.")

  textract_poll_seconds = float(os.getenv("DOCFLOW_TEXTRACT_POLL_SECONDS", "3"))
  if textract_poll_seconds < 0:
    raise ValueError("DOCFLOW_TEXTRACT_POLL_SECONDS must not be negative.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("DOCFLOW_ALLOWED_ORIGINS")),
    log_level=(os.getenv("DOCFLOW_LOG_LEVEL") or "INFO").strip().upper(),
    log_dir=_optional_str(os.getenv("DOCFLOW_LOG_DIR")),
    log_max_bytes=_positive_int("DOCFLOW_LOG_MAX_BYTES", 5 * _ONE_MEGABYTE),
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("DOCFLOW_LOG_HTTP_4XX")),
    jobs_backend=jobs_backend,
    jobs_table=(os.getenv("DOCFLOW_JOBS_TABLE") or "DocumentAnalysisStatus").strip(),
    jobs_queue_index=_optional_str(os.getenv("DOCFLOW_JOBS_QUEUE_INDEX")),
    jobs_idempotency_index=_optional_str(os.getenv("DOCFLOW_JOBS_IDEMPOTENCY_INDEX")),
    jobs_ttl_seconds=_parse_optional_int("DOCFLOW_JOBS_TTL_SECONDS"),
    jobs_auto_process=_parse_bool(os.getenv("DOCFLOW_JOBS_AUTO_PROCESS"), default=True),
    blob_backend=blob_backend,
    blob_root=(os.getenv("DOCFLOW_BLOB_ROOT") or "./data/blobs").strip(),
    blob_bucket=blob_bucket,
    results_prefix=(os.getenv("DOCFLOW_RESULTS_PREFIX") or "analysis-results").strip().strip("/"),
    aws_region=(os.getenv("AWS_REGION") or "us-east-1").strip(),
    aws_endpoint_url=_optional_str(os.getenv("DOCFLOW_AWS_ENDPOINT_URL")),
    ocr_provider=_choice("DOCFLOW_OCR_PROVIDER", "local", {"local", "textract"}),
    max_file_bytes=_positive_int("DOCFLOW_MAX_FILE_BYTES", 10 * _ONE_MEGABYTE),
    textract_sync_max_bytes=_positive_int("DOCFLOW_TEXTRACT_SYNC_MAX_BYTES", 5 * _ONE_MEGABYTE),
    textract_poll_seconds=textract_poll_seconds,
    textract_max_polls=_positive_int("DOCFLOW_TEXTRACT_MAX_POLLS", 100),
    max_documents_per_job=_positive_int("DOCFLOW_MAX_DOCUMENTS_PER_JOB", 10),
    stage_concurrency_limit=_positive_int("DOCFLOW_STAGE_CONCURRENCY_LIMIT", 8),
    task_secret=task_secret,
    job_dispatch=job_dispatch,
    base_url=base_url,
  )
