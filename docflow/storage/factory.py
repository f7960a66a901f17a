from __future__ import annotations

from functools import lru_cache

from docflow.config import Settings
from docflow.storage.blob_store import BlobStore, LocalBlobStore, S3BlobStore
from docflow.storage.dynamodb_jobs_repo import DynamoJobsRepository
from docflow.storage.jobs_repo import JobsRepository
from docflow.storage.memory_jobs_repo import InMemoryJobsRepository


@lru_cache(maxsize=4)
def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""

  # One instance per settings so the in-memory backend is shared across requests.
  if settings.jobs_backend == "dynamodb":
    return DynamoJobsRepository(
      table_name=settings.jobs_table,
      region=settings.aws_region,
      endpoint_url=settings.aws_endpoint_url,
      queue_index=settings.jobs_queue_index,
      idempotency_index=settings.jobs_idempotency_index,
    )

  return InMemoryJobsRepository()


@lru_cache(maxsize=4)
def _get_blob_store(settings: Settings) -> BlobStore:
  """Return the blob store documents are read from and results are written to."""

  if settings.blob_backend == "s3":
    if not settings.blob_bucket:
      raise ValueError("DOCFLOW_BLOB_BUCKET must be set to enable S3 blob storage.")
    return S3BlobStore(bucket=settings.blob_bucket, region=settings.aws_region, endpoint_url=settings.aws_endpoint_url)

  return LocalBlobStore(settings.blob_root)
