"""Read-only document access and result writes against blob storage."""

from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError
from starlette.concurrency import run_in_threadpool

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobNotFoundError(LookupError):
  """Raised when a storage key does not resolve to a blob."""


@dataclass(frozen=True)
class BlobMetadata:
  """Metadata returned for a stored blob."""

  key: str
  size_bytes: int
  content_type: str | None


class BlobStore(Protocol):
  """Opaque blob access keyed by storage key."""

  async def head(self, key: str) -> BlobMetadata | None:
    """Return blob metadata, or None when the key is missing."""

  async def read(self, key: str) -> bytes:
    """Return the blob bytes; raises BlobNotFoundError when missing."""

  async def write(self, key: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
    """Store bytes under a key and return the blob location."""


class LocalBlobStore:
  """Filesystem blob store rooted at a single directory."""

  def __init__(self, root: str | Path) -> None:
    self._root = Path(root).resolve()

  @property
  def root(self) -> Path:
    return self._root

  def _path_for(self, key: str) -> Path:
    path = (self._root / key.lstrip("/")).resolve()
    # Keys must stay inside the root directory.
    if path != self._root and self._root not in path.parents:
      raise BlobNotFoundError(f"Storage key escapes the blob root: {key}")
    return path

  def location(self, key: str) -> str:
    return self._path_for(key).as_uri()

  async def head(self, key: str) -> BlobMetadata | None:
    path = self._path_for(key)

    def _stat() -> BlobMetadata | None:
      if not path.is_file():
        return None
      content_type, _ = mimetypes.guess_type(path.name)
      return BlobMetadata(key=key, size_bytes=path.stat().st_size, content_type=content_type)

    return await run_in_threadpool(_stat)

  async def read(self, key: str) -> bytes:
    path = self._path_for(key)
    try:
      return await run_in_threadpool(path.read_bytes)
    except FileNotFoundError as exc:
      raise BlobNotFoundError(f"Blob not found: {key}") from exc

  async def write(self, key: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
    path = self._path_for(key)

    def _write() -> None:
      path.parent.mkdir(parents=True, exist_ok=True)
      path.write_bytes(data)

    await run_in_threadpool(_write)
    return self.location(key)


class S3BlobStore:
  """S3 blob store; all keys live in one bucket."""

  def __init__(self, *, bucket: str, region: str, endpoint_url: str | None = None, timeout_seconds: int = 10, client: Any | None = None) -> None:
    self._bucket = bucket
    if client is None:
      aws_kwargs: dict[str, Any] = {}
      # Local emulators accept dummy credentials.
      if endpoint_url and ("localhost" in endpoint_url or "127.0.0.1" in endpoint_url) and not os.getenv("AWS_ACCESS_KEY_ID"):
        aws_kwargs["aws_access_key_id"] = "test"
        aws_kwargs["aws_secret_access_key"] = "test"
      session = boto3.session.Session()
      client = session.client("s3", region_name=region, endpoint_url=endpoint_url, config=Config(connect_timeout=timeout_seconds, read_timeout=timeout_seconds), **aws_kwargs)
    self._client = client

  @property
  def bucket(self) -> str:
    return self._bucket

  def location(self, key: str) -> str:
    return f"s3://{self._bucket}/{key}"

  async def head(self, key: str) -> BlobMetadata | None:
    try:
      response = await run_in_threadpool(self._client.head_object, Bucket=self._bucket, Key=key)
    except ClientError as exc:
      if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
        return None
      raise
    return BlobMetadata(key=key, size_bytes=int(response.get("ContentLength", 0)), content_type=response.get("ContentType"))

  async def read(self, key: str) -> bytes:
    try:
      response = await run_in_threadpool(self._client.get_object, Bucket=self._bucket, Key=key)
    except ClientError as exc:
      if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
        raise BlobNotFoundError(f"Blob not found: {key}") from exc
      raise
    return await run_in_threadpool(response["Body"].read)

  async def write(self, key: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
    await run_in_threadpool(self._client.put_object, Bucket=self._bucket, Key=key, Body=data, ContentType=content_type)
    return self.location(key)
