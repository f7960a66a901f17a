from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from docflow.storage.blob_store import BlobNotFoundError, LocalBlobStore, S3BlobStore

pytestmark = pytest.mark.anyio


async def test_local_store_head_read_write(blob_store: LocalBlobStore, blob_root) -> None:
  assert await blob_store.head("docs/a.txt") is None

  location = await blob_store.write("docs/a.txt", b"hello", content_type="text/plain")

  assert location == (blob_root / "docs" / "a.txt").resolve().as_uri()
  metadata = await blob_store.head("docs/a.txt")
  assert metadata is not None
  assert metadata.size_bytes == 5
  assert metadata.content_type == "text/plain"
  assert await blob_store.read("docs/a.txt") == b"hello"


async def test_local_store_missing_blob(blob_store: LocalBlobStore) -> None:
  with pytest.raises(BlobNotFoundError):
    await blob_store.read("docs/none.txt")


async def test_local_store_rejects_keys_outside_the_root(blob_store: LocalBlobStore) -> None:
  with pytest.raises(BlobNotFoundError):
    await blob_store.read("../outside.txt")


def _client_error(code: str, operation: str) -> ClientError:
  return ClientError({"Error": {"Code": code, "Message": "missing"}}, operation)


async def test_s3_store_maps_missing_keys() -> None:
  client = MagicMock()
  client.head_object.side_effect = _client_error("404", "HeadObject")
  client.get_object.side_effect = _client_error("NoSuchKey", "GetObject")
  store = S3BlobStore(bucket="uploads", region="us-east-1", client=client)

  assert await store.head("docs/a.pdf") is None
  with pytest.raises(BlobNotFoundError):
    await store.read("docs/a.pdf")


async def test_s3_store_propagates_other_errors() -> None:
  client = MagicMock()
  client.head_object.side_effect = _client_error("AccessDenied", "HeadObject")
  store = S3BlobStore(bucket="uploads", region="us-east-1", client=client)
  with pytest.raises(ClientError):
    await store.head("docs/a.pdf")


async def test_s3_store_reads_and_writes() -> None:
  client = MagicMock()
  client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"bytes"))}
  client.head_object.return_value = {"ContentLength": 5, "ContentType": "application/pdf"}
  store = S3BlobStore(bucket="uploads", region="us-east-1", client=client)

  assert await store.read("docs/a.pdf") == b"bytes"
  metadata = await store.head("docs/a.pdf")
  assert metadata is not None
  assert metadata.size_bytes == 5
  location = await store.write("results/job-1/results.json", b"{}", content_type="application/json")
  assert location == "s3://uploads/results/job-1/results.json"
  client.put_object.assert_called_once_with(Bucket="uploads", Key="results/job-1/results.json", Body=b"{}", ContentType="application/json")
