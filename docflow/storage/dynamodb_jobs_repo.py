"""DynamoDB-backed repository for document analysis jobs."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.client import Config
from botocore.exceptions import ClientError
from starlette.concurrency import run_in_threadpool

from docflow.jobs.guardrails import enforce_item_size_guardrails, maybe_truncate_stage_outputs, sanitize_logs
from docflow.jobs.models import JobRecord, JobStatus
from docflow.pipeline.contracts import DocumentRef
from docflow.utils.ids import utc_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DynamoJobKeys:
  """Key structure for a job item."""

  pk: str
  sk: str


def _serialize_for_dynamodb(obj: Any) -> Any:
  """Recursively convert float types to Decimal for DynamoDB storage."""
  if isinstance(obj, float):
    # Convert via string to preserve precision
    return Decimal(str(obj))
  if isinstance(obj, dict):
    return {key: _serialize_for_dynamodb(value) for key, value in obj.items()}
  if isinstance(obj, list | tuple):
    return [_serialize_for_dynamodb(item) for item in obj]
  return obj


def _deserialize_from_dynamodb(obj: Any) -> Any:
  """Recursively convert Decimal values back to int or float."""
  if isinstance(obj, Decimal):
    return int(obj) if obj % 1 == 0 else float(obj)
  if isinstance(obj, dict):
    return {key: _deserialize_from_dynamodb(value) for key, value in obj.items()}
  if isinstance(obj, list):
    return [_deserialize_from_dynamodb(item) for item in obj]
  return obj


class DynamoJobsRepository:
  """Persist jobs to DynamoDB."""

  def __init__(
    self,
    *,
    table_name: str,
    region: str,
    endpoint_url: str | None,
    queue_index: str | None,
    idempotency_index: str | None,
    timeout_seconds: int = 10,
    resource: Any | None = None,
  ) -> None:
    if resource is None:
      aws_kwargs: dict[str, Any] = {}
      if endpoint_url and ("localhost" in endpoint_url or "127.0.0.1" in endpoint_url) and not os.getenv("AWS_ACCESS_KEY_ID"):
        aws_kwargs["aws_access_key_id"] = "test"
        aws_kwargs["aws_secret_access_key"] = "test"
      session = boto3.session.Session()
      resource = session.resource("dynamodb", region_name=region, endpoint_url=endpoint_url, config=Config(connect_timeout=timeout_seconds, read_timeout=timeout_seconds), **aws_kwargs)

    self._resource = resource
    self._table_name = table_name
    self._table = resource.Table(table_name)
    self._queue_index = queue_index
    self._idempotency_index = idempotency_index
    # Emulators start empty; real tables are provisioned with the stack.
    if endpoint_url:
      self.ensure_table()

  def ensure_table(self) -> None:
    """Idempotently create the jobs table with its secondary indexes."""
    attribute_definitions = [{"AttributeName": "pk", "AttributeType": "S"}, {"AttributeName": "sk", "AttributeType": "S"}]
    indexes: list[dict[str, Any]] = []
    for index_name, prefix in ((self._queue_index, "gsi1"), (self._idempotency_index, "gsi2")):
      if not index_name:
        continue
      attribute_definitions.append({"AttributeName": f"{prefix}_pk", "AttributeType": "S"})
      attribute_definitions.append({"AttributeName": f"{prefix}_sk", "AttributeType": "S"})
      indexes.append(
        {
          "IndexName": index_name,
          "KeySchema": [{"AttributeName": f"{prefix}_pk", "KeyType": "HASH"}, {"AttributeName": f"{prefix}_sk", "KeyType": "RANGE"}],
          "Projection": {"ProjectionType": "ALL"},
        }
      )

    create_kwargs: dict[str, Any] = {
      "TableName": self._table_name,
      "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
      "AttributeDefinitions": attribute_definitions,
      "BillingMode": "PAY_PER_REQUEST",
    }
    if indexes:
      create_kwargs["GlobalSecondaryIndexes"] = indexes

    try:
      table = self._resource.create_table(**create_kwargs)
      logger.info("Creating table %s...", self._table_name)
      table.wait_until_exists()
      logger.info("Table %s is now ACTIVE.", self._table_name)
    except ClientError as exc:
      if exc.response["Error"]["Code"] != "ResourceInUseException":
        logger.error("Failed to create table %s: %s", self._table_name, exc)
        raise
      logger.debug("Table %s already exists.", self._table_name)

  async def create_job(self, record: JobRecord) -> None:
    item = enforce_item_size_guardrails(self._record_to_item(record))
    await run_in_threadpool(self._table.put_item, Item=item, ConditionExpression="attribute_not_exists(pk)")

  async def get_job(self, job_id: str) -> JobRecord | None:
    keys = self._job_keys(job_id)
    response = await run_in_threadpool(self._table.get_item, Key={"pk": keys.pk, "sk": keys.sk}, ConsistentRead=True)
    item = response.get("Item")
    if not item:
      return None
    return self._item_to_record(item)

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress_percent: int | None = None,
    stage_outputs: dict[str, Any] | None = None,
    checkpoints: list[dict[str, Any]] | None = None,
    error: dict[str, Any] | None = None,
    logs: list[str] | None = None,
    result_location: str | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> JobRecord | None:
    current = await self.get_job(job_id)
    if current is None:
      return None

    updated_record = JobRecord(
      job_id=current.job_id,
      input_documents=current.input_documents,
      is_multiple_documents=current.is_multiple_documents,
      status=status or current.status,
      created_at=current.created_at,
      updated_at=updated_at or utc_timestamp(),
      progress_percent=progress_percent if progress_percent is not None else current.progress_percent,
      stage_outputs=stage_outputs if stage_outputs is not None else current.stage_outputs,
      checkpoints=checkpoints if checkpoints is not None else current.checkpoints,
      error=error if error is not None else current.error,
      logs=logs if logs is not None else current.logs,
      result_location=result_location if result_location is not None else current.result_location,
      completed_at=completed_at if completed_at is not None else current.completed_at,
      ttl=current.ttl,
      idempotency_key=current.idempotency_key,
    )

    item = enforce_item_size_guardrails(self._record_to_item(updated_record))
    await run_in_threadpool(self._table.put_item, Item=item)
    return updated_record

  async def claim_job(self, job_id: str, *, updated_at: str | None = None) -> JobRecord | None:
    keys = self._job_keys(job_id)
    try:
      response = await run_in_threadpool(
        self._table.update_item,
        Key={"pk": keys.pk, "sk": keys.sk},
        UpdateExpression="SET #status = :started, updated_at = :updated_at",
        ConditionExpression=Attr("status").eq(str(JobStatus.QUEUED)),
        ExpressionAttributeNames={"#status": "status"},
        ExpressionAttributeValues={":started": str(JobStatus.STARTED), ":updated_at": updated_at or utc_timestamp()},
        ReturnValues="ALL_NEW",
      )
    except ClientError as exc:
      if exc.response["Error"]["Code"] == "ConditionalCheckFailedException":
        logger.info("Job %s is not queued; claim skipped.", job_id)
        return None
      raise
    return self._item_to_record(response["Attributes"])

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    if not self._queue_index:
      return []
    response = await run_in_threadpool(
      self._table.query,
      IndexName=self._queue_index,
      KeyConditionExpression=Key("gsi1_pk").eq("JOB"),
      FilterExpression=Attr("status").eq(str(JobStatus.QUEUED)),
      Limit=limit,
      ScanIndexForward=True,
    )
    return [self._item_to_record(item) for item in response.get("Items", [])]

  async def find_by_idempotency_key(self, idempotency_key: str) -> JobRecord | None:
    if not self._idempotency_index:
      return None
    response = await run_in_threadpool(self._table.query, IndexName=self._idempotency_index, KeyConditionExpression=Key("gsi2_pk").eq(idempotency_key), Limit=1)
    items = response.get("Items", [])
    if not items:
      return None
    return self._item_to_record(items[0])

  def _job_keys(self, job_id: str) -> DynamoJobKeys:
    pk = f"JOB#{job_id}"
    return DynamoJobKeys(pk=pk, sk=pk)

  def _record_to_item(self, record: JobRecord) -> dict[str, Any]:
    keys = self._job_keys(record.job_id)
    item: dict[str, Any] = {
      "pk": keys.pk,
      "sk": keys.sk,
      "job_id": record.job_id,
      "input_documents": [document.to_payload() for document in record.input_documents],
      "is_multiple_documents": record.is_multiple_documents,
      "status": str(record.status),
      "progress_percent": record.progress_percent,
      "stage_outputs": _serialize_for_dynamodb(maybe_truncate_stage_outputs(record.stage_outputs)),
      "checkpoints": _serialize_for_dynamodb(record.checkpoints),
      "error": record.error,
      "logs": sanitize_logs(record.logs),
      "result_location": record.result_location,
      "created_at": record.created_at,
      "updated_at": record.updated_at,
      "completed_at": record.completed_at,
      "ttl": record.ttl,
      "idempotency_key": record.idempotency_key,
      "gsi1_pk": "JOB",
      "gsi1_sk": f"{record.created_at}#{record.job_id}",
    }
    if record.idempotency_key and self._idempotency_index:
      item["gsi2_pk"] = record.idempotency_key
      item["gsi2_sk"] = record.created_at
    return {key: value for key, value in item.items() if value is not None}

  def _item_to_record(self, item: dict[str, Any]) -> JobRecord:
    data = _deserialize_from_dynamodb(item)
    return JobRecord(
      job_id=data["job_id"],
      input_documents=[DocumentRef.model_validate(document) for document in data.get("input_documents") or []],
      is_multiple_documents=bool(data.get("is_multiple_documents", False)),
      status=JobStatus(data["status"]),
      created_at=data["created_at"],
      updated_at=data["updated_at"],
      progress_percent=int(data.get("progress_percent") or 0),
      stage_outputs=data.get("stage_outputs") or {},
      checkpoints=data.get("checkpoints") or [],
      error=data.get("error"),
      logs=data.get("logs") or [],
      result_location=data.get("result_location"),
      completed_at=data.get("completed_at"),
      ttl=data.get("ttl"),
      idempotency_key=data.get("idempotency_key"),
    )
