"""Guardrails to keep DynamoDB job items within safe size limits."""

from __future__ import annotations

import copy
import json
from collections.abc import MutableMapping
from typing import Any

MAX_ITEM_BYTES = 380_000
MAX_LOG_ENTRY_BYTES = 2_000
MAX_LOG_ENTRIES = 100
MAX_STAGE_OUTPUT_BYTES = 300_000
TEXT_PREVIEW_CHARS = 4_000


def estimate_bytes(value: Any) -> int:
  """Approximate the DynamoDB item size using JSON encoding."""
  return len(json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str).encode("utf-8"))


def sanitize_logs(logs: list[str]) -> list[str]:
  """Clamp log entry lengths and total log volume."""
  trimmed_entries = [entry[:MAX_LOG_ENTRY_BYTES] for entry in logs]
  if len(trimmed_entries) > MAX_LOG_ENTRIES:
    trimmed_entries = trimmed_entries[-MAX_LOG_ENTRIES:]
  return trimmed_entries


def maybe_truncate_stage_outputs(stage_outputs: dict[str, Any], *, max_bytes: int = MAX_STAGE_OUTPUT_BYTES) -> dict[str, Any]:
  """Shrink bulky extraction payloads until the stage outputs fit the size budget.

  Extracted text is replaced by a preview and structured elements are dropped; the full
  results remain available from the stored results document.
  """
  if estimate_bytes(stage_outputs) <= max_bytes:
    return stage_outputs

  trimmed = copy.deepcopy(stage_outputs)
  extraction = trimmed.get("EXTRACTING")
  if isinstance(extraction, dict):
    for document in extraction.get("documents") or []:
      if not isinstance(document, dict):
        continue
      text = document.get("text") or ""
      if len(text) > TEXT_PREVIEW_CHARS:
        document["text"] = text[:TEXT_PREVIEW_CHARS]
        document["truncated"] = True
      if document.get("structuredElements"):
        document["structuredElements"] = None
        document["truncated"] = True

  if estimate_bytes(trimmed) > max_bytes and "EXTRACTING" in trimmed:
    trimmed["EXTRACTING"] = {"truncated": True, "message": "Extraction output exceeded the job item size limit."}

  return trimmed


def enforce_item_size_guardrails(item: MutableMapping[str, Any], *, max_bytes: int = MAX_ITEM_BYTES) -> MutableMapping[str, Any]:
  """Ensure a DynamoDB item fits within size constraints by trimming logs when necessary."""
  if "logs" in item and isinstance(item["logs"], list):
    item["logs"] = sanitize_logs(item["logs"])

  size = estimate_bytes(item)
  if size <= max_bytes:
    return item

  # Try keeping the most recent 20 logs
  logs = item.get("logs")
  if isinstance(logs, list):
    item["logs"] = logs[-20:]
    size = estimate_bytes(item)

  if size > max_bytes:
    item["logs"] = ["<logs truncated to satisfy DynamoDB item size>"]

  return item
