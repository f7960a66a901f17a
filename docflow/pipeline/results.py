"""Explicit stage results returned by every stage handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from docflow.pipeline.contracts import ContractModel
from docflow.pipeline.errors import ErrorKind


@dataclass(frozen=True)
class Success:
  """A stage finished and produced its payload."""

  payload: ContractModel


@dataclass(frozen=True)
class Failure:
  """A stage failed with a classified error."""

  kind: ErrorKind
  message: str
  storage_key: str | None = None


StageResult: TypeAlias = Success | Failure
