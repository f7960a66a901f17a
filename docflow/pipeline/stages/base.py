"""Common shape of pipeline stage handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TypeVar

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import ContractModel, JobInput
from docflow.pipeline.errors import StageError
from docflow.pipeline.results import Failure, StageResult, Success

StageOutputs = Mapping[JobStatus, ContractModel]
OutputT = TypeVar("OutputT", bound=ContractModel)


class StageHandler(ABC):
  """A stateless stage: (job input, prior outputs) -> StageResult.

  Handlers never touch the job record. Expected failures are raised as ``StageError`` inside
  ``run`` and come back as ``Failure``; anything else propagates to the orchestrator.
  """

  stage: JobStatus
  error_type: type[StageError] = StageError

  async def handle(self, job_input: JobInput, outputs: StageOutputs) -> StageResult:
    try:
      payload = await self.run(job_input, outputs)
    except StageError as exc:
      return Failure(kind=exc.kind, message=exc.message, storage_key=exc.storage_key)
    return Success(payload=payload)

  @abstractmethod
  async def run(self, job_input: JobInput, outputs: StageOutputs) -> ContractModel:
    """Produce this stage's payload or raise a StageError."""

  def require(self, outputs: StageOutputs, stage: JobStatus, model_type: type[OutputT]) -> OutputT:
    """Return a prior stage's output, failing this stage when it is missing."""
    payload = outputs.get(stage)
    if not isinstance(payload, model_type):
      raise self.error_type(f"{self.stage} requires the {stage} output.")
    return payload
