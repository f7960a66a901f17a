"""Pipeline contracts and stage results."""

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput, JobInput, ResultPayload
from docflow.pipeline.errors import ErrorKind, StageError
from docflow.pipeline.results import Failure, StageResult, Success

__all__ = ["DocumentRef", "ErrorKind", "ExtractionOutput", "Failure", "JobInput", "ResultPayload", "StageError", "StageResult", "Success"]
