"""Typed failures raised by pipeline stages."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
  """Failure categories recorded on failed jobs."""

  VALIDATION_ERROR = "ValidationError"
  UNSUPPORTED_FILE_TYPE = "UnsupportedFileType"
  EXTRACTION_ERROR = "ExtractionError"
  ANALYSIS_ERROR = "AnalysisError"
  COMPARISON_ERROR = "ComparisonError"
  INSIGHT_ERROR = "InsightError"
  STORAGE_ERROR = "StorageError"


class StageError(Exception):
  """Base class for expected stage failures carrying an error kind."""

  kind: ErrorKind = ErrorKind.VALIDATION_ERROR

  def __init__(self, message: str, *, storage_key: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.storage_key = storage_key


class DocumentValidationError(StageError):
  kind = ErrorKind.VALIDATION_ERROR


class UnsupportedFileTypeError(StageError):
  kind = ErrorKind.UNSUPPORTED_FILE_TYPE


class ExtractionError(StageError):
  kind = ErrorKind.EXTRACTION_ERROR


class AnalysisError(StageError):
  kind = ErrorKind.ANALYSIS_ERROR


class ComparisonError(StageError):
  kind = ErrorKind.COMPARISON_ERROR


class InsightError(StageError):
  kind = ErrorKind.INSIGHT_ERROR


class StorageError(StageError):
  kind = ErrorKind.STORAGE_ERROR
