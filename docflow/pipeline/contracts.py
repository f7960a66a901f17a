"""Shared data contracts for the document analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ContractModel(BaseModel):
  """Base model serialized with camelCase keys for the client."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

  def to_payload(self) -> dict[str, Any]:
    """Return the JSON-safe representation stored on job records."""
    return self.model_dump(mode="json", by_alias=True)


class DocumentRef(ContractModel):
  """Immutable pointer to an uploaded document in blob storage."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

  storage_key: str = Field(min_length=1)
  declared_type: str = Field(min_length=1)
  file_name: str | None = None
  options: dict[str, str] = Field(default_factory=dict)

  @field_validator("storage_key")
  @classmethod
  def _strip_key(cls, value: str) -> str:
    stripped = value.strip()
    if not stripped:
      raise ValueError("storageKey must not be blank.")
    return stripped

  @field_validator("declared_type")
  @classmethod
  def _normalize_type(cls, value: str) -> str:
    normalized = value.strip().lower().lstrip(".")
    if not normalized:
      raise ValueError("declaredType must not be blank.")
    return normalized

  @property
  def display_name(self) -> str:
    """Return the file name when known, otherwise the storage key."""
    return self.file_name or self.storage_key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class JobInput:
  """Read-only view of a job handed to stage handlers."""

  job_id: str
  documents: tuple[DocumentRef, ...]
  is_multiple_documents: bool


class DocumentCheck(ContractModel):
  """Validation details recorded for one document."""

  storage_key: str
  declared_type: str
  size_bytes: int
  content_type: str | None = None
  textract_supported: bool = False


class ValidationOutput(ContractModel):
  """Output of the validation stage."""

  is_valid: bool = True
  message: str = "File validation successful"
  documents: list[DocumentCheck]


class ExtractionOutput(ContractModel):
  """Common output shape shared by every extractor."""

  storage_key: str
  declared_type: str
  text: str
  structured_elements: list[dict[str, Any]] | None = None
  method: str
  details: dict[str, Any] = Field(default_factory=dict)


class ExtractionStageOutput(ContractModel):
  """Extraction results for every document of a job, in submission order."""

  documents: list[ExtractionOutput]

  @property
  def merged_text(self) -> str:
    """Return the text of all documents joined in submission order."""
    return "\n\n".join(document.text for document in self.documents)


class EntitySet(ContractModel):
  """Named entities found in a document."""

  vendors: list[str] = Field(default_factory=list)
  products: list[str] = Field(default_factory=list)
  prices: list[str] = Field(default_factory=list)


class AnalysisMetadata(ContractModel):
  """Supporting statistics for an analysis."""

  word_count: int = 0
  keywords: list[str] = Field(default_factory=list)
  dates: list[str] = Field(default_factory=list)


class DocumentAnalysis(ContractModel):
  """Content analysis of one body of text."""

  storage_key: str | None = None
  document_type: str
  is_procurement_document: bool = False
  key_findings: list[str] = Field(default_factory=list)
  entities: EntitySet = Field(default_factory=EntitySet)
  price_values: list[float] = Field(default_factory=list)
  sentiment: str = "neutral"
  confidence_score: float = 0.0
  metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


class AnalysisOutput(ContractModel):
  """Output of the analysis stage: merged view plus one analysis per document."""

  combined: DocumentAnalysis
  documents: list[DocumentAnalysis]


class ComparisonOutput(ContractModel):
  """Output of the comparison stage for multi-document jobs."""

  similarities: list[str] = Field(default_factory=list)
  differences: list[str] = Field(default_factory=list)
  recommendation: str
  best_document: str | None = None


class ComparativeAnalysis(ContractModel):
  """Comparison digest attached to insights."""

  best_option: str
  key_differences: list[str] = Field(default_factory=list)
  similarities: list[str] = Field(default_factory=list)


class ResultPayload(ContractModel):
  """Result payload consumed by the client once a job completes."""

  summary: str
  key_points: list[str]
  recommendations: list[str]
  next_steps: str
  source_documents: list[DocumentRef]
  comparative_analysis: ComparativeAnalysis | None = None


class StorageOutput(ContractModel):
  """Output of the result storage stage."""

  result_location: str
  stored_at: str
