"""Extractor interface and the registry keyed by declared file type."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from docflow.pipeline.contracts import DocumentRef, ExtractionOutput
from docflow.pipeline.errors import UnsupportedFileTypeError
from docflow.storage.blob_store import BlobStore

EMPTY_TEXT_PLACEHOLDER = "No text content was extracted from the document. It might be scanned as images or protected."


def text_or_placeholder(text: str) -> str:
  """Return the extracted text, or the shared placeholder when nothing readable came out."""
  return text if text.strip() else EMPTY_TEXT_PLACEHOLDER


class Extractor(Protocol):
  """Turns one stored document into the common extraction output."""

  declared_types: tuple[str, ...]

  async def extract(self, document: DocumentRef, blobs: BlobStore) -> ExtractionOutput:
    """Extract text and optional structured elements from a document."""


class ExtractorRegistry:
  """Resolve extractors by declared type; unknown types are unsupported."""

  def __init__(self, extractors: Iterable[Extractor] = ()) -> None:
    self._extractors: dict[str, Extractor] = {}
    for extractor in extractors:
      self.register(extractor)

  def register(self, extractor: Extractor) -> None:
    for declared_type in extractor.declared_types:
      self._extractors[declared_type.lower()] = extractor

  def supports(self, declared_type: str) -> bool:
    return declared_type.lower() in self._extractors

  @property
  def supported_types(self) -> tuple[str, ...]:
    return tuple(sorted(self._extractors))

  def resolve(self, document: DocumentRef) -> Extractor:
    extractor = self._extractors.get(document.declared_type)
    if extractor is None:
      supported = ", ".join(self.supported_types)
      raise UnsupportedFileTypeError(f"File type '{document.declared_type}' is not supported. Supported types: {supported}", storage_key=document.storage_key)
    return extractor
