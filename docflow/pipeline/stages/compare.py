"""Cross-document comparison for multi-document jobs."""

from __future__ import annotations

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import AnalysisOutput, ComparisonOutput, DocumentAnalysis, JobInput
from docflow.pipeline.errors import ComparisonError
from docflow.pipeline.stages.base import StageHandler, StageOutputs

NO_RECOMMENDATION = "Further analysis needed to determine best option"


def _shared(values: list[list[str]]) -> list[str]:
  if not values:
    return []
  common = set(values[0]).intersection(*values[1:])
  return [value for value in values[0] if value in common]


class CompareStage(StageHandler):
  stage = JobStatus.COMPARING
  error_type = ComparisonError

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> ComparisonOutput:
    analysis = self.require(outputs, JobStatus.ANALYZING, AnalysisOutput)
    if len(analysis.documents) < 2:
      raise ComparisonError("Comparison requires at least two analyzed documents.")

    names = {document.storage_key: document.display_name for document in job_input.documents}

    def label(item: DocumentAnalysis) -> str:
      return names.get(item.storage_key or "", item.storage_key or "document")

    documents = analysis.documents
    similarities: list[str] = []
    differences: list[str] = []

    shared_vendors = _shared([item.entities.vendors for item in documents])
    if shared_vendors:
      similarities.append(f"All documents mention vendors: {', '.join(shared_vendors[:3])}")
    shared_products = _shared([item.entities.products for item in documents])
    if shared_products:
      similarities.append(f"All documents reference products: {', '.join(shared_products[:3])}")
    shared_keywords = _shared([item.metadata.keywords for item in documents])
    if shared_keywords:
      similarities.append(f"Common themes: {', '.join(shared_keywords[:5])}")

    document_types = {item.document_type for item in documents}
    if len(document_types) == 1:
      similarities.append(f"All documents are classified as {documents[0].document_type}")
    else:
      differences.append("Document types differ: " + ", ".join(f"{label(item)} is a {item.document_type}" for item in documents))

    sentiments = {item.sentiment for item in documents}
    if len(sentiments) > 1:
      differences.append("Tone differs: " + ", ".join(f"{label(item)} is {item.sentiment}" for item in documents))

    priced = [(item, max(item.price_values)) for item in documents if item.price_values]
    best_document: str | None = None
    recommendation = NO_RECOMMENDATION
    if len(priced) >= 2:
      priced.sort(key=lambda pair: pair[1])
      (cheapest, low), (dearest, high) = priced[0], priced[-1]
      if high > low and low > 0:
        percent = round((high - low) / low * 100)
        differences.append(f"{label(dearest)} quotes {percent}% more than {label(cheapest)} ({high:,.2f} vs {low:,.2f})")
        best_document = cheapest.storage_key
        recommendation = f"{label(cheapest)} appears to offer better value based on price"
      else:
        similarities.append(f"Documents quote comparable prices (highest {high:,.2f})")
    elif len(priced) == 1:
      differences.append(f"Only {label(priced[0][0])} contains pricing information")

    word_counts = [(item, item.metadata.word_count) for item in documents]
    most_detailed = max(word_counts, key=lambda pair: pair[1])
    least_detailed = min(word_counts, key=lambda pair: pair[1])
    if most_detailed[1] > least_detailed[1]:
      differences.append(f"{label(most_detailed[0])} is the most detailed document ({most_detailed[1]} words vs {least_detailed[1]})")

    if best_document is None:
      positive = [item for item in documents if item.sentiment == "positive"]
      if len(positive) == 1:
        best_document = positive[0].storage_key
        recommendation = f"{label(positive[0])} appears most favorable based on its language"

    return ComparisonOutput(similarities=similarities, differences=differences, recommendation=recommendation, best_document=best_document)
