"""Rule-based insight generation from analysis and comparison outputs."""

from __future__ import annotations

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import AnalysisOutput, ComparativeAnalysis, ComparisonOutput, DocumentAnalysis, JobInput, ResultPayload
from docflow.pipeline.errors import InsightError
from docflow.pipeline.stages.base import StageHandler, StageOutputs

BASE_RECOMMENDATIONS = (
  "Compare pricing with industry benchmarks to ensure competitive rates",
  "Verify product specifications against your requirements",
  "Request additional documentation for missing information",
  "Confirm delivery and implementation timeframes before proceeding",
)
PROPOSAL_RECOMMENDATIONS = ("Evaluate the proposal against competitive offerings", "Check warranty terms and support conditions")
CONTRACT_RECOMMENDATIONS = ("Have legal team review terms and conditions", "Ensure SLA terms meet business requirements")


def build_summary(analysis: DocumentAnalysis, *, document_count: int) -> str:
  parts = [f"This {analysis.document_type}"]
  if analysis.entities.vendors:
    parts.append(f"from {analysis.entities.vendors[0]}")
  products = len(analysis.entities.products)
  if products:
    parts.append(f"relates to {products} product{'s' if products != 1 else ''}")
  parts.append("with pricing information" if analysis.entities.prices else "requires further review")
  summary = " ".join(parts)
  if document_count > 1:
    summary += f" ({document_count} documents analyzed)"
  return summary


def build_key_points(analysis: DocumentAnalysis, comparison: ComparisonOutput | None) -> list[str]:
  points: list[str] = []
  if analysis.sentiment == "positive":
    points.append("Document language is generally positive, suggesting a favorable proposal")
  elif analysis.sentiment == "negative":
    points.append("Document contains negative language that may indicate issues or concerns")
  else:
    points.append("Document has a neutral tone, typical for formal business communications")

  if analysis.entities.prices:
    points.append("Pricing details are explicitly mentioned and should be reviewed carefully")
  else:
    points.append("No explicit pricing was found, additional inquiry may be needed")

  word_count = analysis.metadata.word_count
  if word_count > 2000:
    points.append("Document is comprehensive with detailed information")
  elif word_count > 500:
    points.append("Document provides moderate level of detail")
  else:
    points.append("Document is brief and may lack necessary details")

  if comparison is not None:
    points.append(f"Comparison: {comparison.recommendation}")
  return points


def build_recommendations(analysis: DocumentAnalysis) -> list[str]:
  recommendations = list(BASE_RECOMMENDATIONS)
  document_type = analysis.document_type.lower()
  if "proposal" in document_type or "quote" in document_type:
    recommendations.extend(PROPOSAL_RECOMMENDATIONS)
  if "contract" in document_type:
    recommendations.extend(CONTRACT_RECOMMENDATIONS)
  return recommendations


def build_next_steps(analysis: DocumentAnalysis) -> str:
  vendors = analysis.entities.vendors
  if vendors and analysis.entities.prices:
    return f"Schedule meeting with {vendors[0]} to discuss pricing and specifications"
  if vendors:
    return f"Contact {vendors[0]} for more information"
  return "Gather additional vendor information and specifications"


class InsightsStage(StageHandler):
  stage = JobStatus.GENERATING_INSIGHTS
  error_type = InsightError

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> ResultPayload:
    analysis = self.require(outputs, JobStatus.ANALYZING, AnalysisOutput).combined
    comparison = None
    if job_input.is_multiple_documents:
      comparison = self.require(outputs, JobStatus.COMPARING, ComparisonOutput)

    comparative = None
    if comparison is not None:
      comparative = ComparativeAnalysis(best_option=comparison.recommendation, key_differences=comparison.differences, similarities=comparison.similarities)

    return ResultPayload(
      summary=build_summary(analysis, document_count=len(job_input.documents)),
      key_points=build_key_points(analysis, comparison),
      recommendations=build_recommendations(analysis),
      next_steps=build_next_steps(analysis),
      source_documents=list(job_input.documents),
      comparative_analysis=comparative,
    )
