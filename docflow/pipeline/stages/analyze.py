"""Rule-based content analysis of extracted text."""

from __future__ import annotations

import re
from collections import Counter

from docflow.jobs.models import JobStatus
from docflow.pipeline.contracts import AnalysisMetadata, AnalysisOutput, DocumentAnalysis, EntitySet, ExtractionStageOutput, JobInput
from docflow.pipeline.errors import AnalysisError
from docflow.pipeline.stages.base import StageHandler, StageOutputs

CONFIDENCE_SCORE = 0.85
MAX_KEYWORDS = 10

STOP_WORDS = frozenset({"the", "and", "a", "to", "in", "of", "for", "is", "on", "that", "this", "with", "as", "by"})
PROCUREMENT_TERMS = ("purchase", "vendor", "supplier", "bid", "quote", "proposal", "contract", "price", "cost", "rfp", "rfq")
POSITIVE_WORDS = ("excellent", "good", "best", "great", "high quality", "reliable", "recommended", "positive", "optimal", "efficient")
NEGATIVE_WORDS = ("poor", "bad", "worst", "issues", "problems", "concerns", "delay", "expensive", "overpriced", "unreliable")

# Checked in order; first match wins.
DOCUMENT_TYPE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
  (("proposal", "quote"), "Vendor Proposal"),
  (("contract", "agreement"), "Contract Document"),
  (("invoice", "payment"), "Invoice"),
  (("specification", "spec ", "specs"), "Technical Specification"),
  (("rfp", "request for proposal"), "RFP Document"),
)
DEFAULT_DOCUMENT_TYPE = "Procurement Document"

VENDOR_PATTERNS = (
  re.compile(r"(?:[A-Z][a-z]+ )?[A-Z][a-z]+ (?:Inc|LLC|Ltd|Corp|Corporation)\b\.?"),
  re.compile(r"(?:[A-Z][a-z]+ )?Technologies\b"),
  re.compile(r"(?:[A-Z][a-z]+ )?Systems\b"),
)
PRICE_PATTERN = re.compile(r"\$\s?[\d,]+(?:\.\d{2})?|\d{1,3}(?:,\d{3})*(?:\.\d{2})?\s(?:USD|dollars)")
DATE_PATTERNS = (
  re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
  re.compile(r"\b\d{1,2}-\d{1,2}-\d{2,4}\b"),
  re.compile(r"\b[A-Z][a-z]{2,8} \d{1,2},? \d{4}\b"),
  re.compile(r"\bQ[1-4] \d{4}\b"),
)
PRODUCT_PATTERNS = (
  re.compile(r"[A-Z][a-z]+ Rack [A-Z0-9-]+"),
  re.compile(r"[A-Z][a-z]+ Server [A-Z0-9-]+"),
  re.compile(r"[A-Z][a-z]+ (?:Router|Switch|Firewall) [A-Z0-9-]+"),
  re.compile(r"[A-Z][a-z]+ (?:Storage|Array) [A-Z0-9-]+"),
  re.compile(r"[A-Z][a-z]+ (?:Cooling|UPS|PDU) [A-Z0-9-]+"),
)


def _unique_matches(patterns: tuple[re.Pattern[str], ...], text: str) -> list[str]:
  found: dict[str, None] = {}
  for pattern in patterns:
    for match in pattern.finditer(text):
      found.setdefault(match.group(0).strip(), None)
  return list(found)


def determine_document_type(lower_text: str) -> str:
  for needles, label in DOCUMENT_TYPE_RULES:
    if any(needle in lower_text for needle in needles):
      return label
  return DEFAULT_DOCUMENT_TYPE


def count_words(text: str) -> int:
  return len(text.split())


def extract_keywords(lower_text: str) -> list[str]:
  """Return words longer than two characters, most frequent first."""
  words = [word for word in re.split(r"\W+", lower_text) if len(word) > 2 and word not in STOP_WORDS]
  return [word for word, _ in Counter(words).most_common()]


def is_procurement_related(lower_text: str) -> bool:
  return any(term in lower_text for term in PROCUREMENT_TERMS)


def extract_vendors(text: str) -> list[str]:
  return _unique_matches(VENDOR_PATTERNS, text)


def extract_prices(text: str) -> list[tuple[str, float]]:
  prices: list[tuple[str, float]] = []
  for match in PRICE_PATTERN.finditer(text):
    raw = match.group(0)
    digits = re.sub(r"[^\d.]", "", raw)
    try:
      prices.append((raw, float(digits)))
    except ValueError:
      continue
  return prices


def extract_dates(text: str) -> list[str]:
  return _unique_matches(DATE_PATTERNS, text)


def extract_products(text: str) -> list[str]:
  return _unique_matches(PRODUCT_PATTERNS, text)


def calculate_sentiment(lower_text: str) -> str:
  positive = sum(len(re.findall(rf"\b{re.escape(word)}\b", lower_text)) for word in POSITIVE_WORDS)
  negative = sum(len(re.findall(rf"\b{re.escape(word)}\b", lower_text)) for word in NEGATIVE_WORDS)
  if positive > negative * 1.5:
    return "positive"
  if negative > positive * 1.5:
    return "negative"
  return "neutral"


def _preview(items: list[str], limit: int) -> str:
  suffix = "..." if len(items) > limit else ""
  return f"{', '.join(items[:limit])}{suffix}"


def generate_key_findings(*, document_type: str, vendors: list[str], prices: list[str], dates: list[str], is_procurement: bool) -> list[str]:
  findings = [f"This document appears to be a {document_type.lower()}"]
  if vendors:
    findings.append(f"Mentions vendors: {_preview(vendors, 3)}")
  if prices:
    findings.append(f"Contains pricing information: {_preview(prices, 3)}")
  if dates:
    findings.append(f"References dates: {_preview(dates, 2)}")
  if is_procurement:
    findings.append("Contains procurement-related terminology")
  return findings


def analyze_text(text: str, *, storage_key: str | None = None) -> DocumentAnalysis:
  """Analyze one body of text."""
  lower_text = text.lower()
  document_type = determine_document_type(lower_text)
  is_procurement = is_procurement_related(lower_text)
  vendors = extract_vendors(text)
  prices = extract_prices(text)
  dates = extract_dates(text)
  raw_prices = [raw for raw, _ in prices]

  return DocumentAnalysis(
    storage_key=storage_key,
    document_type=document_type,
    is_procurement_document=is_procurement,
    key_findings=generate_key_findings(document_type=document_type, vendors=vendors, prices=raw_prices, dates=dates, is_procurement=is_procurement),
    entities=EntitySet(vendors=vendors, products=extract_products(text), prices=raw_prices),
    price_values=[value for _, value in prices],
    sentiment=calculate_sentiment(lower_text),
    confidence_score=CONFIDENCE_SCORE,
    metadata=AnalysisMetadata(word_count=count_words(text), keywords=extract_keywords(lower_text)[:MAX_KEYWORDS], dates=dates),
  )


class AnalyzeStage(StageHandler):
  stage = JobStatus.ANALYZING
  error_type = AnalysisError

  async def run(self, job_input: JobInput, outputs: StageOutputs) -> AnalysisOutput:
    extraction = self.require(outputs, JobStatus.EXTRACTING, ExtractionStageOutput)
    merged_text = extraction.merged_text
    if not merged_text.strip():
      raise AnalysisError("No text content provided for analysis")

    return AnalysisOutput(
      combined=analyze_text(merged_text),
      documents=[analyze_text(document.text, storage_key=document.storage_key) for document in extraction.documents],
    )
