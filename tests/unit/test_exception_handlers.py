"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from docflow.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "documents", 0, "declaredType"), "msg": "Value error, declaredType must not be blank.", "input": " ", "ctx": {"error": ValueError("declaredType must not be blank."), "input": " "}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "documents", 0, "declaredType"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: declaredType must not be blank."
  assert "input" not in sanitized[0]["ctx"]


def test_error_payload_includes_request_id_when_known() -> None:
  assert _error_payload("Job not found.", request_id="req-1") == {"detail": "Job not found.", "requestId": "req-1"}
  assert _error_payload("Job not found.") == {"detail": "Job not found."}
