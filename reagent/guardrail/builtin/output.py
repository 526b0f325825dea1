"""Built-in PII guardrail: pii_filter."""

from __future__ import annotations

import re
from typing import Any, List, Optional

from reagent.guardrail.base import GuardrailResult
from reagent.run.base import RunContext

# ------------------------------------------------------------------
# PII regex patterns
# ------------------------------------------------------------------

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
_PHONE_RE = re.compile(r"\b(?:\+?1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}\b")
_SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_CREDIT_CARD_RE = re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b")

# More specific patterns first
_PII_PATTERNS = [
  (_CREDIT_CARD_RE, "credit_card"),
  (_SSN_RE, "ssn"),
  (_EMAIL_RE, "email"),
  (_PHONE_RE, "phone"),
]


class _PIIFilterGuardrail:
  """Detect PII in input or model output."""

  def __init__(self) -> None:
    self.name = "pii_filter"
    self.run_in_parallel = True

  async def validate(self, text: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    found: List[str] = []
    remaining = text
    for pattern, kind in _PII_PATTERNS:
      if pattern.search(remaining):
        found.append(kind)
        # Mask matches so a card number is not also counted as a phone number.
        remaining = pattern.sub(" ", remaining)
    if not found:
      return GuardrailResult.passed()
    return GuardrailResult.tripwire(f"PII detected: {', '.join(found)}", output_info={"pii_types": found})


def pii_filter() -> _PIIFilterGuardrail:
  """Create a guardrail that trips when text contains emails, phone numbers, SSNs or card numbers."""
  return _PIIFilterGuardrail()
