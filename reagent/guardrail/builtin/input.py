"""Built-in text guardrails: max_length, block_topics, regex_filter.

Each works as an input guardrail and as an output guardrail: both roles share the
``validate(text, agent, context)`` signature.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional

from reagent.guardrail.base import GuardrailResult
from reagent.run.base import RunContext


# ------------------------------------------------------------------
# max_length
# ------------------------------------------------------------------


class _MaxLengthGuardrail:
  """Trip on text longer than a character limit."""

  def __init__(self, n: int, run_in_parallel: bool = False):
    if n < 1:
      raise ValueError("max_length requires a positive limit")
    self.name = "max_length"
    self.run_in_parallel = run_in_parallel
    self._limit = n

  async def validate(self, text: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    if len(text) > self._limit:
      return GuardrailResult.tripwire(
        f"Text exceeds length limit ({len(text)} > {self._limit})",
        output_info={"length": len(text), "limit": self._limit},
      )
    return GuardrailResult.passed()


def max_length(n: int, run_in_parallel: bool = False) -> _MaxLengthGuardrail:
  """Create a guardrail that trips on text longer than *n* characters.

  Sequential by default so oversized input is rejected before anything else runs.
  """
  return _MaxLengthGuardrail(n, run_in_parallel)


# ------------------------------------------------------------------
# block_topics
# ------------------------------------------------------------------


class _BlockTopicsGuardrail:
  """Trip on text containing any of the given topic keywords (case-insensitive)."""

  def __init__(self, topics: List[str]):
    self.name = "block_topics"
    self.run_in_parallel = True
    self._topics = [t.lower() for t in topics]

  async def validate(self, text: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    lower = text.lower()
    for topic in self._topics:
      if topic in lower:
        return GuardrailResult.tripwire(f"Blocked topic detected: {topic}", output_info={"topic": topic})
    return GuardrailResult.passed()


def block_topics(topics: List[str]) -> _BlockTopicsGuardrail:
  """Create a guardrail that trips on text containing any of *topics*."""
  return _BlockTopicsGuardrail(topics)


# ------------------------------------------------------------------
# regex_filter
# ------------------------------------------------------------------


class _RegexFilterGuardrail:
  """Trip on text matching any of the given regex patterns."""

  def __init__(self, patterns: List[str]):
    self.name = "regex_filter"
    self.run_in_parallel = True
    self._patterns = [re.compile(p) for p in patterns]

  async def validate(self, text: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    for pattern in self._patterns:
      match = pattern.search(text)
      if match:
        return GuardrailResult.tripwire(
          f"Text matches blocked pattern: {pattern.pattern}",
          output_info={"pattern": pattern.pattern, "match": match.group(0)},
        )
    return GuardrailResult.passed()


def regex_filter(patterns: List[str]) -> _RegexFilterGuardrail:
  """Create a guardrail that trips on text matching any of *patterns*."""
  return _RegexFilterGuardrail(patterns)
