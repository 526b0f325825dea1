"""Guardrails: policy checks that bracket agent runs and tool calls."""

from reagent.guardrail.base import (
  GuardrailResult,
  InputGuardrail,
  OutputGuardrail,
  ToolGuardrailData,
  ToolInputGuardrail,
  ToolOutputGuardrail,
)
from reagent.guardrail.builtin import (
  block_topics,
  max_length,
  max_output_size,
  pii_filter,
  regex_filter,
  tool_allowlist,
  tool_blocklist,
)
from reagent.guardrail.composable import ALL, ANY, NOT, when
from reagent.guardrail.decorators import input_guardrail, output_guardrail, tool_input_guardrail, tool_output_guardrail
from reagent.guardrail.runner import GuardrailRunner, GuardrailRunnerConfiguration

__all__ = [
  # Core types
  "GuardrailResult",
  "ToolGuardrailData",
  "InputGuardrail",
  "OutputGuardrail",
  "ToolInputGuardrail",
  "ToolOutputGuardrail",
  # Runner
  "GuardrailRunner",
  "GuardrailRunnerConfiguration",
  # Decorators
  "input_guardrail",
  "output_guardrail",
  "tool_input_guardrail",
  "tool_output_guardrail",
  # Combinators
  "ALL",
  "ANY",
  "NOT",
  "when",
  # Built-ins
  "max_length",
  "block_topics",
  "regex_filter",
  "pii_filter",
  "tool_allowlist",
  "tool_blocklist",
  "max_output_size",
]
