from reagent.guardrail.builtin.input import block_topics, max_length, regex_filter
from reagent.guardrail.builtin.output import pii_filter
from reagent.guardrail.builtin.tool import max_output_size, tool_allowlist, tool_blocklist

__all__ = [
  "max_length",
  "block_topics",
  "regex_filter",
  "pii_filter",
  "tool_allowlist",
  "tool_blocklist",
  "max_output_size",
]
