"""Built-in tool guardrails: tool_allowlist, tool_blocklist, max_output_size."""

from __future__ import annotations

from typing import Set

from reagent.guardrail.base import GuardrailResult, ToolGuardrailData
from reagent.value import SendableValue


# ------------------------------------------------------------------
# tool_allowlist
# ------------------------------------------------------------------


class _ToolAllowlistGuardrail:
  """Only allow tools whose names appear in the allowlist."""

  def __init__(self, allowed: Set[str]):
    self.name = "tool_allowlist"
    self._allowed = set(allowed)

  async def validate(self, data: ToolGuardrailData) -> GuardrailResult:
    if data.tool_name in self._allowed:
      return GuardrailResult.passed()
    return GuardrailResult.tripwire(f"Tool '{data.tool_name}' is not in the allowlist")


def tool_allowlist(allowed: Set[str]) -> _ToolAllowlistGuardrail:
  """Create a tool-input guardrail that only allows the named tools."""
  return _ToolAllowlistGuardrail(allowed)


# ------------------------------------------------------------------
# tool_blocklist
# ------------------------------------------------------------------


class _ToolBlocklistGuardrail:
  """Block tools whose names appear in the blocklist."""

  def __init__(self, blocked: Set[str]):
    self.name = "tool_blocklist"
    self._blocked = set(blocked)

  async def validate(self, data: ToolGuardrailData) -> GuardrailResult:
    if data.tool_name in self._blocked:
      return GuardrailResult.tripwire(f"Tool '{data.tool_name}' is blocked")
    return GuardrailResult.passed()


def tool_blocklist(blocked: Set[str]) -> _ToolBlocklistGuardrail:
  """Create a tool-input guardrail that blocks the named tools."""
  return _ToolBlocklistGuardrail(blocked)


# ------------------------------------------------------------------
# max_output_size
# ------------------------------------------------------------------


class _MaxOutputSizeGuardrail:
  """Reject tool results whose description is longer than a character limit."""

  def __init__(self, n: int):
    if n < 1:
      raise ValueError("max_output_size requires a positive limit")
    self.name = "max_output_size"
    self._limit = n

  async def validate(self, data: ToolGuardrailData, output: SendableValue) -> GuardrailResult:
    size = len(output.description)
    if size > self._limit:
      return GuardrailResult.tripwire(
        f"Output of '{data.tool_name}' exceeds size limit ({size} > {self._limit})",
        output_info={"size": size, "limit": self._limit},
      )
    return GuardrailResult.passed()


def max_output_size(n: int) -> _MaxOutputSizeGuardrail:
  """Create a tool-output guardrail that rejects results larger than *n* characters."""
  return _MaxOutputSizeGuardrail(n)
