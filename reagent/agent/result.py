"""Run results: tool calls, tool results, token usage and the AgentResult builder."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from reagent.provider.base import TokenUsage
from reagent.value import SendableValue, describe_arguments


@dataclass(frozen=True)
class ToolCall:
  """One tool invocation requested by the model. ``id`` is assigned at dispatch time."""

  tool_name: str
  arguments: Mapping[str, SendableValue] = field(default_factory=dict)
  id: str = field(default_factory=lambda: str(uuid4()))

  @property
  def call_str(self) -> str:
    return f"{self.tool_name}({describe_arguments(self.arguments)})"

  def to_dict(self) -> Dict[str, Any]:
    return {
      "id": self.id,
      "tool_name": self.tool_name,
      "arguments": {k: v.to_python() for k, v in self.arguments.items()},
    }


@dataclass(frozen=True)
class ToolResult:
  """Outcome of exactly one dispatched :class:`ToolCall`.

  Either ``output`` (success) or ``error`` (failure) is set. Build with
  :meth:`success` or :meth:`failure`.
  """

  call_id: str
  is_success: bool
  output: Optional[SendableValue] = None
  error: Optional[str] = None
  duration: float = 0.0

  @staticmethod
  def success(call_id: str, output: SendableValue, duration: float) -> "ToolResult":
    return ToolResult(call_id=call_id, is_success=True, output=output, duration=duration)

  @staticmethod
  def failure(call_id: str, error: str, duration: float) -> "ToolResult":
    return ToolResult(call_id=call_id, is_success=False, error=error, duration=duration)

  def to_dict(self) -> Dict[str, Any]:
    data: Dict[str, Any] = {"call_id": self.call_id, "is_success": self.is_success, "duration": self.duration}
    if self.is_success and self.output is not None:
      data["output"] = self.output.to_python()
    else:
      data["error"] = self.error
    return data


@dataclass(frozen=True)
class AgentResult:
  """
  Immutable snapshot of a completed run.

  Attributes:
    output: Final answer text.
    tool_calls: Every tool call dispatched, in order.
    tool_results: One result per tool call, in order.
    iteration_count: Loop iterations consumed.
    duration: Wall-clock seconds.
    token_usage: Accumulated usage when the provider reports it.
    metadata: Structured extras (e.g. ``invalid_responses``, ``errors``).
  """

  output: str
  tool_calls: List[ToolCall] = field(default_factory=list)
  tool_results: List[ToolResult] = field(default_factory=list)
  iteration_count: int = 0
  duration: float = 0.0
  token_usage: Optional[TokenUsage] = None
  metadata: Dict[str, SendableValue] = field(default_factory=dict)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "output": self.output,
      "tool_calls": [c.to_dict() for c in self.tool_calls],
      "tool_results": [r.to_dict() for r in self.tool_results],
      "iteration_count": self.iteration_count,
      "duration": self.duration,
      "token_usage": self.token_usage.to_dict() if self.token_usage else None,
      "metadata": {k: v.to_python() for k, v in self.metadata.items()},
    }


class AgentResultBuilder:
  """Mutable accumulator for one run. Owned by a single loop; never shared across tasks.

  Example::

      builder = AgentResultBuilder()
      builder.start()
      builder.add_tool_call(call)
      result = builder.set_output("done").build()
  """

  def __init__(self) -> None:
    self._output = ""
    self._tool_calls: List[ToolCall] = []
    self._tool_results: List[ToolResult] = []
    self._iteration_count = 0
    self._start_time: Optional[float] = None
    self._duration: Optional[float] = None
    self._token_usage: Optional[TokenUsage] = None
    self._metadata: Dict[str, SendableValue] = {}

  def start(self) -> "AgentResultBuilder":
    self._start_time = time.monotonic()
    return self

  def set_output(self, output: str) -> "AgentResultBuilder":
    self._output = output
    return self

  def append_output(self, text: str) -> "AgentResultBuilder":
    self._output += text
    return self

  def add_tool_call(self, call: ToolCall) -> "AgentResultBuilder":
    self._tool_calls.append(call)
    return self

  def add_tool_result(self, result: ToolResult) -> "AgentResultBuilder":
    self._tool_results.append(result)
    return self

  def increment_iteration(self) -> "AgentResultBuilder":
    self._iteration_count += 1
    return self

  @property
  def iteration_count(self) -> int:
    return self._iteration_count

  def set_duration(self, duration: float) -> "AgentResultBuilder":
    self._duration = duration
    return self

  def set_token_usage(self, usage: Optional[TokenUsage]) -> "AgentResultBuilder":
    self._token_usage = usage
    return self

  def add_token_usage(self, usage: Optional[TokenUsage]) -> "AgentResultBuilder":
    if usage is not None:
      self._token_usage = usage if self._token_usage is None else self._token_usage + usage
    return self

  def set_metadata(self, key: str, value: Any) -> "AgentResultBuilder":
    self._metadata[key] = value if isinstance(value, SendableValue) else SendableValue.of(value)
    return self

  def build(self) -> AgentResult:
    """Freeze the accumulated state. Duration is measured from :meth:`start` unless set explicitly."""
    duration = self._duration
    if duration is None:
      duration = time.monotonic() - self._start_time if self._start_time is not None else 0.0
    return AgentResult(
      output=self._output,
      tool_calls=list(self._tool_calls),
      tool_results=list(self._tool_results),
      iteration_count=self._iteration_count,
      duration=duration,
      token_usage=self._token_usage,
      metadata=dict(self._metadata),
    )
