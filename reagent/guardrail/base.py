"""Core guardrail types: result, protocols, and tool guardrail payload."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.run.base import RunContext
  from reagent.tool.base import Tool


def _coerce(value: Any) -> Optional[SendableValue]:
  if value is None or isinstance(value, SendableValue):
    return value
  return SendableValue.of(value)


def _coerce_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, SendableValue]:
  return {k: v if isinstance(v, SendableValue) else SendableValue.of(v) for k, v in (metadata or {}).items()}


@dataclass(frozen=True)
class GuardrailResult:
  """Result returned by a guardrail check.

  Attributes:
    tripwire_triggered: True when the guardrail rejects. A tripwire is a hard stop.
    output_info: Optional diagnostic payload describing what was found.
    message: Human-readable explanation.
    metadata: Extra structured data for tracing / debugging.
  """

  tripwire_triggered: bool
  output_info: Optional[SendableValue] = None
  message: Optional[str] = None
  metadata: Dict[str, SendableValue] = field(default_factory=dict)

  # ------------------------------------------------------------------
  # Factory helpers
  # ------------------------------------------------------------------

  @staticmethod
  def passed(
    message: Optional[str] = None,
    output_info: Any = None,
    metadata: Optional[Mapping[str, Any]] = None,
  ) -> GuardrailResult:
    return GuardrailResult(
      tripwire_triggered=False,
      output_info=_coerce(output_info),
      message=message,
      metadata=_coerce_metadata(metadata),
    )

  @staticmethod
  def tripwire(
    message: str,
    output_info: Any = None,
    metadata: Optional[Mapping[str, Any]] = None,
  ) -> GuardrailResult:
    return GuardrailResult(
      tripwire_triggered=True,
      output_info=_coerce(output_info),
      message=message,
      metadata=_coerce_metadata(metadata),
    )

  def with_metadata(self, **extra: Any) -> GuardrailResult:
    merged = {**self.metadata, **_coerce_metadata(extra)}
    return GuardrailResult(self.tripwire_triggered, self.output_info, self.message, merged)


@dataclass(frozen=True)
class ToolGuardrailData:
  """Everything a tool guardrail may inspect about one pending or finished call."""

  tool: "Tool"
  arguments: Mapping[str, SendableValue]
  agent: Any = None
  context: Optional["RunContext"] = None

  @property
  def tool_name(self) -> str:
    return self.tool.name


# ------------------------------------------------------------------
# Protocols
# ------------------------------------------------------------------


@runtime_checkable
class InputGuardrail(Protocol):
  """Protocol for guardrails that check user input before the agent starts.

  Guardrails without a ``run_in_parallel`` attribute are treated as parallel.
  Sequential ones (``run_in_parallel = False``) gate the run in declaration order
  before any parallel check is launched.
  """

  name: str

  async def validate(self, input: str, agent: Any, context: Optional["RunContext"]) -> GuardrailResult: ...


@runtime_checkable
class OutputGuardrail(Protocol):
  """Protocol for guardrails that check the final output before it is persisted."""

  name: str

  async def validate(self, output: str, agent: Any, context: Optional["RunContext"]) -> GuardrailResult: ...


@runtime_checkable
class ToolInputGuardrail(Protocol):
  """Protocol for guardrails that check a tool call before execution."""

  name: str

  async def validate(self, data: ToolGuardrailData) -> GuardrailResult: ...


@runtime_checkable
class ToolOutputGuardrail(Protocol):
  """Protocol for guardrails that check a tool result after execution."""

  name: str

  async def validate(self, data: ToolGuardrailData, output: SendableValue) -> GuardrailResult: ...


def runs_in_parallel(guardrail: Any) -> bool:
  return bool(getattr(guardrail, "run_in_parallel", True))
