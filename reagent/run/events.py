"""
Reagent Events: every agent run event type in one place.

Usage:
    from reagent.run.events import RunStartedEvent, ToolCallStartedEvent, RunCompletedEvent

``RunCompletedEvent``, ``RunFailedEvent`` and ``RunCancelledEvent`` are terminal: a
stream ends after the first terminal event emitted by the agent being streamed.
"""

import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.agent.result import AgentResult, ToolCall, ToolResult
  from reagent.guardrail.base import GuardrailResult


def _serialize(value: Any) -> Any:
  if value is None or isinstance(value, (str, int, float, bool)):
    return value
  if isinstance(value, SendableValue):
    return value.to_python()
  if isinstance(value, Enum):
    return value.value
  if isinstance(value, BaseException):
    return str(value)
  if hasattr(value, "to_dict"):
    return value.to_dict()
  if isinstance(value, dict):
    return {k: _serialize(v) for k, v in value.items()}
  if isinstance(value, (list, tuple)):
    return [_serialize(v) for v in value]
  return str(value)


@dataclass
class AgentEvent:
  """Base class for run events.

  Attributes:
    agent_name: Name of the agent that emitted the event.
    run_id: Identifier of the run the event belongs to.
    created_at: Epoch seconds.
  """

  event: str = "AgentEvent"
  agent_name: str = ""
  run_id: Optional[str] = None
  created_at: float = field(default_factory=time.time)

  @property
  def is_terminal(self) -> bool:
    return False

  def to_dict(self) -> Dict[str, Any]:
    return {f.name: _serialize(getattr(self, f.name)) for f in fields(self) if getattr(self, f.name) is not None}


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


@dataclass
class RunStartedEvent(AgentEvent):
  event: str = "RunStarted"
  input: str = ""


@dataclass
class RunCompletedEvent(AgentEvent):
  event: str = "RunCompleted"
  result: Optional["AgentResult"] = None

  @property
  def is_terminal(self) -> bool:
    return True


@dataclass
class RunFailedEvent(AgentEvent):
  event: str = "RunFailed"
  error: Optional[BaseException] = None

  @property
  def is_terminal(self) -> bool:
    return True


@dataclass
class RunCancelledEvent(AgentEvent):
  event: str = "RunCancelled"

  @property
  def is_terminal(self) -> bool:
    return True


# ---------------------------------------------------------------------------
# Loop progress
# ---------------------------------------------------------------------------


@dataclass
class IterationStartedEvent(AgentEvent):
  event: str = "IterationStarted"
  iteration: int = 0


@dataclass
class IterationCompletedEvent(AgentEvent):
  event: str = "IterationCompleted"
  iteration: int = 0


@dataclass
class ThinkingEvent(AgentEvent):
  event: str = "Thinking"
  thought: str = ""


@dataclass
class OutputTokenEvent(AgentEvent):
  event: str = "OutputToken"
  token: str = ""


@dataclass
class OutputChunkEvent(AgentEvent):
  event: str = "OutputChunk"
  chunk: str = ""


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------


@dataclass
class ToolCallStartedEvent(AgentEvent):
  event: str = "ToolCallStarted"
  tool_call: Optional["ToolCall"] = None


@dataclass
class ToolCallCompletedEvent(AgentEvent):
  event: str = "ToolCallCompleted"
  tool_call: Optional["ToolCall"] = None
  result: Optional["ToolResult"] = None


@dataclass
class ToolCallFailedEvent(AgentEvent):
  event: str = "ToolCallFailed"
  tool_call: Optional["ToolCall"] = None
  error: str = ""


# ---------------------------------------------------------------------------
# Handoffs
# ---------------------------------------------------------------------------


@dataclass
class HandoffRequestedEvent(AgentEvent):
  event: str = "HandoffRequested"
  from_agent: str = ""
  to_agent: str = ""
  input: str = ""


@dataclass
class HandoffCompletedEvent(AgentEvent):
  event: str = "HandoffCompleted"
  from_agent: str = ""
  to_agent: str = ""


# ---------------------------------------------------------------------------
# Guardrails
# ---------------------------------------------------------------------------


@dataclass
class GuardrailStartedEvent(AgentEvent):
  event: str = "GuardrailStarted"
  guardrail_name: str = ""
  guardrail_type: str = ""  # "input" | "output" | "tool_input" | "tool_output"


@dataclass
class GuardrailPassedEvent(AgentEvent):
  event: str = "GuardrailPassed"
  guardrail_name: str = ""
  guardrail_type: str = ""
  duration_ms: Optional[float] = None


@dataclass
class GuardrailTriggeredEvent(AgentEvent):
  event: str = "GuardrailTriggered"
  guardrail_name: str = ""
  guardrail_type: str = ""
  message: Optional[str] = None
  result: Optional["GuardrailResult"] = None


__all__ = [
  "AgentEvent",
  "RunStartedEvent",
  "RunCompletedEvent",
  "RunFailedEvent",
  "RunCancelledEvent",
  "IterationStartedEvent",
  "IterationCompletedEvent",
  "ThinkingEvent",
  "OutputTokenEvent",
  "OutputChunkEvent",
  "ToolCallStartedEvent",
  "ToolCallCompletedEvent",
  "ToolCallFailedEvent",
  "HandoffRequestedEvent",
  "HandoffCompletedEvent",
  "GuardrailStartedEvent",
  "GuardrailPassedEvent",
  "GuardrailTriggeredEvent",
]
