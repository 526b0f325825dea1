from reagent.run.base import RunContext
from reagent.run.event_bus import EventBus
from reagent.run.events import (
  AgentEvent,
  GuardrailPassedEvent,
  GuardrailStartedEvent,
  GuardrailTriggeredEvent,
  HandoffCompletedEvent,
  HandoffRequestedEvent,
  IterationCompletedEvent,
  IterationStartedEvent,
  OutputChunkEvent,
  OutputTokenEvent,
  RunCancelledEvent,
  RunCompletedEvent,
  RunFailedEvent,
  RunStartedEvent,
  ThinkingEvent,
  ToolCallCompletedEvent,
  ToolCallFailedEvent,
  ToolCallStartedEvent,
)

__all__ = [
  "RunContext",
  "EventBus",
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
