"""RunContext: the explicit context threaded through every run, guardrail and tool call."""

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import uuid4

from reagent.tracing.context import TraceContext
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.run.event_bus import EventBus


@dataclass
class RunContext:
  """
  Context passed through the agent execution pipeline.

  Carries run identifiers, caller metadata, the active trace and the event sink.
  Composite agents hand each member a :meth:`child` context so traces and event
  subscribers follow the run into nested agents.

  Attributes:
    run_id: Unique identifier of this run.
    session_id: Conversation id, when the run is bound to a session.
    parent_run_id: Run id of the composite that started this run.
    metadata: Caller-supplied structured data visible to guardrails and tools.
    trace: Active trace, if any.
    event_bus: Sink for events emitted during the run.
  """

  run_id: str = field(default_factory=lambda: str(uuid4()))
  session_id: Optional[str] = None
  parent_run_id: Optional[str] = None
  metadata: Dict[str, SendableValue] = field(default_factory=dict)
  trace: Optional[TraceContext] = None
  event_bus: Optional["EventBus"] = None

  @classmethod
  def create(cls, session_id: Optional[str] = None, **kwargs: Any) -> "RunContext":
    """New context that picks up the task-bound trace when none is given."""
    kwargs.setdefault("trace", TraceContext.current())
    return cls(session_id=session_id, **kwargs)

  def child(self, **overrides: Any) -> "RunContext":
    """Context for a nested run sharing trace, metadata and event bus."""
    overrides.setdefault("run_id", str(uuid4()))
    overrides.setdefault("parent_run_id", self.run_id)
    return replace(self, **overrides)

  def get(self, key: str) -> Optional[SendableValue]:
    return self.metadata.get(key)
