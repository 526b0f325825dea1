"""The Agent contract shared by ReAct agents and composites.

Every agent exposes ``run``, ``stream`` and ``cancel``. Composites are agents too,
so they nest arbitrarily::

    pipeline = researcher >> writer          # SequentialAgent
    panel = (critic_a + critic_b)            # ParallelAgent
    safe = pipeline | fallback_agent         # FallbackAgent
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

from reagent.agent.cancellation import CancellationToken
from reagent.agent.hooks import RunHooks
from reagent.agent.result import AgentResult, AgentResultBuilder
from reagent.exceptions import AgentCancelledError, InternalAgentError, ReagentError
from reagent.run.base import RunContext
from reagent.run.event_bus import EventBus
from reagent.run.events import AgentEvent, RunCancelledEvent, RunCompletedEvent, RunFailedEvent, RunStartedEvent

if TYPE_CHECKING:
  from reagent.agent.composition import FallbackAgent, ParallelAgent, SequentialAgent
  from reagent.memory.base import Session


class Agent(ABC):
  """Base class for anything that turns an input string into an :class:`AgentResult`.

  Subclasses implement :meth:`_run`. The public :meth:`run` wires the run
  context, event routing and cancellation tracking around it.

  Args:
    name: Name used in events, hooks and structured merges.
    event_bus: Bus receiving this agent's events. One is created when omitted.
  """

  def __init__(self, name: Optional[str] = None, event_bus: Optional[EventBus] = None):
    self.name = name or type(self).__name__
    self._event_bus = event_bus or EventBus()
    self._active_tokens: List[CancellationToken] = []
    self._tokens_lock = threading.Lock()

  @property
  def events(self) -> EventBus:
    """Event bus for this agent.

    Example::

        @agent.events.on(ToolCallStartedEvent)
        def on_tool(event):
            print(event.tool_call.tool_name)
    """
    return self._event_bus

  # ------------------------------------------------------------------
  # Public contract
  # ------------------------------------------------------------------

  async def run(
    self,
    input: str,
    session: Optional["Session"] = None,
    hooks: Optional[RunHooks] = None,
    context: Optional[RunContext] = None,
    cancellation_token: Optional[CancellationToken] = None,
  ) -> AgentResult:
    """Execute one run and return its validated result.

    Raises:
      AgentError: For execution failures (see :mod:`reagent.exceptions`).
      GuardrailTripwireError: When a guardrail trips.
    """
    context = self._bind(context, session)
    return await self._tracked(input, session, hooks, context, cancellation_token)

  async def stream(
    self,
    input: str,
    session: Optional["Session"] = None,
    hooks: Optional[RunHooks] = None,
    context: Optional[RunContext] = None,
    cancellation_token: Optional[CancellationToken] = None,
  ) -> AsyncIterator[AgentEvent]:
    """Run and yield events as they happen.

    Yields ``RunStartedEvent`` first, then whatever the run emits, then exactly
    one terminal event. After ``RunFailedEvent`` or ``RunCancelledEvent`` the
    original error is raised from the generator.
    """
    context = self._bind(context, session, fresh=True)
    bus = context.event_bus
    assert bus is not None

    started = RunStartedEvent(agent_name=self.name, run_id=context.run_id, input=input)
    await bus.emit(started)
    yield started

    queue: "asyncio.Queue[AgentEvent]" = asyncio.Queue()
    bus.attach_queue(queue)
    task = asyncio.ensure_future(self._tracked(input, session, hooks, context, cancellation_token))
    try:
      while True:
        getter = asyncio.ensure_future(queue.get())
        done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
        if getter in done:
          yield getter.result()
          continue
        getter.cancel()
        break
      while not queue.empty():
        yield queue.get_nowait()
      bus.detach_queue(queue)

      try:
        result = task.result()
      except AgentCancelledError:
        cancelled = RunCancelledEvent(agent_name=self.name, run_id=context.run_id)
        await bus.emit(cancelled)
        yield cancelled
        raise
      except Exception as exc:
        error = exc if isinstance(exc, ReagentError) else InternalAgentError(str(exc) or type(exc).__name__)
        failed = RunFailedEvent(agent_name=self.name, run_id=context.run_id, error=error)
        await bus.emit(failed)
        yield failed
        raise

      completed = RunCompletedEvent(agent_name=self.name, run_id=context.run_id, result=result)
      await bus.emit(completed)
      yield completed
    finally:
      bus.detach_queue(queue)
      if not task.done():
        task.cancel()

  def cancel(self) -> None:
    """Cancel every run of this agent currently in flight. Idempotent."""
    with self._tokens_lock:
      tokens = list(self._active_tokens)
    for token in tokens:
      token.cancel()

  @property
  def is_running(self) -> bool:
    with self._tokens_lock:
      return bool(self._active_tokens)

  # ------------------------------------------------------------------
  # Composition operators
  # ------------------------------------------------------------------

  def __rshift__(self, other: "Agent") -> "SequentialAgent":
    from reagent.agent.composition import SequentialAgent

    return SequentialAgent.chain(self, other)

  def __add__(self, other: "Agent") -> "ParallelAgent":
    from reagent.agent.composition import ParallelAgent

    return ParallelAgent.join(self, other)

  def __or__(self, other: "Agent") -> "FallbackAgent":
    from reagent.agent.composition import FallbackAgent

    return FallbackAgent(self, other)

  # ------------------------------------------------------------------
  # Subclass hooks
  # ------------------------------------------------------------------

  @abstractmethod
  async def _run(
    self,
    input: str,
    session: Optional["Session"],
    hooks: RunHooks,
    context: RunContext,
    token: CancellationToken,
  ) -> AgentResult:
    """Produce the result for one run. ``context.event_bus`` is always set."""

  async def _emit(self, event: AgentEvent, context: RunContext) -> None:
    event.agent_name = event.agent_name or self.name
    event.run_id = event.run_id or context.run_id
    if context.event_bus is not None:
      await context.event_bus.emit(event)

  # ------------------------------------------------------------------
  # Internals
  # ------------------------------------------------------------------

  def _bind(self, context: Optional[RunContext], session: Optional["Session"], fresh: bool = False) -> RunContext:
    """Route the run's events to the caller's bus and to this agent's own bus."""
    if context is None:
      context = RunContext.create(session_id=session.session_id if session else None)
    targets = [context.event_bus] if context.event_bus is not None else []
    if self._event_bus is not context.event_bus:
      targets.append(self._event_bus)
    if not fresh and len(targets) == 1:
      return replace(context, event_bus=targets[0])
    return replace(context, event_bus=EventBus.forwarding(targets))

  async def _tracked(
    self,
    input: str,
    session: Optional["Session"],
    hooks: Optional[RunHooks],
    context: RunContext,
    token: Optional[CancellationToken],
  ) -> AgentResult:
    token = token or CancellationToken()
    with self._tokens_lock:
      self._active_tokens.append(token)
    try:
      return await self._run(input, session, hooks or RunHooks(), context, token)
    finally:
      with self._tokens_lock:
        self._active_tokens = [t for t in self._active_tokens if t is not token]

  def __repr__(self) -> str:
    return f"{type(self).__name__}(name={self.name!r})"


class EmptyAgent(Agent):
  """No-op agent: empty output, no tool calls, zero iterations.

  It is the identity element of parallel concatenation.
  """

  async def _run(self, input, session, hooks, context, token) -> AgentResult:
    return AgentResultBuilder().start().build()
