"""Composite agents: sequential pipelines, parallel groups and fallbacks.

Composites satisfy the same :class:`~reagent.agent.base.Agent` contract as the
agents they wrap, so they nest::

    pipeline = (researcher >> writer) | backup_writer
    review = (critic_a + critic_b).with_merge_strategy(MergeStrategy.concatenate("\\n---\\n"))

Members run with a child :class:`RunContext` and share the composite's
cancellation token. Sequential and parallel composites record the composite-level
turn in the session themselves; members never see the session. A fallback hands
the session to whichever leg runs.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from reagent.agent.base import Agent
from reagent.agent.cancellation import CancellationToken
from reagent.agent.hooks import RunHooks
from reagent.agent.result import AgentResult
from reagent.exceptions import AgentCancelledError
from reagent.memory.types import MemoryMessage
from reagent.provider.base import TokenUsage
from reagent.run.base import RunContext
from reagent.run.event_bus import EventBus
from reagent.run.events import HandoffCompletedEvent, HandoffRequestedEvent
from reagent.tracing.context import span_for
from reagent.utils.log import log_debug, log_warning
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.memory.base import Session


async def _record_turn(session: Optional["Session"], input: str, output: str) -> None:
  if session is not None:
    await session.add_items([MemoryMessage.user(input), MemoryMessage.assistant(output)])


# ---------------------------------------------------------------------------
# Sequential
# ---------------------------------------------------------------------------


class SequentialAgent(Agent):
  """Runs members one after another; each output becomes the next input.

  The result is the last member's result. A failing member aborts the chain.

  Args:
    agents: Members in execution order (at least one).
  """

  def __init__(self, agents: Sequence[Agent], name: Optional[str] = None, event_bus: Optional[EventBus] = None):
    if not agents:
      raise ValueError("SequentialAgent requires at least one agent")
    super().__init__(name=name, event_bus=event_bus)
    self.agents: List[Agent] = list(agents)

  @classmethod
  def chain(cls, first: Agent, second: Agent) -> "SequentialAgent":
    """``first >> second``. Anonymous sequential members are flattened; named ones stay nested."""
    return cls(_members(first, cls) + _members(second, cls))

  async def _run(self, input, session, hooks, context, token) -> AgentResult:
    current = input
    result: Optional[AgentResult] = None
    with span_for(context.trace, f"sequential:{self.name}"):
      for index, agent in enumerate(self.agents):
        token.raise_if_cancelled()
        previous = self.agents[index - 1] if index > 0 else None
        if previous is not None:
          await hooks.on_handoff(context, previous, agent)
          await self._emit(HandoffRequestedEvent(from_agent=previous.name, to_agent=agent.name, input=current), context)

        log_debug(f"[{self.name}] step {index + 1}/{len(self.agents)}: {agent.name}")
        result = await agent.run(current, hooks=hooks, context=context.child(), cancellation_token=token)

        if previous is not None:
          await self._emit(HandoffCompletedEvent(from_agent=previous.name, to_agent=agent.name), context)
        current = result.output

    assert result is not None
    await _record_turn(session, input, result.output)
    return result

  def cancel(self) -> None:
    super().cancel()
    for agent in self.agents:
      agent.cancel()

  def __repr__(self) -> str:
    return f"SequentialAgent({' >> '.join(a.name for a in self.agents)})"


# ---------------------------------------------------------------------------
# Parallel
# ---------------------------------------------------------------------------


class MergeKind(str, Enum):
  FIRST_SUCCESS = "first_success"
  CONCATENATE = "concatenate"
  STRUCTURED = "structured"
  CUSTOM = "custom"


@dataclass(frozen=True)
class MergeStrategy:
  """How a :class:`ParallelAgent` folds member results into one.

  - ``first_success``: output of the first member to finish successfully.
  - ``concatenate(separator)``: non-empty outputs joined in declared order.
  - ``structured``: one ``[name]`` section per member, in declared order.
  - ``custom(fn)``: ``fn(results)`` with results in declared order.
  """

  kind: MergeKind = MergeKind.FIRST_SUCCESS
  separator: str = "\n"
  merge_fn: Optional[Callable[[List[AgentResult]], AgentResult]] = None

  @staticmethod
  def first_success() -> "MergeStrategy":
    return MergeStrategy(MergeKind.FIRST_SUCCESS)

  @staticmethod
  def concatenate(separator: str = "\n") -> "MergeStrategy":
    return MergeStrategy(MergeKind.CONCATENATE, separator=separator)

  @staticmethod
  def structured() -> "MergeStrategy":
    return MergeStrategy(MergeKind.STRUCTURED)

  @staticmethod
  def custom(merge_fn: Callable[[List[AgentResult]], AgentResult]) -> "MergeStrategy":
    return MergeStrategy(MergeKind.CUSTOM, merge_fn=merge_fn)


class ErrorHandlingStrategy(str, Enum):
  """What a :class:`ParallelAgent` does when members fail.

  - ``FAIL_FAST``: the first failure cancels the siblings and is raised.
  - ``CONTINUE_ON_PARTIAL_FAILURE``: succeed when at least one member succeeds.
  - ``COLLECT_ERRORS``: always complete; failures are listed in ``metadata["errors"]``.
  """

  FAIL_FAST = "fail_fast"
  CONTINUE_ON_PARTIAL_FAILURE = "continue_on_partial_failure"
  COLLECT_ERRORS = "collect_errors"


@dataclass
class _Outcome:
  agent: Agent
  result: Optional[AgentResult] = None
  error: Optional[Exception] = None
  finished_at: float = 0.0


class ParallelAgent(Agent):
  """Runs every member concurrently on the same input and merges the results.

  Defaults to ``first_success`` merging with ``fail_fast`` error handling.
  Strategies are fixed per instance; :meth:`with_merge_strategy` and
  :meth:`with_error_handling` return new instances.
  """

  def __init__(
    self,
    agents: Sequence[Agent],
    merge_strategy: Optional[MergeStrategy] = None,
    error_handling: ErrorHandlingStrategy = ErrorHandlingStrategy.FAIL_FAST,
    name: Optional[str] = None,
    event_bus: Optional[EventBus] = None,
  ):
    if not agents:
      raise ValueError("ParallelAgent requires at least one agent")
    super().__init__(name=name, event_bus=event_bus)
    self.agents: List[Agent] = list(agents)
    self.merge_strategy = merge_strategy or MergeStrategy.first_success()
    self.error_handling = error_handling

  @classmethod
  def join(cls, left: Agent, right: Agent) -> "ParallelAgent":
    """``left + right``.

    A left-hand group keeps its configuration and absorbs the right side.
    A right-hand group is spliced in only when it is anonymous and shares those
    strategies; otherwise it joins as one nested member.
    """
    if isinstance(left, ParallelAgent):
      extra = list(right.agents) if _same_policy(left, right) and _is_anonymous(right) else [right]
      return left._with(agents=left.agents + extra)
    return cls(_members(left, cls) + _members(right, cls))

  def with_merge_strategy(self, strategy: MergeStrategy) -> "ParallelAgent":
    return self._with(merge_strategy=strategy)

  def with_error_handling(self, strategy: ErrorHandlingStrategy) -> "ParallelAgent":
    return self._with(error_handling=strategy)

  def _with(self, **changes) -> "ParallelAgent":
    params = {
      "agents": self.agents,
      "merge_strategy": self.merge_strategy,
      "error_handling": self.error_handling,
      "name": self.name,
      "event_bus": self._event_bus,
    }
    params.update(changes)
    return ParallelAgent(**params)

  async def _run(self, input, session, hooks, context, token) -> AgentResult:
    start = time.monotonic()
    with span_for(context.trace, f"parallel:{self.name}"):
      outcomes = await self._gather(input, hooks, context, token)
    token.raise_if_cancelled()

    succeeded = [o for o in outcomes if o.error is None]
    failed = [o for o in outcomes if o.error is not None]
    for outcome in failed:
      log_warning(f"[{self.name}] member '{outcome.agent.name}' failed: {outcome.error}")

    if not succeeded and self.error_handling is ErrorHandlingStrategy.CONTINUE_ON_PARTIAL_FAILURE:
      assert failed[0].error is not None
      raise failed[0].error

    merged = self._merge(succeeded, time.monotonic() - start)
    if self.error_handling is ErrorHandlingStrategy.COLLECT_ERRORS:
      errors = SendableValue.of([{"agent": o.agent.name, "error": str(o.error)} for o in failed])
      merged = _with_metadata(merged, errors=errors)

    await _record_turn(session, input, merged.output)
    return merged

  async def _gather(self, input: str, hooks: RunHooks, context: RunContext, token: CancellationToken) -> List[_Outcome]:
    """Run all members; outcomes come back in declared order."""
    outcomes = [_Outcome(agent) for agent in self.agents]

    async def run_member(outcome: _Outcome) -> None:
      outcome.result = await outcome.agent.run(input, hooks=hooks, context=context.child(), cancellation_token=token)
      outcome.finished_at = time.monotonic()

    tasks = [asyncio.ensure_future(run_member(o)) for o in outcomes]
    try:
      if self.error_handling is ErrorHandlingStrategy.FAIL_FAST:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failures = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
        if failures:
          for task in pending:
            task.cancel()
          await asyncio.gather(*pending, return_exceptions=True)
          raise failures[0].exception()  # type: ignore[misc]
      else:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for outcome, raised in zip(outcomes, results):
          if isinstance(raised, asyncio.CancelledError):
            raise raised
          if isinstance(raised, AgentCancelledError):
            raise raised
          if isinstance(raised, Exception):
            outcome.error = raised
    finally:
      for task in tasks:
        if not task.done():
          task.cancel()
    return outcomes

  def _merge(self, outcomes: List[_Outcome], duration: float) -> AgentResult:
    results = [o.result for o in outcomes if o.result is not None]
    strategy = self.merge_strategy

    if strategy.kind is MergeKind.CUSTOM:
      assert strategy.merge_fn is not None
      return strategy.merge_fn(results)

    if strategy.kind is MergeKind.FIRST_SUCCESS:
      first = min(outcomes, key=lambda o: o.finished_at) if outcomes else None
      output = first.result.output if first is not None and first.result is not None else ""
    elif strategy.kind is MergeKind.CONCATENATE:
      output = strategy.separator.join(r.output for r in results if r.output)
    else:
      output = "\n\n".join(f"[{o.agent.name}]\n{o.result.output}" for o in outcomes if o.result is not None and o.result.output)

    usage: Optional[TokenUsage] = None
    for r in results:
      if r.token_usage is not None:
        usage = r.token_usage if usage is None else usage + r.token_usage

    return AgentResult(
      output=output,
      tool_calls=[c for r in results for c in r.tool_calls],
      tool_results=[t for r in results for t in r.tool_results],
      iteration_count=max((r.iteration_count for r in results), default=0),
      duration=duration,
      token_usage=usage,
    )

  def cancel(self) -> None:
    super().cancel()
    for agent in self.agents:
      agent.cancel()

  def __repr__(self) -> str:
    return f"ParallelAgent({' + '.join(a.name for a in self.agents)}, merge={self.merge_strategy.kind.value}, errors={self.error_handling.value})"


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------


class FallbackAgent(Agent):
  """Runs *primary*; on any error runs *fallback* with the original input.

  The fallback's result (or error) is returned as-is. Cancellation is never
  treated as a failure to fall back from.
  """

  def __init__(self, primary: Agent, fallback: Agent, name: Optional[str] = None, event_bus: Optional[EventBus] = None):
    super().__init__(name=name, event_bus=event_bus)
    self.primary = primary
    self.fallback = fallback

  async def _run(self, input, session, hooks, context, token) -> AgentResult:
    with span_for(context.trace, f"fallback:{self.name}"):
      try:
        return await self.primary.run(input, session=session, hooks=hooks, context=context.child(), cancellation_token=token)
      except AgentCancelledError:
        raise
      except Exception as exc:
        token.raise_if_cancelled()
        log_warning(f"[{self.name}] primary '{self.primary.name}' failed, falling back to '{self.fallback.name}': {exc}")

      await hooks.on_handoff(context, self.primary, self.fallback)
      return await self.fallback.run(input, session=session, hooks=hooks, context=context.child(), cancellation_token=token)

  def cancel(self) -> None:
    super().cancel()
    self.primary.cancel()
    self.fallback.cancel()

  def __repr__(self) -> str:
    return f"FallbackAgent({self.primary.name} | {self.fallback.name})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _members(agent: Agent, kind: type) -> List[Agent]:
  """Members to splice into a new composite of type *kind*.

  Only anonymous composites are spliced: a custom name or event subscribers
  keep the composite nested as a single member.
  """
  if type(agent) is not kind or not _is_anonymous(agent):
    return [agent]
  if isinstance(agent, ParallelAgent) and not _is_default_parallel(agent):
    return [agent]
  return list(agent.agents)  # type: ignore[attr-defined]


def _is_anonymous(agent: Agent) -> bool:
  return agent.name == type(agent).__name__ and not agent.events.has_subscribers


def _is_default_parallel(agent: "ParallelAgent") -> bool:
  return agent.merge_strategy == MergeStrategy.first_success() and agent.error_handling is ErrorHandlingStrategy.FAIL_FAST


def _same_policy(left: "ParallelAgent", right: Agent) -> bool:
  return (
    isinstance(right, ParallelAgent)
    and right.merge_strategy == left.merge_strategy
    and right.error_handling is left.error_handling
  )


def _with_metadata(result: AgentResult, **extra: SendableValue) -> AgentResult:
  metadata: Dict[str, SendableValue] = dict(result.metadata)
  metadata.update(extra)
  return replace(result, metadata=metadata)


__all__ = [
  "SequentialAgent",
  "ParallelAgent",
  "FallbackAgent",
  "MergeStrategy",
  "MergeKind",
  "ErrorHandlingStrategy",
]
