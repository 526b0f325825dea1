"""
Unit tests for SequentialAgent, ParallelAgent and FallbackAgent.

Members are FunctionAgents (deterministic, optionally slow) or ReActAgents backed
by MockInferenceProvider. No API calls.
"""

import asyncio

import pytest

from reagent.agent import (
  AgentResult,
  EmptyAgent,
  ErrorHandlingStrategy,
  FallbackAgent,
  MergeKind,
  MergeStrategy,
  ParallelAgent,
  ReActAgent,
  SequentialAgent,
  TokenUsage,
)
from reagent.agent.config import AgentConfiguration
from reagent.agent.testing import FunctionAgent, MockInferenceProvider, RecordingRunHooks, SpySession
from reagent.exceptions import AgentCancelledError, GenerationFailedError
from reagent.run.events import (
  HandoffCompletedEvent,
  HandoffRequestedEvent,
  OutputChunkEvent,
  RunCompletedEvent,
  RunStartedEvent,
)


def prefix(tag, delay=0.0):
  return FunctionAgent(lambda s: f"{tag}:{s}", name=tag, delay=delay)


def constant(name, output, delay=0.0):
  return FunctionAgent(lambda s: output, name=name, delay=delay)


def failing(name, message="nope", delay=0.0):
  def fail(s):
    raise ValueError(message)

  return FunctionAgent(fail, name=name, delay=delay)


def react(name, answer, usage=None):
  provider = MockInferenceProvider(responses=[f"Final Answer: {answer}"], usage=usage)
  return ReActAgent(configuration=AgentConfiguration(name=name), inference_provider=provider)


@pytest.mark.unit
class TestSequentialAgent:
  @pytest.mark.asyncio
  async def test_output_feeds_next_input(self):
    x, y = prefix("X"), prefix("Y")
    result = await (x >> y).run("in")
    assert result.output == "Y:X:in"
    assert x.inputs == ["in"]
    assert y.inputs == ["X:in"]

  @pytest.mark.asyncio
  async def test_handoff_hooks_and_events(self, record_events):
    x, y, z = prefix("X"), prefix("Y"), prefix("Z")
    pipeline = x >> y >> z
    hooks = RecordingRunHooks()
    recorder = record_events(pipeline.events)
    await pipeline.run("in", hooks=hooks)
    assert hooks.events == [("on_handoff", ("X", "Y")), ("on_handoff", ("Y", "Z"))]
    requested = recorder.of_type(HandoffRequestedEvent)
    assert [(e.from_agent, e.to_agent, e.input) for e in requested] == [("X", "Y", "X:in"), ("Y", "Z", "Y:X:in")]
    assert len(recorder.of_type(HandoffCompletedEvent)) == 2

  @pytest.mark.asyncio
  async def test_failure_aborts_chain(self):
    last = prefix("last")
    with pytest.raises(ValueError, match="nope"):
      await (prefix("first") >> failing("middle") >> last).run("in")
    assert last.inputs == []

  @pytest.mark.asyncio
  async def test_members_never_see_the_session(self):
    session = SpySession("s")
    first, second = react("first", "draft"), react("second", "final")
    result = await (first >> second).run("write", session=session)
    assert result.output == "final"
    assert [name for name, _ in session.calls] == ["add_items"]
    assert [m.content for m in session.added_items] == ["write", "final"]

  @pytest.mark.asyncio
  async def test_member_events_reach_composite_bus(self, record_events):
    pipeline = react("first", "draft") >> react("second", "final")
    recorder = record_events(pipeline.events)
    await pipeline.run("write")
    chunks = recorder.of_type(OutputChunkEvent)
    assert [(e.agent_name, e.chunk) for e in chunks] == [("first", "draft"), ("second", "final")]

  def test_requires_members(self):
    with pytest.raises(ValueError):
      SequentialAgent([])


@pytest.mark.unit
class TestParallelAgent:
  @pytest.mark.asyncio
  async def test_first_success_goes_by_completion(self):
    group = constant("slow", "tortoise", delay=0.05) + constant("fast", "hare")
    assert group.merge_strategy.kind is MergeKind.FIRST_SUCCESS
    result = await group.run("race")
    assert result.output == "hare"

  @pytest.mark.asyncio
  async def test_concatenate_keeps_declared_order(self):
    group = (constant("a", "A", delay=0.05) + constant("b", "B")).with_merge_strategy(MergeStrategy.concatenate(" | "))
    assert (await group.run("q")).output == "A | B"

  @pytest.mark.asyncio
  async def test_concatenate_skips_empty_outputs(self):
    group = (constant("a", "A") + constant("blank", "") + constant("c", "C")).with_merge_strategy(MergeStrategy.concatenate())
    assert (await group.run("q")).output == "A\nC"

  @pytest.mark.asyncio
  async def test_structured(self):
    group = (constant("alpha", "A", delay=0.02) + constant("beta", "B")).with_merge_strategy(MergeStrategy.structured())
    assert (await group.run("q")).output == "[alpha]\nA\n\n[beta]\nB"

  @pytest.mark.asyncio
  async def test_custom(self):
    def longest(results):
      return max(results, key=lambda r: len(r.output))

    group = (constant("a", "short") + constant("b", "much longer")).with_merge_strategy(MergeStrategy.custom(longest))
    assert (await group.run("q")).output == "much longer"

  @pytest.mark.asyncio
  async def test_custom_receives_declared_order(self):
    seen = []

    def record(results):
      seen.extend(r.output for r in results)
      return AgentResult(output="merged")

    group = (constant("a", "A", delay=0.03) + constant("b", "B")).with_merge_strategy(MergeStrategy.custom(record))
    assert (await group.run("q")).output == "merged"
    assert seen == ["A", "B"]

  @pytest.mark.asyncio
  @pytest.mark.parametrize("strategy", [MergeStrategy.concatenate(), MergeStrategy.structured()])
  async def test_empty_agent_is_identity(self, strategy):
    alone = ParallelAgent([constant("a", "A")], merge_strategy=strategy)
    padded = ParallelAgent([constant("a", "A"), EmptyAgent()], merge_strategy=strategy)
    assert (await padded.run("q")).output == (await alone.run("q")).output

  @pytest.mark.asyncio
  async def test_usage_and_tool_calls_are_combined(self):
    group = react("a", "one", usage=TokenUsage(3, 1)) + react("b", "two", usage=TokenUsage(2, 2))
    result = await group.with_merge_strategy(MergeStrategy.concatenate()).run("q")
    assert result.token_usage == TokenUsage(5, 3)
    assert result.iteration_count == 1

  @pytest.mark.asyncio
  async def test_fail_fast_cancels_siblings(self):
    slow = constant("slow", "late", delay=0.5)
    group = failing("bad") + slow
    assert group.error_handling is ErrorHandlingStrategy.FAIL_FAST
    with pytest.raises(ValueError, match="nope"):
      await group.run("q")
    assert not slow.is_running

  @pytest.mark.asyncio
  async def test_continue_on_partial_failure(self):
    group = (failing("bad") + constant("good", "ok")).with_error_handling(ErrorHandlingStrategy.CONTINUE_ON_PARTIAL_FAILURE)
    assert (await group.run("q")).output == "ok"

  @pytest.mark.asyncio
  async def test_continue_on_partial_failure_needs_one_success(self):
    group = (failing("a", "first") + failing("b", "second", delay=0.01)).with_error_handling(
      ErrorHandlingStrategy.CONTINUE_ON_PARTIAL_FAILURE
    )
    with pytest.raises(ValueError, match="first"):
      await group.run("q")

  @pytest.mark.asyncio
  async def test_collect_errors(self):
    group = (
      (failing("bad", "broken") + constant("good", "ok"))
      .with_merge_strategy(MergeStrategy.concatenate())
      .with_error_handling(ErrorHandlingStrategy.COLLECT_ERRORS)
    )
    result = await group.run("q")
    assert result.output == "ok"
    assert result.metadata["errors"].to_python() == [{"agent": "bad", "error": "broken"}]

  @pytest.mark.asyncio
  async def test_collect_errors_when_everything_fails(self):
    group = ParallelAgent([failing("a"), failing("b")], error_handling=ErrorHandlingStrategy.COLLECT_ERRORS)
    result = await group.run("q")
    assert result.output == ""
    assert len(result.metadata["errors"].to_python()) == 2

  @pytest.mark.asyncio
  async def test_session_recorded_once(self):
    session = SpySession("s")
    group = (react("a", "A") + react("b", "B")).with_merge_strategy(MergeStrategy.concatenate())
    await group.run("q", session=session)
    assert [name for name, _ in session.calls] == ["add_items"]
    assert [m.content for m in session.added_items] == ["q", "A\nB"]

  def test_strategies_return_new_instances(self):
    group = constant("a", "A") + constant("b", "B")
    concatenated = group.with_merge_strategy(MergeStrategy.concatenate())
    assert concatenated is not group
    assert group.merge_strategy == MergeStrategy.first_success()

  def test_requires_members(self):
    with pytest.raises(ValueError):
      ParallelAgent([])


@pytest.mark.unit
class TestFallbackAgent:
  @pytest.mark.asyncio
  async def test_primary_success(self):
    backup = constant("backup", "B")
    result = await (constant("main", "A") | backup).run("q")
    assert result.output == "A"
    assert backup.inputs == []

  @pytest.mark.asyncio
  async def test_falls_back_with_original_input(self):
    backup = prefix("backup")
    hooks = RecordingRunHooks()
    result = await (failing("main") | backup).run("q", hooks=hooks)
    assert result.output == "backup:q"
    assert backup.inputs == ["q"]
    assert hooks.events == [("on_handoff", ("main", "backup"))]

  @pytest.mark.asyncio
  async def test_fallback_error_propagates(self):
    with pytest.raises(GenerationFailedError):
      await (failing("main") | FunctionAgent(self._generation_failure, name="backup")).run("q")

  @staticmethod
  def _generation_failure(text):
    raise GenerationFailedError("down")

  @pytest.mark.asyncio
  async def test_nested_fallbacks(self):
    chain = failing("a") | failing("b") | constant("c", "C")
    assert isinstance(chain, FallbackAgent)
    assert isinstance(chain.primary, FallbackAgent)
    assert (await chain.run("q")).output == "C"

  @pytest.mark.asyncio
  async def test_cancellation_does_not_fall_back(self):
    backup = constant("backup", "B")
    agent = constant("main", "A", delay=0.2) | backup
    task = asyncio.ensure_future(agent.run("q"))
    await asyncio.sleep(0.02)
    agent.cancel()
    with pytest.raises(AgentCancelledError):
      await task
    assert backup.inputs == []

  @pytest.mark.asyncio
  async def test_leg_receives_session(self):
    session = SpySession("s")
    await (react("main", "A") | react("backup", "B")).run("q", session=session)
    assert [m.content for m in session.added_items] == ["q", "A"]


@pytest.mark.unit
class TestOperators:
  def test_sequential_flattens(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    assert (a >> b >> c).agents == [a, b, c]
    assert (a >> (b >> c)).agents == [a, b, c]

  def test_parallel_flattens(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    assert (a + b + c).agents == [a, b, c]
    assert (a + (b + c)).agents == [a, b, c]

  def test_configured_group_keeps_strategy_when_extended(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    group = (a + b).with_merge_strategy(MergeStrategy.concatenate()) + c
    assert group.agents == [a, b, c]
    assert group.merge_strategy.kind is MergeKind.CONCATENATE

  def test_configured_group_on_the_right_stays_nested(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    inner = (b + c).with_merge_strategy(MergeStrategy.structured())
    outer = a + inner
    assert outer.agents == [a, inner]

  def test_mixed_nesting(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    pipeline = (a >> b) | c
    assert isinstance(pipeline, FallbackAgent)
    assert isinstance(pipeline.primary, SequentialAgent)
    panel = (a >> b) + c
    assert isinstance(panel.agents[0], SequentialAgent)

  def test_named_composites_stay_nested(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    stage = SequentialAgent([b, c], name="stage")
    assert (a >> stage).agents == [a, stage]
    panel = ParallelAgent([b, c], name="panel")
    assert (a + panel).agents == [a, panel]
    assert (panel + a).name == "panel"

  def test_composites_with_subscribers_stay_nested(self):
    a, b, c = prefix("a"), prefix("b"), prefix("c")
    inner = b >> c
    seen = []
    inner.events.on(RunStartedEvent, seen.append)
    assert (a >> inner).agents == [a, inner]
    group = b + c
    group.events.on(RunCompletedEvent, seen.append)
    assert (a + group).agents == [a, group]
    assert ((a + b) + group).agents == [a, b, group]


@pytest.mark.unit
class TestCompositeCancellationAndStreaming:
  @pytest.mark.asyncio
  async def test_cancel_cascades_to_sequential_members(self):
    first, second = prefix("first", delay=0.2), prefix("second")
    pipeline = first >> second
    task = asyncio.ensure_future(pipeline.run("q"))
    await asyncio.sleep(0.02)
    pipeline.cancel()
    with pytest.raises(AgentCancelledError):
      await task
    assert second.inputs == []
    assert not pipeline.is_running

  @pytest.mark.asyncio
  async def test_cancel_cascades_to_parallel_members(self):
    group = (constant("a", "A", delay=0.2) + constant("b", "B", delay=0.2)).with_error_handling(
      ErrorHandlingStrategy.COLLECT_ERRORS
    )
    task = asyncio.ensure_future(group.run("q"))
    await asyncio.sleep(0.02)
    group.cancel()
    with pytest.raises(AgentCancelledError):
      await task

  @pytest.mark.asyncio
  async def test_stream_composite(self):
    pipeline = prefix("X") >> prefix("Y")
    events = [e async for e in pipeline.stream("in")]
    assert isinstance(events[0], RunStartedEvent)
    assert isinstance(events[-1], RunCompletedEvent)
    assert events[-1].result.output == "Y:X:in"
    assert sum(1 for e in events if e.is_terminal) == 1
    assert any(isinstance(e, HandoffRequestedEvent) for e in events)
