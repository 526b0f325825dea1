"""
Unit tests for ReActAgent.

Drives the Thought / Action / Observation loop with MockInferenceProvider and
checks final answers, tool dispatch, budgets, guardrails, persistence, hooks,
events, cancellation and streaming. No API calls.
"""

import asyncio

import pytest

from reagent.agent import AgentConfiguration, CancellationToken, ReActAgent, TokenUsage
from reagent.agent.testing import (
  AgentTestCase,
  AlwaysFailingProvider,
  MockInferenceProvider,
  RecordingRunHooks,
  create_test_agent,
)
from reagent.exceptions import (
  AgentCancelledError,
  AgentTimeoutError,
  GenerationFailedError,
  InferenceProviderUnavailableError,
  InputGuardrailTripwireError,
  InvalidInputError,
  MaxIterationsExceededError,
  OutputGuardrailTripwireError,
  RateLimitExceededError,
  ToolExecutionFailedError,
  ToolInputGuardrailTripwireError,
)
from reagent.guardrail import GuardrailResult, block_topics, input_guardrail, output_guardrail, tool_blocklist
from reagent.memory import MessageRole
from reagent.run import EventBus, RunContext
from reagent.run.events import (
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
from reagent.tool import FunctionTool, ToolRegistry
from reagent.tracing import with_trace

ADD_THEN_ANSWER = ["Thought: I should add.\nAction: add(a: 2, b: 3)", "Final Answer: 5"]


def _agent(provider, tools=(), **config):
  return ReActAgent(tools=list(tools), configuration=AgentConfiguration(**config), inference_provider=provider)


@pytest.mark.unit
class TestFinalAnswer:
  @pytest.mark.asyncio
  async def test_direct_answer(self):
    provider = MockInferenceProvider(responses=["Thought: easy\nFinal Answer: Hello!"])
    result = await _agent(provider).run("Say hello")
    assert result.output == "Hello!"
    assert result.iteration_count == 1
    assert result.tool_calls == []
    provider.assert_called_times(1)

  @pytest.mark.asyncio
  async def test_prompt_contains_instructions_and_query(self):
    provider = MockInferenceProvider()
    agent = ReActAgent(instructions="You are terse.", inference_provider=provider)
    await agent.run("ping")
    assert provider.last_prompt.startswith("You are terse.")
    assert "User Query: ping" in provider.last_prompt

  @pytest.mark.asyncio
  async def test_thinking_steps_then_answer(self):
    provider = MockInferenceProvider(responses=["Thought: first", "Thought: second", "Final Answer: done"])
    result = await _agent(provider).run("go")
    assert result.iteration_count == 3
    assert "Thought: first\nThought: second" in provider.prompts[2]
    assert "invalid_responses" not in result.metadata

  @pytest.mark.asyncio
  async def test_invalid_responses_are_counted(self):
    provider = MockInferenceProvider(responses=["random chatter", "Final Answer: ok"])
    result = await _agent(provider).run("go")
    assert result.output == "ok"
    assert result.iteration_count == 2
    assert result.metadata["invalid_responses"].int_value == 1


@pytest.mark.unit
class TestInputValidation:
  @pytest.mark.asyncio
  @pytest.mark.parametrize("text", ["", "   \n\t"])
  async def test_empty_input_rejected_before_anything_runs(self, text):
    provider = MockInferenceProvider()
    hooks = RecordingRunHooks()
    with pytest.raises(InvalidInputError) as exc_info:
      await _agent(provider).run(text, hooks=hooks)
    assert exc_info.value == InvalidInputError("Input cannot be empty")
    provider.assert_called_times(0)
    assert hooks.events == []


@pytest.mark.unit
class TestToolDispatch:
  @pytest.mark.asyncio
  async def test_tool_call_and_observation(self, add_tool):
    provider = MockInferenceProvider(responses=ADD_THEN_ANSWER)
    result = await _agent(provider, [add_tool]).run("What is 2 + 3?")
    assert result.output == "5"
    assert result.iteration_count == 2
    (call,) = result.tool_calls
    assert call.tool_name == "add"
    (tool_result,) = result.tool_results
    assert tool_result.call_id == call.id
    assert tool_result.is_success
    assert tool_result.output.int_value == 5
    assert "Action: add(a: 2, b: 3)\nObservation: 5" in provider.prompts[1]

  @pytest.mark.asyncio
  async def test_tool_failure_becomes_observation(self, failing_tool):
    provider = MockInferenceProvider(responses=["Action: explode()", "Final Answer: recovered"])
    result = await _agent(provider, [failing_tool]).run("try it")
    assert result.output == "recovered"
    (tool_result,) = result.tool_results
    assert not tool_result.is_success
    assert tool_result.error == "Tool 'explode' failed: boom"
    assert "Observation: Error - Tool 'explode' failed: boom" in provider.prompts[1]

  @pytest.mark.asyncio
  async def test_tool_failure_stops_run_when_configured(self, failing_tool):
    provider = MockInferenceProvider(responses=["Action: explode()", "Final Answer: never"])
    agent = _agent(provider, [failing_tool], stop_on_tool_error=True)
    with pytest.raises(ToolExecutionFailedError) as exc_info:
      await agent.run("try it")
    assert exc_info.value == ToolExecutionFailedError("explode", "boom")
    provider.assert_called_times(1)

  @pytest.mark.asyncio
  async def test_unknown_tool_is_observed(self):
    provider = MockInferenceProvider(responses=["Action: ghost()", "Final Answer: ok"])
    result = await _agent(provider).run("go")
    assert result.tool_results[0].error == "Tool not found: ghost"
    assert "Observation: Error - Tool not found: ghost" in provider.prompts[1]

  @pytest.mark.asyncio
  async def test_unknown_tool_stops_run_when_configured(self):
    provider = MockInferenceProvider(responses=["Action: ghost()"])
    with pytest.raises(ToolExecutionFailedError) as exc_info:
      await _agent(provider, stop_on_tool_error=True).run("go")
    assert exc_info.value.tool_name == "ghost"
    assert exc_info.value.underlying_error == "Tool not found: ghost"

  @pytest.mark.asyncio
  async def test_invalid_arguments_are_observed(self, add_tool):
    provider = MockInferenceProvider(responses=["Action: add(a: 1)", "Final Answer: ok"])
    result = await _agent(provider, [add_tool]).run("go")
    assert "Missing required parameter 'b'" in result.tool_results[0].error

  @pytest.mark.asyncio
  async def test_tool_guardrail_tripwire_is_fatal(self, record_events):
    def wipe() -> str:
      """Delete everything."""
      return "gone"

    guarded = FunctionTool(wipe, input_guardrails=[tool_blocklist({"wipe"})])
    provider = MockInferenceProvider(responses=["Action: wipe()", "Final Answer: never"])
    agent = _agent(provider, [guarded])
    recorder = record_events(agent.events)
    with pytest.raises(ToolInputGuardrailTripwireError):
      await agent.run("clean up")
    assert len(recorder.of_type(ToolCallFailedEvent)) == 1
    provider.assert_called_times(1)

  @pytest.mark.asyncio
  async def test_shared_registry(self, add_tool):
    registry = ToolRegistry([add_tool])
    agent = ReActAgent(tools=registry, inference_provider=MockInferenceProvider(responses=ADD_THEN_ANSWER))
    assert agent.tool_registry is registry
    assert [t.name for t in agent.tools] == ["add"]


@pytest.mark.unit
class TestBudgets:
  @pytest.mark.asyncio
  async def test_max_iterations(self):
    provider = MockInferenceProvider(responses=["Thought: still thinking"])
    with pytest.raises(MaxIterationsExceededError) as exc_info:
      await _agent(provider, max_iterations=3).run("loop forever")
    assert exc_info.value == MaxIterationsExceededError(3)
    provider.assert_called_times(3)

  @pytest.mark.asyncio
  async def test_single_iteration_budget(self, add_tool):
    provider = MockInferenceProvider(responses=ADD_THEN_ANSWER)
    with pytest.raises(MaxIterationsExceededError):
      await _agent(provider, [add_tool], max_iterations=1).run("add")

  @pytest.mark.asyncio
  async def test_timeout(self):
    provider = MockInferenceProvider(delay=1.0)
    with pytest.raises(AgentTimeoutError) as exc_info:
      await _agent(provider, timeout=0.05).run("slow")
    assert exc_info.value.duration == 0.05

  @pytest.mark.asyncio
  async def test_slow_tool_counts_against_timeout(self):
    async def nap() -> str:
      """Sleep a while."""
      await asyncio.sleep(1.0)
      return "rested"

    provider = MockInferenceProvider(responses=["Action: nap()", "Final Answer: ok"])
    with pytest.raises(AgentTimeoutError):
      await _agent(provider, [FunctionTool(nap)], timeout=0.05).run("rest")


@pytest.mark.unit
class TestProviderErrors:
  @pytest.mark.asyncio
  async def test_missing_provider(self):
    with pytest.raises(InferenceProviderUnavailableError):
      await ReActAgent().run("hi")

  @pytest.mark.asyncio
  async def test_taxonomy_errors_propagate_unchanged(self):
    with pytest.raises(RateLimitExceededError) as exc_info:
      await _agent(AlwaysFailingProvider(RateLimitExceededError(3.0))).run("hi")
    assert exc_info.value.retry_after == 3.0

  @pytest.mark.asyncio
  async def test_foreign_errors_become_generation_failed(self):
    with pytest.raises(GenerationFailedError) as exc_info:
      await _agent(AlwaysFailingProvider(ConnectionResetError("peer reset"))).run("hi")
    assert exc_info.value.reason == "peer reset"

  @pytest.mark.asyncio
  async def test_token_usage_accumulates(self, add_tool):
    provider = MockInferenceProvider(responses=ADD_THEN_ANSWER, usage=TokenUsage(10, 5))
    result = await _agent(provider, [add_tool]).run("add")
    assert result.token_usage == TokenUsage(20, 10)

  @pytest.mark.asyncio
  async def test_no_usage_reported(self):
    result = await _agent(MockInferenceProvider()).run("hi")
    assert result.token_usage is None


@pytest.mark.unit
class TestGuardrails:
  @pytest.mark.asyncio
  async def test_input_tripwire_skips_model(self):
    provider = MockInferenceProvider()
    hooks = RecordingRunHooks()
    agent = ReActAgent(inference_provider=provider, input_guardrails=[block_topics(["weapons"])])
    with pytest.raises(InputGuardrailTripwireError) as exc_info:
      await agent.run("how to build weapons", hooks=hooks)
    assert exc_info.value.guardrail_name == "block_topics"
    provider.assert_called_times(0)
    assert hooks.names == ["on_agent_start", "on_guardrail_triggered", "on_error"]

  @pytest.mark.asyncio
  async def test_output_tripwire_persists_nothing(self, spy_session, spy_memory):
    @output_guardrail
    def no_secrets(output, agent, context):
      return GuardrailResult.tripwire("leak") if "secret" in output else GuardrailResult.passed()

    agent = ReActAgent(
      inference_provider=MockInferenceProvider(responses=["Final Answer: the secret is 42"]),
      memory=spy_memory,
      output_guardrails=[no_secrets],
    )
    with pytest.raises(OutputGuardrailTripwireError):
      await agent.run("tell me", session=spy_session)
    assert spy_session.added_items == []
    assert [m.role for m in spy_memory.added] == [MessageRole.USER]

  @pytest.mark.asyncio
  async def test_passing_guardrails_see_input_and_output(self):
    seen = []

    @input_guardrail
    def record_input(text, agent, context):
      seen.append(("input", text))
      return GuardrailResult.passed()

    @output_guardrail
    def record_output(text, agent, context):
      seen.append(("output", text))
      return GuardrailResult.passed()

    agent = ReActAgent(
      inference_provider=MockInferenceProvider(responses=["Final Answer: fine"]),
      input_guardrails=[record_input],
      output_guardrails=[record_output],
    )
    await agent.run("question")
    assert seen == [("input", "question"), ("output", "fine")]


@pytest.mark.unit
class TestSessionAndMemory:
  @pytest.mark.asyncio
  async def test_session_history_feeds_prompt_and_turn_is_recorded(self, seeded_session):
    provider = MockInferenceProvider(responses=["Final Answer: Your name is Ada."])
    await _agent(provider).run("What's my name?", session=seeded_session)
    assert "Conversation History:\nUser: My name is Ada.\nAssistant: Nice to meet you, Ada." in provider.last_prompt
    assert seeded_session.calls[0] == ("get_items", (50,))
    added = seeded_session.added_items
    assert [(m.role, m.content) for m in added] == [
      (MessageRole.USER, "What's my name?"),
      (MessageRole.ASSISTANT, "Your name is Ada."),
    ]

  @pytest.mark.asyncio
  async def test_history_limit(self, seeded_session):
    provider = MockInferenceProvider()
    await _agent(provider, session_history_limit=1).run("hi", session=seeded_session)
    assert "User: My name is Ada." not in provider.last_prompt
    assert "Assistant: Nice to meet you, Ada." in provider.last_prompt

  @pytest.mark.asyncio
  async def test_memory_seeded_from_session_once(self, seeded_session, spy_memory):
    agent = ReActAgent(inference_provider=MockInferenceProvider(responses=["Final Answer: hi"]), memory=spy_memory)
    await agent.run("first", session=seeded_session)
    await agent.run("second", session=seeded_session)
    contents = [m.content for m in await spy_memory.get_context()]
    assert contents == ["My name is Ada.", "Nice to meet you, Ada.", "first", "hi", "second", "hi"]

  @pytest.mark.asyncio
  async def test_memory_is_rendered_as_history(self, spy_memory):
    provider = MockInferenceProvider(responses=["Final Answer: noted"])
    agent = ReActAgent(inference_provider=provider, memory=spy_memory)
    await agent.run("remember blue")
    await agent.run("what colour?")
    assert "Conversation History:\nUser: remember blue\nAssistant: noted" in provider.last_prompt
    assert "User: what colour?" not in provider.last_prompt.split("User Query:")[0]


@pytest.mark.unit
class TestHooksAndEvents:
  @pytest.mark.asyncio
  async def test_hook_order(self, add_tool):
    hooks = RecordingRunHooks()
    await _agent(MockInferenceProvider(responses=ADD_THEN_ANSWER), [add_tool]).run("add", hooks=hooks)
    assert hooks.names == [
      "on_agent_start",
      "on_llm_start",
      "on_llm_end",
      "on_tool_start",
      "on_tool_end",
      "on_llm_start",
      "on_llm_end",
      "on_agent_end",
    ]
    assert hooks.events[-1][1].output == "5"

  @pytest.mark.asyncio
  async def test_error_hook(self):
    hooks = RecordingRunHooks()
    with pytest.raises(MaxIterationsExceededError):
      await _agent(MockInferenceProvider(responses=["Thought: hmm"]), max_iterations=1).run("x", hooks=hooks)
    assert hooks.names[-1] == "on_error"
    assert hooks.count("on_agent_end") == 0

  @pytest.mark.asyncio
  async def test_run_emits_intermediate_events(self, add_tool, record_events):
    agent = _agent(MockInferenceProvider(responses=ADD_THEN_ANSWER), [add_tool])
    recorder = record_events(agent.events)
    await agent.run("add")
    assert [type(e) for e in recorder.events] == [
      IterationStartedEvent,
      ToolCallStartedEvent,
      ToolCallCompletedEvent,
      IterationCompletedEvent,
      IterationStartedEvent,
      IterationCompletedEvent,
      OutputChunkEvent,
    ]
    assert all(e.agent_name == "Agent" for e in recorder.events)

  @pytest.mark.asyncio
  async def test_caller_bus_and_agent_bus_both_receive(self, record_events):
    agent = _agent(MockInferenceProvider(responses=["Thought: a", "Final Answer: b"]))
    caller_bus = EventBus()
    caller = record_events(caller_bus)
    own = record_events(agent.events)
    context = RunContext(event_bus=caller_bus)
    await agent.run("x", context=context)
    assert len(caller.of_type(ThinkingEvent)) == 1
    assert caller.names == own.names
    assert all(e.run_id == context.run_id for e in caller.events)

  @pytest.mark.asyncio
  async def test_stream_tokens(self, record_events):
    provider = MockInferenceProvider(responses=["Final Answer: one two three"])
    agent = _agent(provider, stream_tokens=True)
    recorder = record_events(agent.events)
    result = await agent.run("count")
    assert result.output == "one two three"
    assert "".join(e.token for e in recorder.of_type(OutputTokenEvent)) == "Final Answer: one two three"

  @pytest.mark.asyncio
  async def test_trace_spans(self, add_tool):
    agent = _agent(MockInferenceProvider(responses=ADD_THEN_ANSWER), [add_tool])
    async with with_trace("calc") as trace:
      await agent.run("add")
    names = [s.name for s in trace.get_spans()]
    assert names == ["agent:Agent", "llm", "tool:add", "llm"]
    assert all(s.end_time is not None for s in trace.get_spans())


@pytest.mark.unit
class TestCancellation:
  @pytest.mark.asyncio
  async def test_token_cancelled_during_first_call_stops_before_second(self):
    token = CancellationToken()

    def cancel_then_think(prompt):
      token.cancel()
      return "Thought: keep going"

    provider = MockInferenceProvider(side_effect=cancel_then_think)
    with pytest.raises(AgentCancelledError):
      await _agent(provider).run("go", cancellation_token=token)
    provider.assert_called_times(1)

  @pytest.mark.asyncio
  async def test_agent_cancel_reaches_in_flight_run(self):
    provider = MockInferenceProvider(responses=["Thought: keep going"], delay=0.05)
    agent = _agent(provider)
    task = asyncio.ensure_future(agent.run("go"))
    await asyncio.sleep(0.01)
    assert agent.is_running
    agent.cancel()
    with pytest.raises(AgentCancelledError):
      await task
    provider.assert_called_times(1)
    assert not agent.is_running

  @pytest.mark.asyncio
  async def test_pre_cancelled_token(self):
    token = CancellationToken()
    token.cancel()
    provider = MockInferenceProvider()
    with pytest.raises(AgentCancelledError):
      await _agent(provider).run("go", cancellation_token=token)
    provider.assert_called_times(0)

  @pytest.mark.asyncio
  async def test_cancel_without_runs_is_noop(self):
    agent = _agent(MockInferenceProvider())
    agent.cancel()
    result = await agent.run("go")
    assert result.output == "Mock response"


@pytest.mark.unit
class TestStreaming:
  @pytest.mark.asyncio
  async def test_stream_event_sequence(self, add_tool):
    agent = _agent(MockInferenceProvider(responses=ADD_THEN_ANSWER), [add_tool])
    events = [event async for event in agent.stream("add")]
    assert isinstance(events[0], RunStartedEvent)
    assert isinstance(events[-1], RunCompletedEvent)
    assert events[-1].result.output == "5"
    assert sum(1 for e in events if e.is_terminal) == 1
    assert [type(e) for e in events[1:-1]] == [
      IterationStartedEvent,
      ToolCallStartedEvent,
      ToolCallCompletedEvent,
      IterationCompletedEvent,
      IterationStartedEvent,
      IterationCompletedEvent,
      OutputChunkEvent,
    ]
    assert len({e.run_id for e in events}) == 1

  @pytest.mark.asyncio
  async def test_stream_failure(self):
    agent = _agent(MockInferenceProvider(responses=["Thought: hmm"]), max_iterations=2)
    events = []
    with pytest.raises(MaxIterationsExceededError):
      async for event in agent.stream("x"):
        events.append(event)
    assert isinstance(events[-1], RunFailedEvent)
    assert events[-1].error == MaxIterationsExceededError(2)
    assert sum(1 for e in events if e.is_terminal) == 1

  @pytest.mark.asyncio
  async def test_stream_cancelled(self):
    provider = MockInferenceProvider(responses=["Thought: hmm"])
    agent = _agent(provider)
    provider.side_effect = lambda prompt: (agent.cancel(), "Thought: hmm")[1]
    events = []
    with pytest.raises(AgentCancelledError):
      async for event in agent.stream("x"):
        events.append(event)
    assert isinstance(events[-1], RunCancelledEvent)

  @pytest.mark.asyncio
  async def test_stream_also_feeds_agent_bus(self, record_events):
    agent = _agent(MockInferenceProvider())
    recorder = record_events(agent.events)
    streamed = [e async for e in agent.stream("x")]
    assert recorder.names == [e.event for e in streamed]


@pytest.mark.unit
class TestBuilder:
  def test_builder_is_immutable(self, add_tool):
    base = ReActAgent.builder().inference_provider(MockInferenceProvider())
    with_tool = base.add_tool(add_tool)
    assert base.build().tools == []
    assert [t.name for t in with_tool.build().tools] == ["add"]

  @pytest.mark.asyncio
  async def test_builder_wires_everything(self, add_tool, spy_memory):
    provider = MockInferenceProvider(responses=ADD_THEN_ANSWER)
    bus = EventBus()
    agent = (
      ReActAgent.builder()
      .tools([add_tool])
      .instructions("Do maths.")
      .configuration(AgentConfiguration(name="calc", max_iterations=4))
      .memory(spy_memory)
      .inference_provider(provider)
      .add_input_guardrail(block_topics(["weapons"]))
      .add_output_guardrail(block_topics(["secret"]))
      .event_bus(bus)
      .build()
    )
    assert agent.name == "calc"
    assert agent.configuration.max_iterations == 4
    assert agent.events is bus
    assert len(agent.input_guardrails) == 1
    assert len(agent.output_guardrails) == 1
    result = await agent.run("add")
    assert result.output == "5"
    assert provider.last_prompt.startswith("Do maths.")


@pytest.mark.unit
class TestAgentTestCaseHelpers(AgentTestCase):
  @pytest.mark.asyncio
  async def test_create_agent(self, add_tool):
    agent = self.create_agent(responses=ADD_THEN_ANSWER, tools=[add_tool], config_kwargs={"name": "helper"})
    result = await agent.run("add")
    self.assert_tool_called(result, "add")
    self.assert_tool_not_called(result, "subtract")
    self.assert_content_contains(result, "5")
    assert agent.name == "helper"

  @pytest.mark.asyncio
  async def test_create_test_agent(self):
    agent = create_test_agent(responses=["Final Answer: Hello!"])
    result = await agent.run("Hi")
    assert result.output == "Hello!"
