"""Testing utilities for agents: mock providers, spies and AgentTestCase."""

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

from reagent.agent.base import Agent
from reagent.agent.config import AgentConfiguration
from reagent.agent.hooks import RunHooks
from reagent.agent.result import AgentResult, AgentResultBuilder
from reagent.exceptions import GenerationFailedError
from reagent.memory.in_memory import ConversationMemory, InMemorySession
from reagent.memory.types import MemoryMessage
from reagent.provider.base import InferenceOptions, InferenceResponse, TokenUsage


class MockInferenceProvider:
  """
  Mock inference provider for unit testing agents without API calls.

  Responses are returned in sequence; once exhausted the last one repeats.

  Example:
      # Canned ReAct replies
      provider = MockInferenceProvider(responses=["Thought: hmm", "Final Answer: 42"])

      # Computed replies
      provider = MockInferenceProvider(side_effect=lambda prompt: "Final Answer: " + prompt[-5:])

      # Failing call
      provider = MockInferenceProvider(side_effect=RateLimitExceededError(2.0))
  """

  def __init__(
    self,
    responses: Optional[Sequence[str]] = None,
    side_effect: Union[Callable[[str], str], BaseException, None] = None,
    usage: Optional[TokenUsage] = None,
    delay: float = 0.0,
  ):
    """
    Args:
        responses: Canned responses returned in order.
        side_effect: Callable computing the response from the prompt, or an
            exception instance raised on every call.
        usage: Reported as ``last_usage`` after every call.
        delay: Seconds to sleep before answering (for timeout/cancel tests).
    """
    self.responses = list(responses or ["Final Answer: Mock response"])
    self.side_effect = side_effect
    self.usage = usage
    self.delay = delay
    self.last_usage: Optional[TokenUsage] = None
    self._call_count = 0
    self._prompts: List[str] = []

  async def generate(self, prompt: str, options: InferenceOptions) -> str:
    self._prompts.append(prompt)
    self._call_count += 1
    if self.delay:
      await asyncio.sleep(self.delay)
    if isinstance(self.side_effect, BaseException):
      raise self.side_effect
    self.last_usage = self.usage
    if self.side_effect is not None:
      return self.side_effect(prompt)
    return self.responses[min(self._call_count - 1, len(self.responses) - 1)]

  async def generate_with_tools(self, prompt: str, tools: Sequence[Any], options: InferenceOptions) -> InferenceResponse:
    return InferenceResponse(content=await self.generate(prompt, options), usage=self.usage)

  async def stream(self, prompt: str, options: InferenceOptions) -> AsyncIterator[str]:
    """Yield the response word by word (whitespace preserved)."""
    text = await self.generate(prompt, options)
    words = text.split(" ")
    for index, word in enumerate(words):
      yield word if index == len(words) - 1 else word + " "

  @property
  def call_count(self) -> int:
    """Return number of times the provider was called."""
    return self._call_count

  @property
  def prompts(self) -> List[str]:
    """Every prompt received, in order."""
    return list(self._prompts)

  @property
  def last_prompt(self) -> Optional[str]:
    return self._prompts[-1] if self._prompts else None

  def reset(self) -> None:
    self._call_count = 0
    self._prompts.clear()

  def assert_called_times(self, n: int) -> None:
    """Assert that the provider was called exactly n times."""
    assert self._call_count == n, f"MockInferenceProvider was called {self._call_count} times, expected {n}"


class AlwaysFailingProvider(MockInferenceProvider):
  """Provider whose every call raises *error* (``GenerationFailedError`` by default)."""

  def __init__(self, error: Optional[BaseException] = None):
    super().__init__(side_effect=error or GenerationFailedError("Provider always fails"))


class SpySession(InMemorySession):
  """InMemorySession that records every call as ``(method, args)``."""

  def __init__(self, session_id: Optional[str] = None, items: Optional[List[MemoryMessage]] = None):
    super().__init__(session_id)
    self._items.extend(items or [])
    self.calls: List[tuple] = []

  @property
  def added_items(self) -> List[MemoryMessage]:
    return [m for name, args in self.calls if name == "add_items" for m in args[0]]

  async def get_items(self, limit: Optional[int] = None) -> List[MemoryMessage]:
    self.calls.append(("get_items", (limit,)))
    return await super().get_items(limit)

  async def add_items(self, items: List[MemoryMessage]) -> None:
    self.calls.append(("add_items", (list(items),)))
    await super().add_items(items)

  async def pop_item(self) -> Optional[MemoryMessage]:
    self.calls.append(("pop_item", ()))
    return await super().pop_item()

  async def clear_session(self) -> None:
    self.calls.append(("clear_session", ()))
    await super().clear_session()


class SpyMemory(ConversationMemory):
  """ConversationMemory that records every message added."""

  def __init__(self, max_messages: Optional[int] = None):
    super().__init__(max_messages=max_messages)
    self.added: List[MemoryMessage] = []
    self.clear_count = 0

  async def add(self, message: MemoryMessage) -> None:
    self.added.append(message)
    await super().add(message)

  async def clear(self) -> None:
    self.clear_count += 1
    await super().clear()


class RecordingRunHooks(RunHooks):
  """Hooks that record ``(callback_name, payload)`` for every invocation."""

  def __init__(self) -> None:
    self.events: List[tuple] = []

  @property
  def names(self) -> List[str]:
    return [name for name, _ in self.events]

  def count(self, name: str) -> int:
    return self.names.count(name)

  async def on_agent_start(self, context, agent, input):
    self.events.append(("on_agent_start", input))

  async def on_agent_end(self, context, agent, result):
    self.events.append(("on_agent_end", result))

  async def on_error(self, context, agent, error):
    self.events.append(("on_error", error))

  async def on_handoff(self, context, from_agent, to_agent):
    self.events.append(("on_handoff", (from_agent.name, to_agent.name)))

  async def on_tool_start(self, context, agent, tool, arguments):
    self.events.append(("on_tool_start", tool.name))

  async def on_tool_end(self, context, agent, tool, result):
    self.events.append(("on_tool_end", result))

  async def on_llm_start(self, context, agent, system_prompt, input_messages):
    self.events.append(("on_llm_start", input_messages))

  async def on_llm_end(self, context, agent, response, usage):
    self.events.append(("on_llm_end", response))

  async def on_guardrail_triggered(self, context, guardrail_name, guardrail_type, result):
    self.events.append(("on_guardrail_triggered", (guardrail_name, guardrail_type)))


class FunctionAgent(Agent):
  """Agent whose output is ``fn(input)``; *fn* may be async or raise.

  Example:
      upper = FunctionAgent(str.upper, name="upper")
  """

  def __init__(self, fn: Callable[[str], Any], name: Optional[str] = None, delay: float = 0.0):
    super().__init__(name=name or getattr(fn, "__name__", None))
    self.fn = fn
    self.delay = delay
    self.inputs: List[str] = []

  async def _run(self, input, session, hooks, context, token) -> AgentResult:
    self.inputs.append(input)
    builder = AgentResultBuilder().start()
    if self.delay:
      await asyncio.sleep(self.delay)
    token.raise_if_cancelled()
    output = self.fn(input)
    if asyncio.iscoroutine(output):
      output = await output
    return builder.set_output(str(output)).increment_iteration().build()


class AgentTestCase:
  """
  Base class for agent tests with helper constructors and assertions.

  Example:
      class TestMyAgent(AgentTestCase):
          async def test_simple_response(self):
              agent = self.create_agent(responses=["Final Answer: Hello!"])
              result = await agent.run("Say hello")
              self.assert_content_contains(result, "Hello")
  """

  def create_agent(
    self,
    responses: Optional[Sequence[str]] = None,
    provider: Optional[MockInferenceProvider] = None,
    tools: Optional[List] = None,
    instructions: str = "",
    config_kwargs: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
  ):
    """
    Create a ReActAgent backed by a mock provider.

    Args:
        responses: Canned responses (ignored when *provider* is given).
        provider: Provider to use.
        tools: Tools to register.
        instructions: System instructions.
        config_kwargs: AgentConfiguration overrides.
        **kwargs: Additional ReActAgent parameters.
    """
    from reagent.agent.react import ReActAgent

    return ReActAgent(
      tools=tools,
      instructions=instructions,
      configuration=AgentConfiguration(**(config_kwargs or {})),
      inference_provider=provider or MockInferenceProvider(responses=responses),
      **kwargs,
    )

  def assert_tool_called(self, result: AgentResult, tool_name: str, msg: Optional[str] = None) -> None:
    """Assert a specific tool was called during the run."""
    names = [c.tool_name for c in result.tool_calls]
    assert tool_name in names, msg or f"Tool '{tool_name}' not found in called tools: {names}"

  def assert_tool_not_called(self, result: AgentResult, tool_name: str, msg: Optional[str] = None) -> None:
    names = [c.tool_name for c in result.tool_calls]
    assert tool_name not in names, msg or f"Tool '{tool_name}' was unexpectedly called"

  def assert_content_contains(self, result: AgentResult, substring: str, msg: Optional[str] = None) -> None:
    assert substring in result.output, msg or f"Output does not contain '{substring}': {result.output[:100]}..."


def create_test_agent(responses: Optional[Sequence[str]] = None, tools: Optional[List] = None, **kwargs: Any):
  """
  Quick helper to create a ReActAgent with a MockInferenceProvider.

  Example:
      agent = create_test_agent(responses=["Final Answer: Hello!"])
      result = await agent.run("Hi")
      assert result.output == "Hello!"
  """
  from reagent.agent.react import ReActAgent

  return ReActAgent(tools=tools, inference_provider=MockInferenceProvider(responses=responses), **kwargs)
