"""ReActAgent: the Thought / Action / Observation loop.

Each iteration renders a prompt from the instructions, the tool catalog, the
conversation history and the scratchpad, asks the model for the next step and
acts on the parsed reply:

  - ``Final Answer:`` ends the loop.
  - ``Action: tool(args)`` dispatches the tool; the outcome becomes an
    ``Observation:`` in the scratchpad.
  - Anything else is kept as a thought and the loop continues.

Usage::

    agent = (
        ReActAgent.builder()
        .tools([weather])
        .instructions("You answer travel questions.")
        .inference_provider(OpenAIProvider())
        .build()
    )
    result = await agent.run("What's the weather in Paris?")
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Awaitable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from reagent.agent.base import Agent
from reagent.agent.cancellation import CancellationToken
from reagent.agent.config import AgentConfiguration
from reagent.agent.hooks import RunHooks
from reagent.agent.parser import ResponseKind, parse_response
from reagent.agent.prompt import build_prompt, error_observation_entry, observation_entry, thought_entry
from reagent.agent.result import AgentResult, AgentResultBuilder, ToolCall, ToolResult
from reagent.exceptions import (
  AgentCancelledError,
  AgentError,
  AgentTimeoutError,
  GenerationFailedError,
  GuardrailExecutionError,
  GuardrailTripwireError,
  InferenceProviderUnavailableError,
  InvalidInputError,
  MaxIterationsExceededError,
  ToolExecutionFailedError,
)
from reagent.guardrail.base import InputGuardrail, OutputGuardrail
from reagent.guardrail.runner import GuardrailRunner, GuardrailRunnerConfiguration
from reagent.memory.base import Memory
from reagent.memory.types import MemoryMessage
from reagent.provider.base import InferenceOptions, InferenceProvider, StreamingInferenceProvider, usage_of
from reagent.run.base import RunContext
from reagent.run.event_bus import EventBus
from reagent.run.events import (
  IterationCompletedEvent,
  IterationStartedEvent,
  OutputChunkEvent,
  OutputTokenEvent,
  ThinkingEvent,
  ToolCallCompletedEvent,
  ToolCallFailedEvent,
  ToolCallStartedEvent,
)
from reagent.tool.base import Tool
from reagent.tool.registry import ToolRegistry
from reagent.tracing.context import span_for
from reagent.utils.log import log_debug, log_warning
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.memory.base import Session

T = TypeVar("T")


class ReActAgent(Agent):
  """
  Agent driven by the ReAct loop.

  Args:
    tools: Tools (or a prepared :class:`ToolRegistry`) the model may call.
    instructions: System instructions placed at the top of every prompt.
    configuration: Loop budgets and sampling settings.
    memory: Working memory. Receives session history, the user turn and the
      validated answer; its contents are rendered as conversation history.
    inference_provider: Model backend. A missing provider fails at call time.
    input_guardrails: Checked before the loop starts.
    output_guardrails: Checked against the final answer before anything is persisted.
    guardrail_runner_configuration: Policy for the guardrail runner.
    event_bus: Bus receiving this agent's events.
  """

  def __init__(
    self,
    tools: Union[ToolRegistry, Iterable[Tool], None] = None,
    instructions: str = "",
    configuration: Optional[AgentConfiguration] = None,
    memory: Optional[Memory] = None,
    inference_provider: Optional[InferenceProvider] = None,
    input_guardrails: Sequence[InputGuardrail] = (),
    output_guardrails: Sequence[OutputGuardrail] = (),
    guardrail_runner_configuration: Optional[GuardrailRunnerConfiguration] = None,
    event_bus: Optional[EventBus] = None,
  ):
    self.configuration = configuration or AgentConfiguration.default()
    super().__init__(name=self.configuration.name, event_bus=event_bus)
    self.instructions = instructions
    self.memory = memory
    self.inference_provider = inference_provider
    self.input_guardrails = list(input_guardrails)
    self.output_guardrails = list(output_guardrails)
    self.guardrail_runner_configuration = guardrail_runner_configuration or GuardrailRunnerConfiguration.default()
    self.guardrail_runner = GuardrailRunner(self.guardrail_runner_configuration)
    if isinstance(tools, ToolRegistry):
      self.tool_registry = tools
    else:
      self.tool_registry = ToolRegistry(tools, guardrail_runner=self.guardrail_runner)

  @staticmethod
  def builder() -> "ReActAgentBuilder":
    return ReActAgentBuilder()

  @property
  def tools(self) -> List[Tool]:
    return self.tool_registry.tools

  # ------------------------------------------------------------------
  # Run
  # ------------------------------------------------------------------

  async def _run(
    self,
    input: str,
    session: Optional["Session"],
    hooks: RunHooks,
    context: RunContext,
    token: CancellationToken,
  ) -> AgentResult:
    if not input or not input.strip():
      raise InvalidInputError("Input cannot be empty")

    log_debug(f"[{self.name}] run {context.run_id} started")
    await hooks.on_agent_start(context, self, input)
    try:
      with span_for(context.trace, f"agent:{self.name}"):
        result = await self._execute(input, session, hooks, context, token)
    except Exception as error:
      log_debug(f"[{self.name}] run {context.run_id} failed: {error}")
      await hooks.on_error(context, self, error)
      raise

    log_debug(f"[{self.name}] run {context.run_id} completed in {result.duration:.2f}s")
    await hooks.on_agent_end(context, self, result)
    return result

  async def _execute(
    self,
    input: str,
    session: Optional["Session"],
    hooks: RunHooks,
    context: RunContext,
    token: CancellationToken,
  ) -> AgentResult:
    await self.guardrail_runner.run_input_guardrails(self.input_guardrails, input, self, context, hooks)

    builder = AgentResultBuilder().start()

    session_history: List[MemoryMessage] = []
    if session is not None:
      session_history = await session.get_items(limit=self.configuration.session_history_limit)

    user_message = MemoryMessage.user(input)
    if self.memory is not None:
      # Session history seeds memory only while memory is empty
      if session_history and not await self.memory.get_context():
        for message in session_history:
          await self.memory.add(message)
      await self.memory.add(user_message)

    output = await self._loop(input, session_history, user_message, builder, hooks, context, token)
    builder.set_output(output)

    await self.guardrail_runner.run_output_guardrails(self.output_guardrails, output, self, context, hooks)

    if session is not None:
      await session.add_items([user_message, MemoryMessage.assistant(output)])
    if self.memory is not None:
      await self.memory.add(MemoryMessage.assistant(output))

    await self._emit(OutputChunkEvent(chunk=output), context)
    return builder.build()

  async def _loop(
    self,
    input: str,
    session_history: List[MemoryMessage],
    user_message: MemoryMessage,
    builder: AgentResultBuilder,
    hooks: RunHooks,
    context: RunContext,
    token: CancellationToken,
  ) -> str:
    scratchpad = ""
    invalid_responses = 0
    deadline = time.monotonic() + self.configuration.timeout

    while builder.iteration_count < self.configuration.max_iterations:
      token.raise_if_cancelled()
      if time.monotonic() >= deadline:
        raise AgentTimeoutError(self.configuration.timeout)

      builder.increment_iteration()
      iteration = builder.iteration_count
      await self._emit(IterationStartedEvent(iteration=iteration), context)

      history = await self._history(session_history, user_message)
      prompt = build_prompt(input, self.instructions, self.tool_registry.definitions, history, scratchpad)

      token.raise_if_cancelled()
      response = await self._generate(prompt, builder, hooks, context, deadline)
      token.raise_if_cancelled()

      parsed = parse_response(response)
      if parsed.kind is ResponseKind.FINAL_ANSWER:
        await self._emit(IterationCompletedEvent(iteration=iteration), context)
        if invalid_responses:
          builder.set_metadata("invalid_responses", invalid_responses)
        return parsed.text

      if parsed.kind is ResponseKind.TOOL_CALL:
        assert parsed.tool_name is not None
        scratchpad += await self._call_tool(parsed.tool_name, parsed.arguments, builder, hooks, context, token, deadline)
      else:
        if parsed.kind is ResponseKind.INVALID:
          invalid_responses += 1
          log_debug(f"[{self.name}] unparseable model response treated as a thought")
        thought = parsed.text.strip()
        scratchpad += thought_entry(thought)
        await self._emit(ThinkingEvent(thought=thought), context)

      await self._emit(IterationCompletedEvent(iteration=iteration), context)

    raise MaxIterationsExceededError(builder.iteration_count)

  async def _history(self, session_history: List[MemoryMessage], user_message: MemoryMessage) -> List[MemoryMessage]:
    if self.memory is None:
      return session_history
    # The current turn is rendered separately as "User Query"
    return [m for m in await self.memory.get_context() if m.id != user_message.id]

  # ------------------------------------------------------------------
  # Model
  # ------------------------------------------------------------------

  async def _generate(
    self,
    prompt: str,
    builder: AgentResultBuilder,
    hooks: RunHooks,
    context: RunContext,
    deadline: float,
  ) -> str:
    provider = self.inference_provider
    if provider is None:
      raise InferenceProviderUnavailableError("No inference provider configured")

    options = InferenceOptions(temperature=self.configuration.temperature, max_tokens=self.configuration.max_tokens)
    await hooks.on_llm_start(context, self, self.instructions, [MemoryMessage.user(prompt)])
    with span_for(context.trace, "llm"):
      response = await self._within(deadline, self._complete(provider, prompt, options, context))
    usage = usage_of(provider)
    builder.add_token_usage(usage)
    await hooks.on_llm_end(context, self, response, usage)
    return response

  async def _complete(self, provider: InferenceProvider, prompt: str, options: InferenceOptions, context: RunContext) -> str:
    try:
      if self.configuration.stream_tokens and isinstance(provider, StreamingInferenceProvider):
        tokens: List[str] = []
        async for piece in provider.stream(prompt, options):
          tokens.append(piece)
          await self._emit(OutputTokenEvent(token=piece), context)
        return "".join(tokens)
      return await provider.generate(prompt, options)
    except (AgentError, GuardrailTripwireError):
      raise
    except Exception as exc:
      raise GenerationFailedError(str(exc) or type(exc).__name__) from exc

  # ------------------------------------------------------------------
  # Tools
  # ------------------------------------------------------------------

  async def _call_tool(
    self,
    tool_name: str,
    arguments: Dict[str, SendableValue],
    builder: AgentResultBuilder,
    hooks: RunHooks,
    context: RunContext,
    token: CancellationToken,
    deadline: float,
  ) -> str:
    """Dispatch one tool call and return the scratchpad entry describing it."""
    call = ToolCall(tool_name=tool_name, arguments=arguments)
    builder.add_tool_call(call)
    await self._emit(ToolCallStartedEvent(tool_call=call), context)

    tool = self.tool_registry.tool(tool_name)
    if tool is not None:
      await hooks.on_tool_start(context, self, tool, arguments)

    token.raise_if_cancelled()
    start = time.monotonic()
    try:
      with span_for(context.trace, f"tool:{tool_name}"):
        output = await self._within(deadline, self.tool_registry.execute(tool_name, arguments, self, context, hooks))
    except (AgentCancelledError, AgentTimeoutError):
      raise
    except (GuardrailTripwireError, GuardrailExecutionError) as exc:
      await self._record_failure(call, str(exc), start, builder, context)
      raise
    except AgentError as exc:
      message = str(exc)
      await self._record_failure(call, message, start, builder, context)
      if self.configuration.stop_on_tool_error:
        if isinstance(exc, ToolExecutionFailedError):
          raise
        raise ToolExecutionFailedError(tool_name, message) from exc
      return error_observation_entry(tool_name, call.call_str, message)

    result = ToolResult.success(call.id, output, time.monotonic() - start)
    builder.add_tool_result(result)
    await self._emit(ToolCallCompletedEvent(tool_call=call, result=result), context)
    if tool is not None:
      await hooks.on_tool_end(context, self, tool, output)
    token.raise_if_cancelled()
    return observation_entry(tool_name, call.call_str, output.description)

  async def _record_failure(
    self,
    call: ToolCall,
    message: str,
    start: float,
    builder: AgentResultBuilder,
    context: RunContext,
  ) -> None:
    log_warning(f"[{self.name}] tool '{call.tool_name}' failed: {message}")
    builder.add_tool_result(ToolResult.failure(call.id, message, time.monotonic() - start))
    await self._emit(ToolCallFailedEvent(tool_call=call, error=message), context)

  # ------------------------------------------------------------------
  # Budget
  # ------------------------------------------------------------------

  async def _within(self, deadline: float, awaitable: Awaitable[T]) -> T:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
      close = getattr(awaitable, "close", None)
      if close is not None:
        close()
      raise AgentTimeoutError(self.configuration.timeout)
    try:
      return await asyncio.wait_for(awaitable, remaining)
    except asyncio.TimeoutError:
      raise AgentTimeoutError(self.configuration.timeout) from None

  def __repr__(self) -> str:
    return f"ReActAgent(name={self.name!r}, tools={self.tool_registry.tool_names})"


@dataclass(frozen=True)
class ReActAgentBuilder:
  """Immutable fluent builder; every method returns a new builder.

  Example::

      base = ReActAgent.builder().inference_provider(provider)
      researcher = base.instructions("Research the topic.").build()
      writer = base.instructions("Write the summary.").build()
  """

  _tools: Tuple[Tool, ...] = ()
  _instructions: str = ""
  _configuration: AgentConfiguration = field(default_factory=AgentConfiguration.default)
  _memory: Optional[Memory] = None
  _inference_provider: Optional[InferenceProvider] = None
  _input_guardrails: Tuple[InputGuardrail, ...] = ()
  _output_guardrails: Tuple[OutputGuardrail, ...] = ()
  _guardrail_runner_configuration: GuardrailRunnerConfiguration = field(default_factory=GuardrailRunnerConfiguration.default)
  _event_bus: Optional[EventBus] = None

  def tools(self, tools: Iterable[Tool]) -> "ReActAgentBuilder":
    return replace(self, _tools=tuple(tools))

  def add_tool(self, tool: Tool) -> "ReActAgentBuilder":
    return replace(self, _tools=self._tools + (tool,))

  def instructions(self, instructions: str) -> "ReActAgentBuilder":
    return replace(self, _instructions=instructions)

  def configuration(self, configuration: AgentConfiguration) -> "ReActAgentBuilder":
    return replace(self, _configuration=configuration)

  def memory(self, memory: Memory) -> "ReActAgentBuilder":
    return replace(self, _memory=memory)

  def inference_provider(self, provider: InferenceProvider) -> "ReActAgentBuilder":
    return replace(self, _inference_provider=provider)

  def input_guardrails(self, guardrails: Iterable[InputGuardrail]) -> "ReActAgentBuilder":
    return replace(self, _input_guardrails=tuple(guardrails))

  def add_input_guardrail(self, guardrail: InputGuardrail) -> "ReActAgentBuilder":
    return replace(self, _input_guardrails=self._input_guardrails + (guardrail,))

  def output_guardrails(self, guardrails: Iterable[OutputGuardrail]) -> "ReActAgentBuilder":
    return replace(self, _output_guardrails=tuple(guardrails))

  def add_output_guardrail(self, guardrail: OutputGuardrail) -> "ReActAgentBuilder":
    return replace(self, _output_guardrails=self._output_guardrails + (guardrail,))

  def guardrail_runner_configuration(self, configuration: GuardrailRunnerConfiguration) -> "ReActAgentBuilder":
    return replace(self, _guardrail_runner_configuration=configuration)

  def event_bus(self, bus: EventBus) -> "ReActAgentBuilder":
    return replace(self, _event_bus=bus)

  def build(self) -> ReActAgent:
    return ReActAgent(
      tools=self._tools,
      instructions=self._instructions,
      configuration=self._configuration,
      memory=self._memory,
      inference_provider=self._inference_provider,
      input_guardrails=self._input_guardrails,
      output_guardrails=self._output_guardrails,
      guardrail_runner_configuration=self._guardrail_runner_configuration,
      event_bus=self._event_bus,
    )


__all__ = ["ReActAgent", "ReActAgentBuilder"]
