"""Lifecycle hooks for agent runs.

Hooks are awaited inline at each lifecycle point, so a slow hook delays the run.
All methods are no-ops by default; override only what you need.
"""

import logging
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from reagent.utils.log import logger as reagent_logger

if TYPE_CHECKING:
  from reagent.agent.result import AgentResult, TokenUsage
  from reagent.guardrail.base import GuardrailResult
  from reagent.memory.types import MemoryMessage
  from reagent.run.base import RunContext
  from reagent.tool.base import Tool
  from reagent.value import SendableValue


class RunHooks:
  """Base class for run lifecycle callbacks.

  Example::

      class Timing(RunHooks):
          async def on_agent_start(self, context, agent, input):
              self.started = time.monotonic()
  """

  async def on_agent_start(self, context: Optional["RunContext"], agent: Any, input: str) -> None:
    """Called once per run, after input validation and before guardrails."""

  async def on_agent_end(self, context: Optional["RunContext"], agent: Any, result: "AgentResult") -> None:
    """Called once per successful run with the final result."""

  async def on_error(self, context: Optional["RunContext"], agent: Any, error: BaseException) -> None:
    """Called once per failed run before the error propagates."""

  async def on_handoff(self, context: Optional["RunContext"], from_agent: Any, to_agent: Any) -> None:
    """Called when a sequential pipeline passes control to its next member."""

  async def on_tool_start(self, context: Optional["RunContext"], agent: Any, tool: "Tool", arguments: Any) -> None:
    pass

  async def on_tool_end(self, context: Optional["RunContext"], agent: Any, tool: "Tool", result: "SendableValue") -> None:
    pass

  async def on_llm_start(
    self,
    context: Optional["RunContext"],
    agent: Any,
    system_prompt: Optional[str],
    input_messages: List["MemoryMessage"],
  ) -> None:
    pass

  async def on_llm_end(self, context: Optional["RunContext"], agent: Any, response: str, usage: Optional["TokenUsage"]) -> None:
    pass

  async def on_guardrail_triggered(
    self,
    context: Optional["RunContext"],
    guardrail_name: str,
    guardrail_type: str,
    result: "GuardrailResult",
  ) -> None:
    pass


class CompositeRunHooks(RunHooks):
  """Fan every callback out to several hooks, in order."""

  def __init__(self, hooks: Sequence[RunHooks]):
    self.hooks = list(hooks)

  async def on_agent_start(self, context, agent, input):
    for h in self.hooks:
      await h.on_agent_start(context, agent, input)

  async def on_agent_end(self, context, agent, result):
    for h in self.hooks:
      await h.on_agent_end(context, agent, result)

  async def on_error(self, context, agent, error):
    for h in self.hooks:
      await h.on_error(context, agent, error)

  async def on_handoff(self, context, from_agent, to_agent):
    for h in self.hooks:
      await h.on_handoff(context, from_agent, to_agent)

  async def on_tool_start(self, context, agent, tool, arguments):
    for h in self.hooks:
      await h.on_tool_start(context, agent, tool, arguments)

  async def on_tool_end(self, context, agent, tool, result):
    for h in self.hooks:
      await h.on_tool_end(context, agent, tool, result)

  async def on_llm_start(self, context, agent, system_prompt, input_messages):
    for h in self.hooks:
      await h.on_llm_start(context, agent, system_prompt, input_messages)

  async def on_llm_end(self, context, agent, response, usage):
    for h in self.hooks:
      await h.on_llm_end(context, agent, response, usage)

  async def on_guardrail_triggered(self, context, guardrail_name, guardrail_type, result):
    for h in self.hooks:
      await h.on_guardrail_triggered(context, guardrail_name, guardrail_type, result)


class LoggingRunHooks(RunHooks):
  """Hooks that log every lifecycle callback.

  Example:
    agent.run("hi", hooks=LoggingRunHooks(logging.getLogger("myapp")))
  """

  def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
    self.logger = logger or reagent_logger
    self.level = level

  def _log(self, msg: str) -> None:
    self.logger.log(self.level, msg)

  async def on_agent_start(self, context, agent, input):
    self._log(f"[{_name(agent)}] run started (run_id={_run_id(context)}): {input!r}")

  async def on_agent_end(self, context, agent, result):
    self._log(f"[{_name(agent)}] run completed in {result.duration:.2f}s after {result.iteration_count} iteration(s)")

  async def on_error(self, context, agent, error):
    self.logger.error(f"[{_name(agent)}] run failed: {error}")

  async def on_handoff(self, context, from_agent, to_agent):
    self._log(f"Handoff {_name(from_agent)} -> {_name(to_agent)}")

  async def on_tool_start(self, context, agent, tool, arguments):
    self._log(f"[{_name(agent)}] tool '{tool.name}' started")

  async def on_tool_end(self, context, agent, tool, result):
    self._log(f"[{_name(agent)}] tool '{tool.name}' returned {result.description[:200]!r}")

  async def on_llm_start(self, context, agent, system_prompt, input_messages):
    self._log(f"[{_name(agent)}] model call started")

  async def on_llm_end(self, context, agent, response, usage):
    tokens = f" ({usage.total_tokens} tokens)" if usage is not None else ""
    self._log(f"[{_name(agent)}] model call finished{tokens}")

  async def on_guardrail_triggered(self, context, guardrail_name, guardrail_type, result):
    self.logger.warning(f"{guardrail_type} guardrail '{guardrail_name}' triggered: {result.message}")


def _name(agent: Any) -> str:
  return getattr(agent, "name", None) or type(agent).__name__


def _run_id(context: Any) -> Optional[str]:
  return getattr(context, "run_id", None)
