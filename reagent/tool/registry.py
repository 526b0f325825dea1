"""ToolRegistry: named tool lookup and guarded dispatch."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from reagent.exceptions import AgentError, GuardrailTripwireError, ToolExecutionFailedError, ToolNotFoundError
from reagent.guardrail.base import ToolGuardrailData
from reagent.guardrail.runner import GuardrailRunner
from reagent.tool.base import Tool, ToolDefinition
from reagent.utils.log import log_debug, log_warning
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.agent.hooks import RunHooks
  from reagent.run.base import RunContext


class ToolRegistry:
  """Holds tools by unique name and executes them with guardrails applied.

  The registry never retries a call. Dispatch order for :meth:`execute`:

  1. Look up the tool (``ToolNotFoundError``).
  2. Validate arguments against the tool's parameters (``InvalidToolArgumentsError``).
  3. Run tool-input guardrails; a tripwire means the tool is never invoked.
  4. Invoke the tool. Any non-taxonomy exception becomes ``ToolExecutionFailedError``.
  5. Run tool-output guardrails against the successful result.

  Registration is guarded by a lock; once built, a registry can be shared by
  concurrently running agents.
  """

  def __init__(self, tools: Optional[Iterable[Tool]] = None, guardrail_runner: Optional[GuardrailRunner] = None):
    self._tools: Dict[str, Tool] = {}
    self._lock = threading.Lock()
    self.guardrail_runner = guardrail_runner or GuardrailRunner()
    for t in tools or ():
      self.register(t)

  # ------------------------------------------------------------------
  # Registration
  # ------------------------------------------------------------------

  def register(self, tool: Tool) -> None:
    """Add *tool*, replacing any tool already registered under the same name.

    Raises ``ValueError`` when the tool's definition is malformed, for example
    when two parameters share a name.
    """
    try:
      tool.definition  # noqa: B018
    except ValidationError as exc:
      raise ValueError(f"Invalid tool '{tool.name}': {exc.errors()[0]['msg']}") from exc
    with self._lock:
      if tool.name in self._tools:
        log_debug(f"Replacing tool '{tool.name}'")
      self._tools[tool.name] = tool

  def register_all(self, tools: Iterable[Tool]) -> None:
    for t in tools:
      self.register(t)

  def unregister(self, name: str) -> None:
    with self._lock:
      self._tools.pop(name, None)

  def tool(self, name: str) -> Optional[Tool]:
    with self._lock:
      return self._tools.get(name)

  def contains(self, name: str) -> bool:
    with self._lock:
      return name in self._tools

  @property
  def tools(self) -> List[Tool]:
    with self._lock:
      return list(self._tools.values())

  @property
  def tool_names(self) -> List[str]:
    with self._lock:
      return list(self._tools)

  @property
  def definitions(self) -> List[ToolDefinition]:
    return [t.definition for t in self.tools]

  def __len__(self) -> int:
    with self._lock:
      return len(self._tools)

  def __contains__(self, name: object) -> bool:
    return isinstance(name, str) and self.contains(name)

  def __repr__(self) -> str:
    return f"ToolRegistry(tools={self.tool_names})"

  # ------------------------------------------------------------------
  # Dispatch
  # ------------------------------------------------------------------

  async def execute(
    self,
    tool_name: str,
    arguments: Mapping[str, SendableValue],
    agent: Any = None,
    context: Optional["RunContext"] = None,
    hooks: Optional["RunHooks"] = None,
  ) -> SendableValue:
    """Execute the tool named *tool_name* and return its validated output."""
    tool = self.tool(tool_name)
    if tool is None:
      raise ToolNotFoundError(tool_name)

    arguments = dict(arguments)
    tool.validate_arguments(arguments)
    data = ToolGuardrailData(tool=tool, arguments=arguments, agent=agent, context=context)

    if tool.input_guardrails:
      await self.guardrail_runner.run_tool_input_guardrails(tool.input_guardrails, data, hooks=hooks)

    start = time.perf_counter()
    try:
      output = await tool.execute(arguments)
    except asyncio.CancelledError:
      raise
    except (AgentError, GuardrailTripwireError):
      raise
    except Exception as exc:
      elapsed = (time.perf_counter() - start) * 1000
      log_warning(f"Tool '{tool_name}' failed after {elapsed:.1f}ms: {exc}")
      raise ToolExecutionFailedError(tool_name, str(exc) or type(exc).__name__) from exc
    elapsed = (time.perf_counter() - start) * 1000
    log_debug(f"Tool '{tool_name}' completed in {elapsed:.1f}ms")

    if not isinstance(output, SendableValue):
      output = SendableValue.of(output)

    if tool.output_guardrails:
      await self.guardrail_runner.run_tool_output_guardrails(tool.output_guardrails, data, output, hooks=hooks)
    return output
