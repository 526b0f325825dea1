"""Exception hierarchy for reagent.

Two families derive from :class:`ReagentError`:

  - :class:`AgentError`: execution failures (closed taxonomy, one subclass per case).
  - :class:`GuardrailTripwireError`: policy rejections raised when a guardrail trips.

Provider- and tool-specific errors are mapped into these types at the boundary, so
callers only ever need to handle this module's classes.
"""

from typing import TYPE_CHECKING, Any, Optional, Tuple

if TYPE_CHECKING:
  from reagent.guardrail.base import GuardrailResult
  from reagent.value import SendableValue


class ReagentError(Exception):
  """Base exception for every error raised by reagent."""

  def __init__(self, message: str, status_code: int = 500):
    super().__init__(message)
    self.message = message
    self.status_code = status_code
    self.type = "reagent_error"
    self.error_id = "reagent_error"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.message,)

  def __eq__(self, other: object) -> bool:
    if type(self) is not type(other):
      return NotImplemented
    return self._payload() == other._payload()  # type: ignore[attr-defined]

  def __hash__(self) -> int:
    return hash((type(self).__name__, self._payload()))

  def __str__(self) -> str:
    return self.message

  def __repr__(self) -> str:
    return f"{type(self).__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Agent execution errors
# ---------------------------------------------------------------------------


class AgentError(ReagentError):
  """Base class for the closed agent-execution taxonomy."""

  def __init__(self, message: str, status_code: int = 500):
    super().__init__(message, status_code)
    self.type = "agent_error"
    self.error_id = "agent_error"


class InvalidInputError(AgentError):
  """The input provided to the agent was empty or invalid."""

  def __init__(self, reason: str):
    super().__init__(f"Invalid input: {reason}", status_code=400)
    self.reason = reason
    self.error_id = "invalid_input"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.reason,)


class AgentCancelledError(AgentError):
  """The run was cancelled before completion."""

  def __init__(self) -> None:
    super().__init__("Agent execution was cancelled", status_code=499)
    self.error_id = "cancelled"

  def _payload(self) -> Tuple[Any, ...]:
    return ()


class MaxIterationsExceededError(AgentError):
  """The ReAct loop ran out of iterations without a final answer."""

  def __init__(self, iterations: int):
    super().__init__(f"Agent exceeded maximum iterations ({iterations})")
    self.iterations = iterations
    self.error_id = "max_iterations_exceeded"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.iterations,)


class AgentTimeoutError(AgentError):
  """The run exceeded its wall-clock budget. ``duration`` is in seconds."""

  def __init__(self, duration: float):
    super().__init__(f"Agent execution timed out after {duration:g}s", status_code=504)
    self.duration = duration
    self.error_id = "timeout"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.duration,)


class ToolNotFoundError(AgentError):
  """No tool with the given name is registered."""

  def __init__(self, name: str):
    super().__init__(f"Tool not found: {name}", status_code=404)
    self.name = name
    self.error_id = "tool_not_found"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.name,)


class ToolExecutionFailedError(AgentError):
  """A tool raised while executing."""

  def __init__(self, tool_name: str, underlying_error: str):
    super().__init__(f"Tool '{tool_name}' failed: {underlying_error}")
    self.tool_name = tool_name
    self.underlying_error = underlying_error
    self.error_id = "tool_execution_failed"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.tool_name, self.underlying_error)


class InvalidToolArgumentsError(AgentError):
  """Arguments did not match the tool's declared parameters."""

  def __init__(self, tool_name: str, reason: str):
    super().__init__(f"Invalid arguments for tool '{tool_name}': {reason}", status_code=400)
    self.tool_name = tool_name
    self.reason = reason
    self.error_id = "invalid_tool_arguments"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.tool_name, self.reason)


class InferenceProviderUnavailableError(AgentError):
  """No inference provider is configured, or it cannot be reached."""

  def __init__(self, reason: str):
    super().__init__(f"Inference provider unavailable: {reason}", status_code=503)
    self.reason = reason
    self.error_id = "inference_provider_unavailable"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.reason,)


class ContextWindowExceededError(AgentError):
  """The prompt does not fit into the model's context window."""

  def __init__(self, token_count: int, limit: int):
    super().__init__(f"Context window exceeded: {token_count} tokens (limit: {limit})", status_code=413)
    self.token_count = token_count
    self.limit = limit
    self.error_id = "context_window_exceeded"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.token_count, self.limit)


class GuardrailViolationError(AgentError):
  """The model refused or filtered the response on content grounds."""

  def __init__(self) -> None:
    super().__init__("Response violated content guidelines", status_code=422)
    self.error_id = "guardrail_violation"

  def _payload(self) -> Tuple[Any, ...]:
    return ()


class UnsupportedLanguageError(AgentError):
  def __init__(self, language: str):
    super().__init__(f"Language not supported: {language}", status_code=400)
    self.language = language
    self.error_id = "unsupported_language"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.language,)


class GenerationFailedError(AgentError):
  """The model failed to produce a response."""

  def __init__(self, reason: str):
    super().__init__(f"Generation failed: {reason}", status_code=502)
    self.reason = reason
    self.error_id = "generation_failed"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.reason,)


class RateLimitExceededError(AgentError):
  """The provider rejected the request due to rate limiting."""

  def __init__(self, retry_after: Optional[float] = None):
    suffix = f" (retry after {retry_after:g}s)" if retry_after is not None else ""
    super().__init__(f"Rate limit exceeded{suffix}", status_code=429)
    self.retry_after = retry_after
    self.error_id = "rate_limit_exceeded"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.retry_after,)


class InternalAgentError(AgentError):
  def __init__(self, reason: str):
    super().__init__(f"Internal error: {reason}")
    self.reason = reason
    self.error_id = "internal_error"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.reason,)


# ---------------------------------------------------------------------------
# Guardrail errors
# ---------------------------------------------------------------------------


class GuardrailTripwireError(ReagentError):
  """Base class for guardrail tripwires. A tripwire is always fatal to its run."""

  guardrail_type = "guardrail"

  def __init__(self, guardrail_name: str, result: "GuardrailResult"):
    reason = result.message or "no message"
    super().__init__(f"{self.guardrail_type.replace('_', ' ').capitalize()} guardrail '{guardrail_name}' triggered: {reason}", status_code=403)
    self.guardrail_name = guardrail_name
    self.result = result
    self.type = "guardrail_tripwire"
    self.error_id = f"{self.guardrail_type}_tripwire_triggered"

  @property
  def guardrail_message(self) -> Optional[str]:
    return self.result.message

  @property
  def output_info(self) -> Optional["SendableValue"]:
    return self.result.output_info

  def _payload(self) -> Tuple[Any, ...]:
    return (self.guardrail_name, self.result.message)


class InputGuardrailTripwireError(GuardrailTripwireError):
  guardrail_type = "input"


class OutputGuardrailTripwireError(GuardrailTripwireError):
  guardrail_type = "output"


class ToolInputGuardrailTripwireError(GuardrailTripwireError):
  guardrail_type = "tool_input"

  def __init__(self, guardrail_name: str, result: "GuardrailResult", tool_name: str):
    super().__init__(guardrail_name, result)
    self.tool_name = tool_name

  def _payload(self) -> Tuple[Any, ...]:
    return (self.guardrail_name, self.result.message, self.tool_name)


class ToolOutputGuardrailTripwireError(GuardrailTripwireError):
  guardrail_type = "tool_output"

  def __init__(self, guardrail_name: str, result: "GuardrailResult", tool_name: str):
    super().__init__(guardrail_name, result)
    self.tool_name = tool_name

  def _payload(self) -> Tuple[Any, ...]:
    return (self.guardrail_name, self.result.message, self.tool_name)


class GuardrailExecutionError(ReagentError):
  """A guardrail raised, or returned something other than a :class:`GuardrailResult`."""

  def __init__(self, guardrail_name: str, underlying: str):
    super().__init__(f"Guardrail '{guardrail_name}' failed to execute: {underlying}")
    self.guardrail_name = guardrail_name
    self.underlying = underlying
    self.type = "guardrail_error"
    self.error_id = "guardrail_execution_failed"

  def _payload(self) -> Tuple[Any, ...]:
    return (self.guardrail_name, self.underlying)
