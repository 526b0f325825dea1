"""Agent configuration."""

from dataclasses import dataclass, replace
from typing import Optional

from reagent.guardrail.runner import GuardrailRunnerConfiguration


@dataclass(frozen=True)
class AgentConfiguration:
  """
  Execution settings for one agent, fixed for the agent's lifetime.

  Uses frozen dataclass for immutability so a configuration can be shared
  by concurrently running agents.

  Attributes:
      name: Human-readable name for the agent.
      max_iterations: Maximum ReAct loop iterations before failing (>= 1).
      timeout: Wall-clock budget in seconds, measured from loop entry (> 0).
      temperature: Sampling temperature passed to the provider (0-2).
      max_tokens: Optional per-call token limit passed to the provider.
      stop_on_tool_error: Abort the run on the first tool failure instead of
          feeding the error back to the model as an observation.
      stream_tokens: Use the provider's token stream (when it has one) and emit
          an ``OutputTokenEvent`` per token.
      session_history_limit: How many session messages to load into the
          working context. ``None`` loads everything.
  """

  name: str = "Agent"

  # Execution settings
  max_iterations: int = 10
  timeout: float = 60.0
  temperature: float = 1.0
  max_tokens: Optional[int] = None

  # Error handling
  stop_on_tool_error: bool = False

  # Streaming
  stream_tokens: bool = False

  # Session
  session_history_limit: Optional[int] = 50

  def __post_init__(self) -> None:
    if self.max_iterations < 1:
      raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
    if self.timeout <= 0:
      raise ValueError(f"timeout must be positive, got {self.timeout}")
    if not 0.0 <= self.temperature <= 2.0:
      raise ValueError(f"temperature must be between 0 and 2, got {self.temperature}")
    if self.max_tokens is not None and self.max_tokens <= 0:
      raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
    if self.session_history_limit is not None and self.session_history_limit < 0:
      raise ValueError(f"session_history_limit must not be negative, got {self.session_history_limit}")

  @staticmethod
  def default() -> "AgentConfiguration":
    return AgentConfiguration()

  def with_updates(self, **kwargs) -> "AgentConfiguration":
    """
    Create new configuration with updated values (immutable pattern).

    Example:
        new_config = config.with_updates(max_iterations=5, name="Researcher")
    """
    return replace(self, **kwargs)

  def __repr__(self) -> str:
    return (
      f"AgentConfiguration(name={self.name!r}, max_iterations={self.max_iterations}, timeout={self.timeout}, "
      f"temperature={self.temperature}, stop_on_tool_error={self.stop_on_tool_error})"
    )


__all__ = ["AgentConfiguration", "GuardrailRunnerConfiguration"]
